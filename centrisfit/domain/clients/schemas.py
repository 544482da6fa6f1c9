"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.localization import normalize_language
from ..bookings.schemas import BookingResponse
from ..memberships.schemas import MembershipResponse


class TelegramLogin(BaseModel):
    """Profile sent by the Mini App on every launch"""

    telegramId: str = Field(..., min_length=1, max_length=64)
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    language: Optional[str] = None

    @field_validator("telegramId")
    @classmethod
    def validate_telegram_id(cls, v):
        v = v.strip()
        if not v.lstrip("-").isdigit():
            raise ValueError("telegramId must be numeric")
        return v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v):
        return normalize_language(v) if v else None


class PhoneLogin(BaseModel):
    phone: str = Field(..., min_length=1, max_length=32)


class ClientCreate(BaseModel):
    firstName: str = Field(..., min_length=1, max_length=255)
    lastName: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)


class ClientResponse(BaseModel):
    id: int
    telegramId: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    language: str
    hasTelegram: bool
    createdAt: Optional[datetime] = None
    bookingsCount: int = 0
    ordersCount: int = 0


class ClientDetailsResponse(ClientResponse):
    bookings: list[BookingResponse] = []
    memberships: list[MembershipResponse] = []


class MergeResult(BaseModel):
    merged: int
    mergedPhones: list[str]
