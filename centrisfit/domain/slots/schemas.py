"""Slot domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import SLOT_ACTIVE, SLOT_CANCELLED
from ...shared.validators import parse_time_of_day


def _validate_time(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    parse_time_of_day(v)
    return v.strip()


class SlotCreate(BaseModel):
    """Schema for creating a single slot"""

    serviceId: int
    date: date
    startTime: str  # HH:MM
    endTime: str  # HH:MM
    specialist: Optional[str] = None
    capacity: int = Field(default=1, ge=1)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return _validate_time(v)

    @model_validator(mode="after")
    def validate_window(self):
        if parse_time_of_day(self.endTime) <= parse_time_of_day(self.startTime):
            raise ValueError("endTime must be after startTime")
        return self


class TimeSlotInput(BaseModel):
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return _validate_time(v)


class BulkSlotCreate(BaseModel):
    """
    Schema for bulk slot creation.

    Dates come either as an explicit ``dates`` list or as a
    ``dateFrom``/``dateTo`` range filtered by ``weekdays`` (0 = Monday).
    Time windows come either as explicit ``timeSlots`` or as a
    ``startTime``/``endTime`` range cut into ``slotDuration`` minute pieces.
    """

    serviceId: int
    dates: Optional[list[date]] = None
    dateFrom: Optional[date] = None
    dateTo: Optional[date] = None
    weekdays: Optional[list[int]] = None
    timeSlots: Optional[list[TimeSlotInput]] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    slotDuration: Optional[int] = Field(default=None, ge=5)
    specialist: Optional[str] = None
    capacity: int = Field(default=1, ge=1)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return _validate_time(v)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        if v is not None and any(day < 0 or day > 6 for day in v):
            raise ValueError("weekdays must be between 0 (Monday) and 6 (Sunday)")
        return v

    @model_validator(mode="after")
    def validate_sources(self):
        if self.dates is None and (self.dateFrom is None or self.dateTo is None):
            raise ValueError("Provide either dates or dateFrom and dateTo")
        if self.timeSlots is None and (
            self.startTime is None or self.endTime is None or self.slotDuration is None
        ):
            raise ValueError("Provide either timeSlots or startTime, endTime and slotDuration")
        return self


class SlotUpdate(BaseModel):
    """Schema for updating a slot; service and time are fixed once created"""

    specialist: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in (SLOT_ACTIVE, SLOT_CANCELLED):
            raise ValueError(f"status must be {SLOT_ACTIVE} or {SLOT_CANCELLED}")
        return v


class SlotResponse(BaseModel):
    id: int
    serviceId: int
    serviceName: Optional[str] = None
    date: date
    startTime: str
    endTime: str
    specialist: Optional[str] = None
    capacity: int
    bookedCount: int
    availablePlaces: int
    status: str


class BulkSlotResult(BaseModel):
    created: int
