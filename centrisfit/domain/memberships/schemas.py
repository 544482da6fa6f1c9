"""Membership domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import (
    MEMBERSHIP_CANCELLED,
    PAYMENT_OFFLINE,
    PAYMENT_ONLINE,
    PLAN_UNLIMITED,
    PLAN_VISITS,
)

PLAN_TYPES = (PLAN_UNLIMITED, PLAN_VISITS)
PAYMENT_TYPES = (PAYMENT_OFFLINE, PAYMENT_ONLINE)


def _validate_payment_type(v: str) -> str:
    v = (v or "").upper()
    if v not in PAYMENT_TYPES:
        raise ValueError(f"paymentType must be one of {', '.join(PAYMENT_TYPES)}")
    return v


# ============================================================================
# PLANS
# ============================================================================


class PlanCreate(BaseModel):
    nameRu: str = Field(..., min_length=1, max_length=255)
    nameUz: Optional[str] = Field(None, max_length=255)
    type: str
    durationDays: int = Field(..., ge=1)
    totalVisits: Optional[int] = Field(None, ge=1)
    maxFreezeDays: int = Field(0, ge=0)
    price: float = Field(..., ge=0)
    isActive: bool = True
    sortOrder: int = 0
    serviceIds: list[int] = []

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        v = (v or "").upper()
        if v not in PLAN_TYPES:
            raise ValueError(f"type must be one of {', '.join(PLAN_TYPES)}")
        return v

    @model_validator(mode="after")
    def validate_visits(self):
        if self.type == PLAN_VISITS and self.totalVisits is None:
            raise ValueError("totalVisits is required for VISITS plans")
        if self.type == PLAN_UNLIMITED and self.totalVisits is not None:
            raise ValueError("totalVisits must be empty for UNLIMITED plans")
        return self


class PlanUpdate(BaseModel):
    """Partial update; the type/visits combination is checked against the stored plan"""

    nameRu: Optional[str] = Field(None, min_length=1, max_length=255)
    nameUz: Optional[str] = Field(None, max_length=255)
    type: Optional[str] = None
    durationDays: Optional[int] = Field(None, ge=1)
    totalVisits: Optional[int] = Field(None, ge=1)
    maxFreezeDays: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    isActive: Optional[bool] = None
    sortOrder: Optional[int] = None
    serviceIds: Optional[list[int]] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v is None:
            return v
        v = v.upper()
        if v not in PLAN_TYPES:
            raise ValueError(f"type must be one of {', '.join(PLAN_TYPES)}")
        return v


class IncludedService(BaseModel):
    id: int
    name: str


class PlanResponse(BaseModel):
    """Plan as shown to clients, names resolved to one language"""

    id: int
    name: str
    type: str
    durationDays: int
    totalVisits: Optional[int] = None
    maxFreezeDays: int
    price: float
    includedServices: list[IncludedService]


class PlanAdminResponse(BaseModel):
    id: int
    nameRu: str
    nameUz: Optional[str] = None
    type: str
    durationDays: int
    totalVisits: Optional[int] = None
    maxFreezeDays: int
    price: float
    isActive: bool
    sortOrder: int
    serviceIds: list[int]


# ============================================================================
# MEMBERSHIPS
# ============================================================================


class PurchaseRequest(BaseModel):
    planId: int
    paymentType: str = PAYMENT_OFFLINE

    @field_validator("paymentType")
    @classmethod
    def validate_payment_type(cls, v):
        return _validate_payment_type(v)


class AssignMembershipRequest(PurchaseRequest):
    userId: int


class MembershipStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = (v or "").upper()
        if v != MEMBERSHIP_CANCELLED:
            raise ValueError(f"Only {MEMBERSHIP_CANCELLED} can be set manually")
        return v


class MembershipPlanSummary(BaseModel):
    id: int
    name: str
    type: str
    durationDays: int
    totalVisits: Optional[int] = None
    maxFreezeDays: int


class FreezeResponse(BaseModel):
    id: int
    freezeStart: datetime
    freezeEnd: Optional[datetime] = None
    daysFrozen: Optional[int] = None


class MembershipResponse(BaseModel):
    id: int
    userId: int
    userName: Optional[str] = None
    plan: MembershipPlanSummary
    startDate: datetime
    endDate: datetime
    remainingVisits: Optional[int] = None
    usedFreezeDays: int
    status: str
    isFrozen: bool
    paymentType: str
    currentFreeze: Optional[FreezeResponse] = None
    includedServiceIds: list[int] = []


class UnfreezeResponse(BaseModel):
    message: str
    daysFrozen: int
    newEndDate: datetime
    membership: MembershipResponse


class CoverageResponse(BaseModel):
    isCovered: bool
    membershipId: Optional[int] = None
    planType: Optional[str] = None
    remainingVisits: Optional[int] = None
