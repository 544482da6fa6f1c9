"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class BookingCreate(BaseModel):
    slotId: int
    comment: Optional[str] = Field(None, max_length=1000)
    useMembership: bool = True


class BookingCancel(BaseModel):
    """Optional body for staff cancellations; the reason is sent to the client"""

    reason: Optional[str] = Field(None, max_length=500)


class FeedbackCreate(BaseModel):
    bookingId: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v):
        if v is None:
            return v
        return v.strip() or None


class FeedbackResponse(BaseModel):
    id: int
    bookingId: int
    rating: int
    comment: Optional[str] = None
    createdAt: Optional[datetime] = None


class BookingSlotInfo(BaseModel):
    id: int
    serviceId: int
    serviceName: str
    date: date
    startTime: str
    endTime: str
    specialist: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    userId: int
    userName: Optional[str] = None
    userPhone: Optional[str] = None
    slot: BookingSlotInfo
    status: str
    isMembership: bool
    membershipId: Optional[int] = None
    comment: Optional[str] = None
    createdAt: Optional[datetime] = None
    hasFeedback: bool = False


class PendingCounts(BaseModel):
    pendingBookings: int
    pendingOrders: int


class FeedbackAdminResponse(BaseModel):
    """Feedback row for the staff list, with the session it rates"""

    id: int
    bookingId: int
    rating: int
    comment: Optional[str] = None
    createdAt: Optional[datetime] = None
    userId: int
    userName: Optional[str] = None
    userPhone: Optional[str] = None
    serviceName: str
    slotDate: date
    startTime: str


class DayCount(BaseModel):
    date: date
    count: int


class ServiceCount(BaseModel):
    serviceName: str
    count: int


class DashboardStats(BaseModel):
    totalUsers: int
    totalBookings: int
    totalOrders: int
    todayBookings: int
    todayOrders: int
    revenue: float  # bar orders this month
    usersWithMemberships: int
    activeMemberships: int  # ACTIVE and FROZEN
    completedVisits: int
    todayVisits: int
    bookingsByDay: list[DayCount]
    bookingsByService: list[ServiceCount]
