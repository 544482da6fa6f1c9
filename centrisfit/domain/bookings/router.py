"""Booking router - FastAPI endpoints for bookings"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationService, get_notification_service
from .schemas import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    DashboardStats,
    FeedbackAdminResponse,
    FeedbackCreate,
    FeedbackResponse,
    PendingCounts,
)
from .service import (
    ACTOR_ADMIN,
    ACTOR_USER,
    BookingService,
    booking_to_response,
    feedback_to_admin_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])
admin_router = APIRouter(
    prefix="/admin", tags=["Admin: Bookings"], dependencies=[Depends(require_admin)]
)


def get_booking_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, notifications=notifications)


# ============================================================================
# CLIENT APP
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Book a place; isMembership tells whether the membership pays for it"""
    booking = service.create_booking(
        current_user.id, data.slotId, comment=data.comment, use_membership=data.useMembership
    )
    return booking_to_response(booking, current_user.language)


@router.get("", response_model=list[BookingResponse])
async def get_my_bookings(
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return [
        booking_to_response(b, current_user.language)
        for b in service.list_user_bookings(current_user.id)
    ]


@router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_my_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.cancel_booking(booking_id, actor=ACTOR_USER, user_id=current_user.id)
    return booking_to_response(booking, current_user.language)


@router.post("/feedback", response_model=FeedbackResponse, status_code=201)
async def create_feedback(
    data: FeedbackCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    feedback = service.create_feedback(current_user.id, data.bookingId, data.rating, data.comment)
    return FeedbackResponse(
        id=feedback.id,
        bookingId=feedback.booking_id,
        rating=feedback.rating,
        comment=feedback.comment,
        createdAt=feedback.created_at,
    )


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[str] = Query(None),
    day: Optional[date] = Query(None, alias="date"),
    service: BookingService = Depends(get_booking_service),
):
    return [booking_to_response(b) for b in service.list_bookings(status, day)]


@admin_router.get("/pending-counts", response_model=PendingCounts)
async def get_pending_counts(service: BookingService = Depends(get_booking_service)):
    """Badge counters for the dashboard"""
    return service.pending_counts()


@admin_router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(service: BookingService = Depends(get_booking_service)):
    """Totals and recent activity for the dashboard home page"""
    return service.dashboard_stats()


@admin_router.get("/feedbacks", response_model=list[FeedbackAdminResponse])
async def list_feedbacks(service: BookingService = Depends(get_booking_service)):
    return [feedback_to_admin_response(f) for f in service.list_feedbacks()]


@admin_router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return booking_to_response(service.confirm_booking(booking_id))


@admin_router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return booking_to_response(service.complete_booking(booking_id))


@admin_router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    data: Optional[BookingCancel] = Body(None),
    service: BookingService = Depends(get_booking_service),
):
    reason = data.reason if data else None
    return booking_to_response(service.cancel_booking(booking_id, actor=ACTOR_ADMIN, reason=reason))
