"""Booking service - Business logic for the booking lifecycle"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_CANCELLED_BY_ADMIN,
    BOOKING_CANCELLED_BY_USER,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    PLAN_VISITS,
    SLOT_ACTIVE,
    Booking,
    SessionFeedback,
)
from ...services.notification_service import NotificationService
from ...shared.clock import Clock, utcnow
from ...shared.exceptions import (
    BookingNotFound,
    CapacityExceeded,
    DomainError,
    DuplicateBooking,
    FeedbackAlreadyExists,
    FeedbackNotAllowed,
    InvalidStatusTransition,
    NotCancellable,
    SlotNotAvailable,
    SlotNotFound,
)
from ...shared.localization import localize
from ...shared.validators import format_time_of_day
from ..memberships.service import NOT_COVERED, MembershipService
from ..slots.repository import SlotRepository
from .repository import BookingRepository
from .schemas import (
    BookingResponse,
    BookingSlotInfo,
    DashboardStats,
    DayCount,
    FeedbackAdminResponse,
    PendingCounts,
    ServiceCount,
)

logger = logging.getLogger(__name__)

ACTOR_USER = "user"
ACTOR_ADMIN = "admin"

# Days covered by the bookings-per-day chart, today included
STATS_DAYS = 7


def booking_to_response(booking: Booking, language: str = "ru") -> BookingResponse:
    slot = booking.slot
    return BookingResponse(
        id=booking.id,
        userId=booking.user_id,
        userName=booking.user.display_name if booking.user else None,
        userPhone=booking.user.phone if booking.user else None,
        slot=BookingSlotInfo(
            id=slot.id,
            serviceId=slot.service_id,
            serviceName=localize(slot.service.names, language),
            date=slot.date,
            startTime=format_time_of_day(slot.start_time.time()),
            endTime=format_time_of_day(slot.end_time.time()),
            specialist=slot.specialist,
        ),
        status=booking.status,
        isMembership=booking.is_membership,
        membershipId=booking.membership_id,
        comment=booking.comment,
        createdAt=booking.created_at,
        hasFeedback=booking.feedback is not None,
    )


def feedback_to_admin_response(feedback: SessionFeedback) -> FeedbackAdminResponse:
    booking = feedback.booking
    slot = booking.slot
    return FeedbackAdminResponse(
        id=feedback.id,
        bookingId=booking.id,
        rating=feedback.rating,
        comment=feedback.comment,
        createdAt=feedback.created_at,
        userId=booking.user_id,
        userName=booking.user.display_name,
        userPhone=booking.user.phone,
        serviceName=localize(slot.service.names, "ru"),
        slotDate=slot.date,
        startTime=format_time_of_day(slot.start_time.time()),
    )


class BookingService:
    """Service layer for booking business logic"""

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.repo = BookingRepository()
        self.slots = SlotRepository()
        self.clock = clock
        self.notifications = notifications or NotificationService(db)
        self.memberships = MembershipService(db, clock=clock, notifications=self.notifications)

    def get_booking(self, booking_id: int, user_id: Optional[int] = None) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id, user_id)
        if not booking:
            raise BookingNotFound()
        return booking

    def create_booking(
        self,
        user_id: int,
        slot_id: int,
        comment: Optional[str] = None,
        use_membership: bool = True,
    ) -> Booking:
        """
        Book one place in a slot.

        The booking row, the slot counter and (for VISITS plans) the visit
        decrement are written in one transaction. The slot counter is taken
        with a conditional UPDATE, so of two requests racing for the last
        place exactly one gets it and the other sees CapacityExceeded.
        """
        slot = self.slots.get_slot(self.db, slot_id)
        if not slot:
            raise SlotNotFound()
        if slot.status != SLOT_ACTIVE:
            raise SlotNotAvailable()
        if slot.is_full:
            raise CapacityExceeded()

        coverage = NOT_COVERED
        if use_membership:
            coverage = self.memberships.is_service_covered(user_id, slot.service_id)

        try:
            if not self.slots.try_increment_booked(self.db, slot_id):
                raise CapacityExceeded()

            is_membership = coverage.is_covered
            if is_membership and coverage.plan_type == PLAN_VISITS:
                if not self.memberships.repo.try_decrement_visit(self.db, coverage.membership_id):
                    # Last visit went to a concurrent booking; this one is paid normally
                    logger.warning(
                        f"⚠️ Membership {coverage.membership_id} ran out of visits while "
                        f"booking slot {slot_id}, booking without membership"
                    )
                    is_membership = False

            booking = Booking(
                user_id=user_id,
                slot_id=slot_id,
                status=BOOKING_PENDING,
                is_membership=is_membership,
                membership_id=coverage.membership_id if is_membership else None,
                comment=(comment or "").strip() or None,
                created_at=self.clock(),
            )
            self.repo.add_booking(self.db, booking)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info(f"ℹ️ Duplicate booking rejected for user {user_id}, slot {slot_id}: {e.orig}")
            raise DuplicateBooking()
        except DomainError:
            self.db.rollback()
            raise

        booking = self.get_booking(booking.id)
        logger.info(
            f"✅ Booking {booking.id} created: user {user_id}, slot {slot_id}, "
            f"membership={booking.is_membership}"
        )
        self.notifications.booking_created(booking)
        return booking

    def cancel_booking(
        self,
        booking_id: int,
        actor: str = ACTOR_USER,
        user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Cancel an active booking and give its place back to the slot.

        Clients can only cancel their own bookings; a visit already taken
        from a membership is not returned.
        """
        if actor == ACTOR_USER:
            booking = self.get_booking(booking_id, user_id)
            new_status = BOOKING_CANCELLED_BY_USER
        else:
            booking = self.get_booking(booking_id)
            new_status = BOOKING_CANCELLED_BY_ADMIN

        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise NotCancellable()

        if not self.repo.transition_status(
            self.db, booking_id, ACTIVE_BOOKING_STATUSES, new_status
        ):
            self.db.rollback()
            raise NotCancellable()
        if not self.slots.release_place(self.db, booking.slot_id):
            logger.warning(f"⚠️ Slot {booking.slot_id} counter already at zero on cancel")
        self.db.commit()

        booking = self.get_booking(booking_id)
        logger.info(f"🚫 Booking {booking_id} cancelled by {actor}")

        if actor == ACTOR_ADMIN:
            self.notifications.booking_cancelled(booking, reason)
        return booking

    def confirm_booking(self, booking_id: int) -> Booking:
        """PENDING -> CONFIRMED; confirming twice is harmless"""
        booking = self.get_booking(booking_id)
        if booking.status == BOOKING_CONFIRMED:
            return booking
        if not self.repo.transition_status(
            self.db, booking_id, (BOOKING_PENDING,), BOOKING_CONFIRMED
        ):
            self.db.rollback()
            raise InvalidStatusTransition(f"Cannot confirm a booking in status {booking.status}")
        self.db.commit()

        booking = self.get_booking(booking_id)
        logger.info(f"✅ Booking {booking_id} confirmed")
        self.notifications.booking_confirmed(booking)
        return booking

    def complete_booking(self, booking_id: int) -> Booking:
        """CONFIRMED -> COMPLETED, after the client attended"""
        booking = self.get_booking(booking_id)
        if not self.repo.transition_status(
            self.db, booking_id, (BOOKING_CONFIRMED,), BOOKING_COMPLETED
        ):
            self.db.rollback()
            raise InvalidStatusTransition(f"Cannot complete a booking in status {booking.status}")
        self.db.commit()
        logger.info(f"🏁 Booking {booking_id} completed")
        return self.get_booking(booking_id)

    def list_user_bookings(self, user_id: int) -> list[Booking]:
        return self.repo.list_user_bookings(self.db, user_id)

    def list_bookings(self, status: Optional[str] = None, day: Optional[date] = None) -> list[Booking]:
        return self.repo.list_bookings(self.db, status, day)

    def pending_counts(self) -> PendingCounts:
        bookings, orders = self.repo.count_pending(self.db)
        return PendingCounts(pendingBookings=bookings, pendingOrders=orders)

    def create_feedback(
        self, user_id: int, booking_id: int, rating: int, comment: Optional[str] = None
    ) -> SessionFeedback:
        """Rate a completed session; one feedback per booking"""
        booking = self.get_booking(booking_id, user_id)
        if booking.status != BOOKING_COMPLETED:
            raise FeedbackNotAllowed()
        if booking.feedback is not None:
            raise FeedbackAlreadyExists()

        feedback = SessionFeedback(booking_id=booking_id, rating=rating, comment=comment)
        try:
            feedback = self.repo.add_feedback(self.db, feedback)
        except IntegrityError:
            self.db.rollback()
            raise FeedbackAlreadyExists()

        logger.info(f"⭐ Feedback {feedback.id} ({rating}/5) left for booking {booking_id}")
        self.notifications.feedback_created(feedback)
        return feedback

    def list_feedbacks(self) -> list[SessionFeedback]:
        return self.repo.list_feedbacks(self.db)

    def dashboard_stats(self) -> DashboardStats:
        """Club totals plus today's and this month's activity, by the club clock"""
        self.memberships.expire_stale_memberships()
        now = self.clock()
        day_start = datetime.combine(now.date(), time.min)
        month_start = day_start.replace(day=1)
        stats = self.repo.get_dashboard_stats(self.db, day_start, month_start)
        stats["bookingsByDay"] = [
            DayCount(date=day, count=count)
            for day, count in self.repo.count_bookings_by_day(
                self.db, day_start - timedelta(days=STATS_DAYS - 1), STATS_DAYS
            )
        ]
        stats["bookingsByService"] = [
            ServiceCount(serviceName=localize(names, "ru"), count=count)
            for names, count in self.repo.count_bookings_by_service(self.db, month_start)
        ]
        return DashboardStats(**stats)
