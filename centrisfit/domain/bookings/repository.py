"""Booking repository - Database operations for bookings and session feedback"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import (
    BAR_ORDER_PENDING,
    BOOKING_COMPLETED,
    BOOKING_PENDING,
    CURRENT_MEMBERSHIP_STATUSES,
    BarOrder,
    Booking,
    Service,
    SessionFeedback,
    Slot,
    User,
    UserMembership,
)


def _with_details(query):
    return query.options(
        joinedload(Booking.slot).joinedload(Slot.service),
        joinedload(Booking.user),
        joinedload(Booking.feedback),
    )


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: int, user_id: Optional[int] = None) -> Optional[Booking]:
        """Booking by id; with ``user_id`` only if it belongs to that user"""
        query = _with_details(db.query(Booking)).filter(Booking.id == booking_id)
        if user_id is not None:
            query = query.filter(Booking.user_id == user_id)
        return query.first()

    @staticmethod
    def list_user_bookings(db: Session, user_id: int) -> list[Booking]:
        return (
            _with_details(db.query(Booking))
            .filter(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .all()
        )

    @staticmethod
    def list_bookings(
        db: Session, status: Optional[str] = None, day: Optional[date] = None
    ) -> list[Booking]:
        query = _with_details(db.query(Booking))
        if status:
            query = query.filter(Booking.status == status)
        if day:
            start = datetime.combine(day, time.min)
            query = query.filter(
                Booking.created_at >= start, Booking.created_at < start + timedelta(days=1)
            )
        return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    @staticmethod
    def add_booking(db: Session, booking: Booking) -> Booking:
        """Stage a booking and flush it so constraint violations surface now"""
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def transition_status(
        db: Session, booking_id: int, from_statuses: tuple, to_status: str
    ) -> bool:
        """Conditional status change; False when the booking was not in ``from_statuses``"""
        updated = (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.status.in_(from_statuses))
            .update({Booking.status: to_status}, synchronize_session="fetch")
        )
        return updated == 1

    @staticmethod
    def count_pending(db: Session) -> tuple[int, int]:
        bookings = db.query(Booking).filter(Booking.status == BOOKING_PENDING).count()
        orders = db.query(BarOrder).filter(BarOrder.status == BAR_ORDER_PENDING).count()
        return bookings, orders

    @staticmethod
    def add_feedback(db: Session, feedback: SessionFeedback) -> SessionFeedback:
        db.add(feedback)
        db.commit()
        db.refresh(feedback)
        return feedback


    @staticmethod
    def list_feedbacks(db: Session) -> list[SessionFeedback]:
        return (
            db.query(SessionFeedback)
            .options(
                joinedload(SessionFeedback.booking).joinedload(Booking.user),
                joinedload(SessionFeedback.booking)
                .joinedload(Booking.slot)
                .joinedload(Slot.service),
            )
            .order_by(SessionFeedback.created_at.desc(), SessionFeedback.id.desc())
            .all()
        )

    # ------------------------------------------------------------------ stats

    @staticmethod
    def get_dashboard_stats(db: Session, day_start: datetime, month_start: datetime) -> dict:
        """Counters for the admin dashboard"""
        total_users = db.query(func.count(User.id)).scalar()
        total_bookings = db.query(func.count(Booking.id)).scalar()
        total_orders = db.query(func.count(BarOrder.id)).scalar()

        today_bookings = (
            db.query(func.count(Booking.id)).filter(Booking.created_at >= day_start).scalar()
        )
        today_orders = (
            db.query(func.count(BarOrder.id)).filter(BarOrder.created_at >= day_start).scalar()
        )
        month_revenue = (
            db.query(func.sum(BarOrder.total)).filter(BarOrder.created_at >= month_start).scalar()
            or 0
        )

        users_with_memberships = (
            db.query(func.count(func.distinct(UserMembership.user_id))).scalar()
        )
        active_memberships = (
            db.query(func.count(UserMembership.id))
            .filter(UserMembership.status.in_(CURRENT_MEMBERSHIP_STATUSES))
            .scalar()
        )

        completed_visits = (
            db.query(func.count(Booking.id))
            .filter(Booking.status == BOOKING_COMPLETED)
            .scalar()
        )
        today_visits = (
            db.query(func.count(Booking.id))
            .join(Slot, Booking.slot_id == Slot.id)
            .filter(Booking.status == BOOKING_COMPLETED, Slot.date == day_start.date())
            .scalar()
        )

        return {
            "totalUsers": total_users,
            "totalBookings": total_bookings,
            "totalOrders": total_orders,
            "todayBookings": today_bookings,
            "todayOrders": today_orders,
            "revenue": float(month_revenue),
            "usersWithMemberships": users_with_memberships,
            "activeMemberships": active_memberships,
            "completedVisits": completed_visits,
            "todayVisits": today_visits,
        }

    @staticmethod
    def count_bookings_by_day(db: Session, start: datetime, days: int) -> list[tuple[date, int]]:
        """Bookings created per day for ``days`` days from ``start``, empty days included"""
        created = (
            db.query(Booking.created_at)
            .filter(Booking.created_at >= start, Booking.created_at < start + timedelta(days=days))
            .all()
        )
        counts = {}
        for (created_at,) in created:
            counts[created_at.date()] = counts.get(created_at.date(), 0) + 1
        first = start.date()
        return [
            (first + timedelta(days=offset), counts.get(first + timedelta(days=offset), 0))
            for offset in range(days)
        ]

    @staticmethod
    def count_bookings_by_service(db: Session, since: datetime) -> list[tuple[dict, int]]:
        """Bookings per service created since ``since``, busiest first"""
        rows = (
            db.query(Service.name_ru, Service.name_uz, func.count(Booking.id).label("total"))
            .join(Slot, Slot.service_id == Service.id)
            .join(Booking, Booking.slot_id == Slot.id)
            .filter(Booking.created_at >= since)
            .group_by(Service.id, Service.name_ru, Service.name_uz)
            .order_by(func.count(Booking.id).desc(), Service.id)
            .all()
        )
        return [({"ru": name_ru, "uz": name_uz}, total) for name_ru, name_uz, total in rows]
