"""Client repository - Database operations for club clients (users)"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_BOOKING_STATUSES, BarOrder, Booking, Slot, User, UserMembership


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.get(User, user_id)

    @staticmethod
    def get_by_telegram_id(db: Session, telegram_id: str) -> Optional[User]:
        return db.query(User).filter(User.telegram_id == telegram_id).first()

    @staticmethod
    def get_by_phone(db: Session, phone: str) -> Optional[User]:
        return db.query(User).filter(User.phone == phone).first()

    @staticmethod
    def add_user(db: Session, user: User) -> User:
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def list_clients(db: Session, search: Optional[str] = None) -> list[tuple[User, int, int]]:
        """Clients with their booking and bar order counts, newest first"""
        bookings_count = (
            db.query(func.count(Booking.id)).filter(Booking.user_id == User.id).scalar_subquery()
        )
        orders_count = (
            db.query(func.count(BarOrder.id)).filter(BarOrder.user_id == User.id).scalar_subquery()
        )
        query = db.query(User, bookings_count, orders_count)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                    User.username.ilike(pattern),
                    User.phone.ilike(pattern),
                )
            )
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    @staticmethod
    def recent_bookings(db: Session, user_id: int, limit: int = 10) -> list[Booking]:
        return (
            db.query(Booking)
            .options(joinedload(Booking.slot).joinedload(Slot.service))
            .filter(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def memberships(db: Session, user_id: int) -> list[UserMembership]:
        return (
            db.query(UserMembership)
            .options(joinedload(UserMembership.plan))
            .filter(UserMembership.user_id == user_id)
            .order_by(UserMembership.created_at.desc(), UserMembership.id.desc())
            .all()
        )

    @staticmethod
    def users_with_phone(db: Session) -> list[User]:
        return db.query(User).filter(User.phone.isnot(None)).order_by(User.id).all()

    @staticmethod
    def active_bookings(db: Session, user_ids: list[int]) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.user_id.in_(user_ids), Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .order_by(Booking.id)
            .all()
        )

    @staticmethod
    def reassign_records(db: Session, from_user_ids: list[int], to_user_id: int) -> dict:
        """Move bookings, bar orders and memberships to another user; does not commit"""
        moved = {}
        for name, model in (
            ("bookings", Booking),
            ("barOrders", BarOrder),
            ("memberships", UserMembership),
        ):
            moved[name] = (
                db.query(model)
                .filter(model.user_id.in_(from_user_ids))
                .update({model.user_id: to_user_id}, synchronize_session=False)
            )
        return moved

    @staticmethod
    def delete_users(db: Session, user_ids: list[int]) -> int:
        """Does not commit"""
        return (
            db.query(User).filter(User.id.in_(user_ids)).delete(synchronize_session=False)
        )
