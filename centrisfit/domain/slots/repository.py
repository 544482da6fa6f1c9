"""Slot repository - Database operations for slots and their booking counters"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_BOOKING_STATUSES, SLOT_ACTIVE, Booking, Slot


class SlotRepository:
    """Repository for slot database operations"""

    @staticmethod
    def get_slot(db: Session, slot_id: int) -> Optional[Slot]:
        return db.get(Slot, slot_id)

    @staticmethod
    def list_slots(
        db: Session, day: Optional[date] = None, service_id: Optional[int] = None
    ) -> list[Slot]:
        query = db.query(Slot).options(joinedload(Slot.service))
        if day:
            query = query.filter(Slot.date == day)
        if service_id:
            query = query.filter(Slot.service_id == service_id)
        return query.order_by(Slot.date, Slot.start_time).all()

    @staticmethod
    def list_available_slots(db: Session, service_id: int, day: date) -> list[Slot]:
        """Active slots of the day that still have free places"""
        return (
            db.query(Slot)
            .options(joinedload(Slot.service))
            .filter(
                Slot.service_id == service_id,
                Slot.date == day,
                Slot.status == SLOT_ACTIVE,
                Slot.booked_count < Slot.capacity,
            )
            .order_by(Slot.start_time)
            .all()
        )

    @staticmethod
    def add_slot(db: Session, slot: Slot) -> Slot:
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    @staticmethod
    def add_slots(db: Session, rows: list[dict]) -> int:
        """Insert a batch in one transaction; either every row lands or none"""
        db.bulk_insert_mappings(Slot, rows)
        db.commit()
        return len(rows)

    @staticmethod
    def delete_slot(db: Session, slot: Slot) -> None:
        db.delete(slot)
        db.commit()

    @staticmethod
    def count_active_bookings(db: Session, slot_id: int) -> int:
        return (
            db.query(Booking)
            .filter(Booking.slot_id == slot_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .count()
        )

    @staticmethod
    def has_bookings(db: Session, slot_id: int) -> bool:
        return db.query(Booking.id).filter(Booking.slot_id == slot_id).first() is not None

    # Counter updates. Both are single conditional UPDATE statements so that
    # concurrent requests serialize on the row and the bounds hold without
    # a read-modify-write in Python. Neither commits.

    @staticmethod
    def try_increment_booked(db: Session, slot_id: int) -> bool:
        """Take one place; False when the slot is full or no longer active"""
        updated = (
            db.query(Slot)
            .filter(
                Slot.id == slot_id,
                Slot.status == SLOT_ACTIVE,
                Slot.booked_count < Slot.capacity,
            )
            .update({Slot.booked_count: Slot.booked_count + 1}, synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def release_place(db: Session, slot_id: int) -> bool:
        """Give one place back; never drops below zero"""
        updated = (
            db.query(Slot)
            .filter(Slot.id == slot_id, Slot.booked_count > 0)
            .update({Slot.booked_count: Slot.booked_count - 1}, synchronize_session=False)
        )
        return updated == 1
