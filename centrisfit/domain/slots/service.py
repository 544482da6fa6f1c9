"""Slot service - Business logic for schedule management"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import SLOT_ACTIVE, SLOT_CANCELLED, Slot
from ...shared.exceptions import (
    InvalidCapacity,
    ServiceNotFound,
    SlotHasBookings,
    SlotNotFound,
)
from ...shared.localization import localize
from ...shared.validators import combine, format_time_of_day
from ..catalog.repository import CatalogRepository
from .repository import SlotRepository
from .schedule import expand_dates, expand_slots, parse_window, split_time_range
from .schemas import BulkSlotCreate, SlotCreate, SlotResponse, SlotUpdate

logger = logging.getLogger(__name__)


def slot_to_response(slot: Slot, language: str = "ru") -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        serviceId=slot.service_id,
        serviceName=localize(slot.service.names, language) if slot.service else None,
        date=slot.date,
        startTime=format_time_of_day(slot.start_time.time()),
        endTime=format_time_of_day(slot.end_time.time()),
        specialist=slot.specialist,
        capacity=slot.capacity,
        bookedCount=slot.booked_count,
        availablePlaces=max(slot.capacity - slot.booked_count, 0),
        status=slot.status,
    )


class SlotService:
    """Service layer for slot business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SlotRepository()
        self.catalog = CatalogRepository()

    def _require_service(self, service_id: int) -> None:
        if not self.catalog.service_exists(self.db, service_id):
            raise ServiceNotFound()

    def get_slot(self, slot_id: int) -> Slot:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise SlotNotFound()
        return slot

    def list_slots(self, day: Optional[date] = None, service_id: Optional[int] = None) -> list[Slot]:
        return self.repo.list_slots(self.db, day, service_id)

    def list_available_slots(self, service_id: int, day: date) -> list[Slot]:
        return self.repo.list_available_slots(self.db, service_id, day)

    def create_slot(self, data: SlotCreate) -> Slot:
        """Create one slot; time window validation already happened in the schema"""
        self._require_service(data.serviceId)

        slot = Slot(
            service_id=data.serviceId,
            date=data.date,
            start_time=combine(data.date, data.startTime),
            end_time=combine(data.date, data.endTime),
            specialist=data.specialist,
            capacity=data.capacity,
            booked_count=0,
            status=SLOT_ACTIVE,
        )
        slot = self.repo.add_slot(self.db, slot)
        logger.info(f"📅 Slot {slot.id} created for service {data.serviceId} on {data.date}")
        return slot

    def create_bulk_slots(self, data: BulkSlotCreate) -> int:
        """
        Expand a schedule into slots and insert them as one batch.

        Raises ValueError for malformed time ranges; the router turns that
        into a 422 like any other validation failure.
        """
        self._require_service(data.serviceId)

        if data.dates is not None:
            dates = sorted(set(data.dates))
        else:
            weekdays = data.weekdays if data.weekdays is not None else range(7)
            dates = expand_dates(data.dateFrom, data.dateTo, weekdays)

        if data.timeSlots is not None:
            windows = [parse_window(ts.startTime, ts.endTime) for ts in data.timeSlots]
        else:
            parse_window(data.startTime, data.endTime)
            windows = split_time_range(data.startTime, data.endTime, data.slotDuration)

        rows = [
            {
                "service_id": data.serviceId,
                "date": day,
                "start_time": datetime.combine(day, window.start),
                "end_time": datetime.combine(day, window.end),
                "specialist": data.specialist,
                "capacity": data.capacity,
                "booked_count": 0,
                "status": SLOT_ACTIVE,
            }
            for day, window in expand_slots(dates, windows)
        ]
        if not rows:
            logger.info(f"ℹ️ Bulk slot request for service {data.serviceId} produced no slots")
            return 0

        created = self.repo.add_slots(self.db, rows)
        logger.info(f"📅 Created {created} slots for service {data.serviceId}")
        return created

    def update_slot(self, slot_id: int, data: SlotUpdate) -> Slot:
        slot = self.get_slot(slot_id)

        if data.capacity is not None and data.capacity < slot.booked_count:
            raise InvalidCapacity(
                f"Capacity {data.capacity} is lower than {slot.booked_count} booked places"
            )
        # Cancelling a slot would strand its active bookings
        if data.status == SLOT_CANCELLED and slot.status != SLOT_CANCELLED:
            active = self.repo.count_active_bookings(self.db, slot_id)
            if active:
                raise SlotHasBookings(f"Slot has {active} active bookings")

        if data.capacity is not None:
            slot.capacity = data.capacity
        if "specialist" in data.model_fields_set:
            slot.specialist = data.specialist
        if data.status is not None:
            slot.status = data.status

        self.db.commit()
        self.db.refresh(slot)
        return slot

    def delete_slot(self, slot_id: int) -> dict:
        slot = self.get_slot(slot_id)
        active = self.repo.count_active_bookings(self.db, slot_id)
        if active:
            raise SlotHasBookings(f"Slot has {active} active bookings")

        # Past bookings keep pointing at the slot, so it is retired instead
        if self.repo.has_bookings(self.db, slot_id):
            slot.status = SLOT_CANCELLED
            self.db.commit()
            logger.info(f"📅 Slot {slot_id} has booking history, marked as cancelled")
            return {"message": "Slot cancelled"}

        self.repo.delete_slot(self.db, slot)
        logger.info(f"🗑️ Slot {slot_id} deleted")
        return {"message": "Slot deleted"}
