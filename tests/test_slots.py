from datetime import date, datetime

import pytest
from pydantic import ValidationError

from centrisfit.domain.slots.schemas import BulkSlotCreate, SlotCreate, SlotUpdate
from centrisfit.domain.slots.service import SlotService
from centrisfit.models import (
    BOOKING_CANCELLED_BY_USER,
    BOOKING_CONFIRMED,
    SLOT_ACTIVE,
    SLOT_CANCELLED,
    Slot,
)
from centrisfit.shared.exceptions import (
    InvalidCapacity,
    ServiceNotFound,
    SlotHasBookings,
    SlotNotFound,
)

from .conftest import TOMORROW


def test_create_slot(db, factory):
    service = factory.service()

    slot = SlotService(db).create_slot(
        SlotCreate(serviceId=service.id, date=TOMORROW, startTime="18:00", endTime="19:30")
    )

    assert slot.capacity == 1
    assert slot.booked_count == 0
    assert slot.start_time == datetime(2026, 3, 3, 18, 0)
    assert slot.end_time == datetime(2026, 3, 3, 19, 30)


def test_create_slot_unknown_service(db):
    with pytest.raises(ServiceNotFound):
        SlotService(db).create_slot(
            SlotCreate(serviceId=999, date=TOMORROW, startTime="18:00", endTime="19:00")
        )


def test_slot_schema_rejects_backwards_window():
    with pytest.raises(ValidationError):
        SlotCreate(serviceId=1, date=TOMORROW, startTime="19:00", endTime="18:00")
    with pytest.raises(ValidationError):
        SlotCreate(serviceId=1, date=TOMORROW, startTime="18:00", endTime="19:00", capacity=0)


def test_bulk_slots_from_explicit_dates_and_windows(db, factory):
    service = factory.service()
    data = BulkSlotCreate(
        serviceId=service.id,
        dates=[date(2026, 3, 4), date(2026, 3, 3), date(2026, 3, 3)],
        timeSlots=[
            {"startTime": "09:00", "endTime": "10:00"},
            {"startTime": "18:00", "endTime": "19:00"},
        ],
        capacity=12,
    )

    created = SlotService(db).create_bulk_slots(data)

    assert created == 4
    slots = db.query(Slot).order_by(Slot.start_time).all()
    assert [(s.date.day, s.start_time.hour) for s in slots] == [(3, 9), (3, 18), (4, 9), (4, 18)]
    assert all(s.capacity == 12 and s.booked_count == 0 for s in slots)


def test_bulk_slots_from_range_and_duration(db, factory):
    service = factory.service()
    data = BulkSlotCreate(
        serviceId=service.id,
        dateFrom=date(2026, 3, 2),
        dateTo=date(2026, 3, 8),
        weekdays=[0, 2],
        startTime="08:00",
        endTime="11:00",
        slotDuration=60,
    )

    assert SlotService(db).create_bulk_slots(data) == 6
    assert {s.date for s in db.query(Slot).all()} == {date(2026, 3, 2), date(2026, 3, 4)}


def test_bulk_slots_without_matching_dates_creates_nothing(db, factory):
    service = factory.service()
    data = BulkSlotCreate(
        serviceId=service.id,
        dateFrom=date(2026, 3, 2),
        dateTo=date(2026, 3, 3),
        weekdays=[6],
        startTime="08:00",
        endTime="11:00",
        slotDuration=60,
    )

    assert SlotService(db).create_bulk_slots(data) == 0
    assert db.query(Slot).count() == 0


def test_bulk_slots_with_backwards_range_is_rejected(db, factory):
    service = factory.service()
    data = BulkSlotCreate(
        serviceId=service.id,
        dates=[TOMORROW],
        startTime="11:00",
        endTime="08:00",
        slotDuration=60,
    )

    with pytest.raises(ValueError):
        SlotService(db).create_bulk_slots(data)
    assert db.query(Slot).count() == 0


def test_bulk_schema_needs_a_date_source():
    with pytest.raises(ValidationError):
        BulkSlotCreate(serviceId=1, timeSlots=[{"startTime": "09:00", "endTime": "10:00"}])
    with pytest.raises(ValidationError):
        BulkSlotCreate(serviceId=1, dates=[TOMORROW], weekdays=[7], startTime="09:00")


def test_update_slot_capacity_cannot_drop_below_booked(db, factory):
    slot = factory.slot(capacity=5, booked_count=3)
    service = SlotService(db)

    with pytest.raises(InvalidCapacity):
        service.update_slot(slot.id, SlotUpdate(capacity=2))

    updated = service.update_slot(slot.id, SlotUpdate(capacity=3, specialist="Dilnoza"))
    assert updated.capacity == 3
    assert updated.specialist == "Dilnoza"


def test_update_slot_status(db, factory):
    slot = factory.slot()
    updated = SlotService(db).update_slot(slot.id, SlotUpdate(status=SLOT_CANCELLED))
    assert updated.status == SLOT_CANCELLED


def test_slot_with_active_bookings_cannot_be_cancelled(db, factory):
    slot = factory.slot(booked_count=1)
    factory.booking(factory.user(), slot, status=BOOKING_CONFIRMED)

    with pytest.raises(SlotHasBookings):
        SlotService(db).update_slot(slot.id, SlotUpdate(status=SLOT_CANCELLED))

    db.expire_all()
    assert db.get(Slot, slot.id).status == SLOT_ACTIVE


def test_update_missing_slot(db):
    with pytest.raises(SlotNotFound):
        SlotService(db).update_slot(404, SlotUpdate(capacity=2))


def test_delete_slot_refused_with_active_bookings(db, factory):
    slot = factory.slot(booked_count=1)
    factory.booking(factory.user(), slot, status=BOOKING_CONFIRMED)

    with pytest.raises(SlotHasBookings):
        SlotService(db).delete_slot(slot.id)
    assert db.get(Slot, slot.id) is not None


def test_delete_slot_with_history_is_retired(db, factory):
    slot = factory.slot()
    factory.booking(factory.user(), slot, status=BOOKING_CANCELLED_BY_USER)

    result = SlotService(db).delete_slot(slot.id)

    assert result == {"message": "Slot cancelled"}
    db.expire_all()
    assert db.get(Slot, slot.id).status == SLOT_CANCELLED


def test_delete_unused_slot(db, factory):
    slot = factory.slot()
    slot_id = slot.id

    assert SlotService(db).delete_slot(slot_id) == {"message": "Slot deleted"}
    db.expire_all()
    assert db.get(Slot, slot_id) is None


def test_list_available_slots_skips_full_and_cancelled(db, factory):
    service = factory.service()
    open_slot = factory.slot(service, start="09:00", end="10:00", capacity=2, booked_count=1)
    factory.slot(service, start="10:00", end="11:00", capacity=1, booked_count=1)
    factory.slot(service, start="11:00", end="12:00", status=SLOT_CANCELLED)
    late_slot = factory.slot(service, start="19:00", end="20:00")
    factory.slot(service, day=date(2026, 3, 4))

    available = SlotService(db).list_available_slots(service.id, TOMORROW)

    assert [s.id for s in available] == [open_slot.id, late_slot.id]
