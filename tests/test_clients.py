from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from centrisfit.domain.clients.schemas import ClientCreate, TelegramLogin
from centrisfit.domain.clients.service import ClientService, keep_rank
from centrisfit.models import (
    BOOKING_CANCELLED_BY_ADMIN,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    MEMBERSHIP_EXPIRED,
    BarOrder,
    Booking,
    Slot,
    User,
    UserMembership,
)
from centrisfit.shared.exceptions import InvalidPhone, PhoneAlreadyUsed, UserNotFound


@pytest.fixture
def clients(db):
    return ClientService(db)


# ============================================================================
# IDENTITY
# ============================================================================


def test_telegram_login_creates_then_updates_profile(db, clients):
    created = clients.find_or_create_by_telegram(
        TelegramLogin(telegramId="555000111", firstName="Malika", username="malika", language="uz")
    )
    assert created.first_name == "Malika"
    assert created.language == "uz"

    updated = clients.find_or_create_by_telegram(
        TelegramLogin(telegramId="555000111", firstName="Malika B.")
    )

    assert updated.id == created.id
    assert updated.first_name == "Malika B."
    # Fields missing from the launch payload are kept
    assert updated.username == "malika"
    assert db.query(User).count() == 1


def test_telegram_login_rejects_non_numeric_id():
    with pytest.raises(ValueError):
        TelegramLogin(telegramId="manual-abc")


def test_phone_login_creates_placeholder_user(clients):
    user = clients.find_or_create_by_phone("+998 (90) 111-22-33")

    assert user.telegram_id == "phone-998901112233"
    assert user.phone == "998901112233"
    assert user.has_telegram_identity is False
    assert clients.find_or_create_by_phone("998901112233").id == user.id


def test_phone_login_finds_existing_client(factory, clients):
    existing = factory.user(phone="998907778899")
    assert clients.find_or_create_by_phone("+998 90 777 88 99").id == existing.id


def test_phone_login_rejects_empty_number(clients):
    with pytest.raises(InvalidPhone):
        clients.find_or_create_by_phone(" + - ")


def test_create_manual_client(clients):
    user = clients.create_manual_client(
        ClientCreate(firstName=" Dilshod ", lastName="", phone="+998 93 000-00-01")
    )

    assert user.telegram_id.startswith("manual-")
    assert user.first_name == "Dilshod"
    assert user.last_name is None
    assert user.phone == "998930000001"


def test_manual_client_phone_must_be_free(factory, clients):
    factory.user(phone="998930000001")
    with pytest.raises(PhoneAlreadyUsed):
        clients.create_manual_client(ClientCreate(firstName="Other", phone="998930000001"))


def test_manual_client_without_phone(clients):
    first = clients.create_manual_client(ClientCreate(firstName="A"))
    second = clients.create_manual_client(ClientCreate(firstName="B", phone="  "))
    assert first.phone is None and second.phone is None
    assert first.telegram_id != second.telegram_id


def test_get_missing_client(clients):
    with pytest.raises(UserNotFound):
        clients.get_client(404)


# ============================================================================
# ADMIN LISTING
# ============================================================================


def test_list_clients_with_counts_and_search(db, factory, clients):
    aziz = factory.user(first_name="Aziz", phone="998901000001")
    factory.user(first_name="Nodira", phone="998902000002")
    factory.booking(aziz, factory.slot())
    factory.booking(aziz, factory.slot())
    db.add(BarOrder(user_id=aziz.id, total=12000))
    db.commit()

    rows = clients.list_clients()
    counts = {user.first_name: (bookings, orders) for user, bookings, orders in rows}
    assert counts == {"Aziz": (2, 1), "Nodira": (0, 0)}

    assert [u.first_name for u, _, _ in clients.list_clients("nod")] == ["Nodira"]
    assert [u.first_name for u, _, _ in clients.list_clients("1000001")] == ["Aziz"]


def test_client_details(factory, clients):
    user = factory.user()
    factory.booking(user, factory.slot())

    found, bookings, memberships = clients.get_client_details(user.id)

    assert found.id == user.id
    assert len(bookings) == 1
    assert memberships == []


def test_client_details_show_expired_membership(db, factory, clock):
    user = factory.user()
    plan = factory.plan(duration_days=30)
    db.add(
        UserMembership(
            user_id=user.id,
            plan_id=plan.id,
            start_date=datetime(2026, 1, 1),
            end_date=datetime(2026, 1, 31),
        )
    )
    db.commit()

    _, _, memberships = ClientService(db, clock=clock).get_client_details(user.id)

    assert [m.status for m in memberships] == [MEMBERSHIP_EXPIRED]


# ============================================================================
# DEDUPLICATION
# ============================================================================


def test_keep_rank_prefers_telegram_then_manual_then_phone():
    early, late = datetime(2025, 1, 1), datetime(2026, 1, 1)
    telegram = User(id=3, telegram_id="123", created_at=late)
    manual = User(id=1, telegram_id="manual-x", created_at=early)
    placeholder = User(id=2, telegram_id="phone-998", created_at=early)

    assert sorted([placeholder, manual, telegram], key=keep_rank) == [telegram, manual, placeholder]


def test_merge_keeps_telegram_user_and_moves_records(db, factory, clients):
    telegram_user = factory.user(telegram_id="111222333", phone="+998 90 123-45-67")
    placeholder = factory.user(telegram_id="phone-998901234567", phone="998901234567")
    manual = factory.user(telegram_id="manual-1", phone="+998901234567")
    booking = factory.booking(placeholder, factory.slot())
    plan = factory.plan()
    db.add(
        UserMembership(
            user_id=manual.id,
            plan_id=plan.id,
            start_date=datetime(2026, 3, 1),
            end_date=datetime(2026, 3, 31),
        )
    )
    db.add(BarOrder(user_id=manual.id, total=5000))
    db.commit()
    keep_id, booking_id = telegram_user.id, booking.id

    result = clients.merge_duplicate_phones()

    assert result == {"merged": 2, "mergedPhones": ["998901234567"]}
    db.expire_all()
    users = db.query(User).all()
    assert [(u.id, u.phone) for u in users] == [(keep_id, "998901234567")]
    assert db.get(Booking, booking_id).user_id == keep_id
    assert db.query(UserMembership).one().user_id == keep_id
    assert db.query(BarOrder).one().user_id == keep_id

    assert clients.merge_duplicate_phones() == {"merged": 0, "mergedPhones": []}


def test_merge_prefers_manual_client_over_phone_placeholder(db, factory, clients):
    factory.user(telegram_id="phone-998935554433", phone="998935554433")
    manual = factory.user(telegram_id="manual-2", phone="+998 93 555-44-33")
    manual_id = manual.id

    assert clients.merge_duplicate_phones()["merged"] == 1

    db.expire_all()
    remaining = db.query(User).one()
    assert remaining.id == manual_id
    assert remaining.phone == "998935554433"


def test_numbers_that_normalize_differently_are_not_merged(factory, clients):
    factory.user(telegram_id="phone-998935554433", phone="998935554433")
    factory.user(telegram_id="manual-4", phone="93 555 44 33")

    assert clients.merge_duplicate_phones() == {"merged": 0, "mergedPhones": []}


def test_merge_cancels_the_duplicate_booking_on_a_shared_slot(db, factory, clients):
    slot = factory.slot(capacity=2, booked_count=2)
    kept = factory.user(telegram_id="444555666", phone="998901111111")
    placeholder = factory.user(telegram_id="phone-998901111111", phone="+998 90 111 11 11")
    kept_booking = factory.booking(kept, slot, status=BOOKING_CONFIRMED)
    dup_booking = factory.booking(placeholder, slot, status=BOOKING_CONFIRMED)
    kept_id, slot_id = kept.id, slot.id
    kept_booking_id, dup_booking_id = kept_booking.id, dup_booking.id

    result = clients.merge_duplicate_phones()

    assert result == {"merged": 1, "mergedPhones": ["998901111111"]}
    db.expire_all()
    assert [u.id for u in db.query(User).all()] == [kept_id]
    assert db.get(Booking, kept_booking_id).status == BOOKING_CONFIRMED
    cancelled = db.get(Booking, dup_booking_id)
    assert cancelled.status == BOOKING_CANCELLED_BY_ADMIN
    assert cancelled.user_id == kept_id
    assert db.get(Slot, slot_id).booked_count == 1
    assert clients.merge_duplicate_phones() == {"merged": 0, "mergedPhones": []}


def test_bookings_on_different_slots_all_survive_the_merge(db, factory, clients):
    kept = factory.user(telegram_id="444555667", phone="998901111112")
    manual = factory.user(telegram_id="manual-5", phone="+998901111112")
    factory.booking(kept, factory.slot())
    factory.booking(manual, factory.slot())

    assert clients.merge_duplicate_phones()["merged"] == 1

    db.expire_all()
    statuses = [b.status for b in db.query(Booking).all()]
    assert statuses == [BOOKING_PENDING, BOOKING_PENDING]


def test_failed_group_is_rolled_back_and_others_merge(db, factory, clients, monkeypatch):
    factory.user(telegram_id="444555666", phone="998901111111")
    duplicate = factory.user(telegram_id="manual-3", phone="+998 90 111 11 11")
    factory.user(telegram_id="777888999", phone="998902222222")
    factory.user(telegram_id="phone-998902222222", phone="+998902222222")
    duplicate_id = duplicate.id
    delete_users = clients.repo.delete_users

    def failing_delete(db, user_ids):
        if duplicate_id in user_ids:
            raise OperationalError("DELETE FROM users", {}, Exception("database is locked"))
        return delete_users(db, user_ids)

    monkeypatch.setattr(clients.repo, "delete_users", failing_delete)

    result = clients.merge_duplicate_phones()

    assert result == {"merged": 1, "mergedPhones": ["998902222222"]}
    db.expire_all()
    phones = sorted(u.phone for u in db.query(User).all())
    assert phones == ["+998 90 111 11 11", "998901111111", "998902222222"]
