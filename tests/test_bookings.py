from datetime import date, datetime, timedelta

import pytest

from centrisfit.domain.bookings.service import ACTOR_ADMIN, ACTOR_USER, BookingService
from centrisfit.domain.memberships.service import MembershipService
from centrisfit.domain.settings.repository import SettingsRepository
from centrisfit.models import (
    BOOKING_CANCELLED_BY_ADMIN,
    BOOKING_CANCELLED_BY_USER,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    PLAN_UNLIMITED,
    PLAN_VISITS,
    SLOT_CANCELLED,
    BarOrder,
    Booking,
    Slot,
    UserMembership,
)
from centrisfit.services.notification_service import NotificationService
from centrisfit.shared.exceptions import (
    BookingNotFound,
    CapacityExceeded,
    DuplicateBooking,
    FeedbackAlreadyExists,
    FeedbackNotAllowed,
    InvalidStatusTransition,
    NotCancellable,
    SlotNotAvailable,
    SlotNotFound,
)

from .conftest import NOW, RecordingSender


@pytest.fixture
def bookings(db, clock, notifications):
    return BookingService(db, clock=clock, notifications=notifications)


@pytest.fixture
def memberships(db, clock, notifications):
    return MembershipService(db, clock=clock, notifications=notifications)


def booked_count(db, slot_id) -> int:
    db.expire_all()
    return db.get(Slot, slot_id).booked_count


def test_create_booking(db, factory, bookings):
    user = factory.user()
    slot = factory.slot(capacity=3)

    booking = bookings.create_booking(user.id, slot.id, comment="  first visit ")

    assert booking.status == BOOKING_PENDING
    assert booking.is_membership is False
    assert booking.membership_id is None
    assert booking.comment == "first visit"
    assert booking.created_at == NOW
    assert booked_count(db, slot.id) == 1


def test_create_booking_missing_slot(factory, bookings):
    with pytest.raises(SlotNotFound):
        bookings.create_booking(factory.user().id, 999)


def test_create_booking_on_cancelled_slot(db, factory, bookings):
    slot = factory.slot(status=SLOT_CANCELLED)
    with pytest.raises(SlotNotAvailable):
        bookings.create_booking(factory.user().id, slot.id)
    assert booked_count(db, slot.id) == 0


def test_create_booking_on_full_slot(db, factory, bookings):
    slot = factory.slot(capacity=1)
    bookings.create_booking(factory.user().id, slot.id)

    with pytest.raises(CapacityExceeded):
        bookings.create_booking(factory.user().id, slot.id)

    assert booked_count(db, slot.id) == 1
    assert db.query(Booking).count() == 1


def test_duplicate_active_booking_is_rejected(db, factory, bookings):
    user = factory.user()
    slot = factory.slot(capacity=5)
    bookings.create_booking(user.id, slot.id)

    with pytest.raises(DuplicateBooking):
        bookings.create_booking(user.id, slot.id)

    # The failed attempt did not leak a place
    assert booked_count(db, slot.id) == 1
    assert db.query(Booking).filter(Booking.user_id == user.id).count() == 1


def test_can_book_again_after_cancelling(db, factory, bookings):
    user = factory.user()
    slot = factory.slot(capacity=2)
    first = bookings.create_booking(user.id, slot.id)
    bookings.cancel_booking(first.id, actor=ACTOR_USER, user_id=user.id)

    second = bookings.create_booking(user.id, slot.id)

    assert second.id != first.id
    assert booked_count(db, slot.id) == 1


def test_book_then_cancel_restores_counter(db, factory, bookings):
    slot = factory.slot(capacity=4, booked_count=2)
    user = factory.user()
    before = booked_count(db, slot.id)

    booking = bookings.create_booking(user.id, slot.id)
    cancelled = bookings.cancel_booking(booking.id, actor=ACTOR_USER, user_id=user.id)

    assert cancelled.status == BOOKING_CANCELLED_BY_USER
    assert booked_count(db, slot.id) == before


def test_last_place_goes_to_exactly_one_of_two_racing_requests(
    db, session_factory, factory, clock
):
    slot = factory.slot(capacity=1)
    first_user, second_user = factory.user(), factory.user()

    session_a = session_factory()
    session_b = session_factory()
    try:
        service_a = BookingService(
            session_a, clock=clock, notifications=NotificationService(session_a, RecordingSender())
        )
        service_b = BookingService(
            session_b, clock=clock, notifications=NotificationService(session_b, RecordingSender())
        )

        # B has already read the slot while it still looked free
        stale = session_b.get(Slot, slot.id)
        assert stale.booked_count == 0

        service_a.create_booking(first_user.id, slot.id)
        with pytest.raises(CapacityExceeded):
            service_b.create_booking(second_user.id, slot.id)
    finally:
        session_a.close()
        session_b.close()

    assert booked_count(db, slot.id) == 1
    assert db.query(Booking).filter(Booking.slot_id == slot.id).count() == 1


def test_user_cannot_cancel_someone_elses_booking(factory, bookings):
    owner, stranger = factory.user(), factory.user()
    booking = bookings.create_booking(owner.id, factory.slot().id)

    with pytest.raises(BookingNotFound):
        bookings.cancel_booking(booking.id, actor=ACTOR_USER, user_id=stranger.id)


def test_cancel_twice_is_not_cancellable(db, factory, bookings):
    user = factory.user()
    slot = factory.slot()
    booking = bookings.create_booking(user.id, slot.id)
    bookings.cancel_booking(booking.id, actor=ACTOR_USER, user_id=user.id)

    with pytest.raises(NotCancellable):
        bookings.cancel_booking(booking.id, actor=ACTOR_ADMIN)
    assert booked_count(db, slot.id) == 0


def test_completed_booking_is_not_cancellable(factory, bookings):
    booking = factory.booking(factory.user(), factory.slot(booked_count=1), status=BOOKING_COMPLETED)
    with pytest.raises(NotCancellable):
        bookings.cancel_booking(booking.id, actor=ACTOR_ADMIN)


def test_admin_cancel_notifies_client_with_reason(db, factory, bookings, sender):
    user = factory.user(telegram_id="123456789")
    slot = factory.slot()
    booking = bookings.create_booking(user.id, slot.id)

    cancelled = bookings.cancel_booking(booking.id, actor=ACTOR_ADMIN, reason="Coach is ill")

    assert cancelled.status == BOOKING_CANCELLED_BY_ADMIN
    assert booked_count(db, slot.id) == 0
    chat_id, text = sender.messages[-1]
    assert chat_id == "123456789"
    assert "Coach is ill" in text


def test_confirm_and_complete(factory, bookings, sender):
    user = factory.user(telegram_id="987654321")
    booking = bookings.create_booking(user.id, factory.slot().id)

    confirmed = bookings.confirm_booking(booking.id)
    assert confirmed.status == BOOKING_CONFIRMED
    assert sender.chats().count("987654321") == 1

    # Second confirm changes nothing and sends nothing
    sent = len(sender.messages)
    assert bookings.confirm_booking(booking.id).status == BOOKING_CONFIRMED
    assert len(sender.messages) == sent

    assert bookings.complete_booking(booking.id).status == BOOKING_COMPLETED


def test_complete_requires_confirmation(factory, bookings):
    booking = bookings.create_booking(factory.user().id, factory.slot().id)
    with pytest.raises(InvalidStatusTransition):
        bookings.complete_booking(booking.id)


def test_cannot_confirm_cancelled_booking(factory, bookings):
    user = factory.user()
    booking = bookings.create_booking(user.id, factory.slot().id)
    bookings.cancel_booking(booking.id, actor=ACTOR_USER, user_id=user.id)

    with pytest.raises(InvalidStatusTransition):
        bookings.confirm_booking(booking.id)


def test_unlimited_membership_covers_booking_without_touching_visits(
    db, factory, bookings, memberships
):
    service = factory.service()
    plan = factory.plan(type=PLAN_UNLIMITED, services=[service])
    user = factory.user()
    membership = memberships.purchase_membership(user.id, plan.id)

    booking = bookings.create_booking(user.id, factory.slot(service).id)

    assert booking.is_membership is True
    assert booking.membership_id == membership.id
    db.expire_all()
    assert db.get(UserMembership, membership.id).remaining_visits is None


def test_visits_membership_takes_one_visit_with_the_booking(db, factory, bookings, memberships):
    service = factory.service()
    plan = factory.plan(type=PLAN_VISITS, total_visits=2, services=[service])
    user = factory.user()
    membership = memberships.purchase_membership(user.id, plan.id)

    booking = bookings.create_booking(user.id, factory.slot(service).id)

    assert booking.is_membership is True
    db.expire_all()
    assert db.get(UserMembership, membership.id).remaining_visits == 1

    # Cancelling does not give the visit back
    bookings.cancel_booking(booking.id, actor=ACTOR_USER, user_id=user.id)
    db.expire_all()
    assert db.get(UserMembership, membership.id).remaining_visits == 1


def test_exhausted_visits_membership_books_without_coverage(db, factory, bookings, memberships):
    service = factory.service()
    plan = factory.plan(type=PLAN_VISITS, total_visits=1, services=[service])
    user = factory.user()
    membership = memberships.purchase_membership(user.id, plan.id)
    memberships.decrement_visit(membership.id)

    booking = bookings.create_booking(user.id, factory.slot(service).id)

    assert booking.is_membership is False
    db.expire_all()
    assert db.get(UserMembership, membership.id).remaining_visits == 0


def test_visit_taken_elsewhere_after_coverage_check_books_without_membership(
    db, session_factory, factory, bookings, memberships, monkeypatch
):
    service = factory.service()
    plan = factory.plan(type=PLAN_VISITS, total_visits=1, services=[service])
    user = factory.user()
    membership_id = memberships.purchase_membership(user.id, plan.id).id
    slot = factory.slot(service)
    check_coverage = bookings.memberships.is_service_covered

    def covered_then_used_up(user_id, service_id):
        coverage = check_coverage(user_id, service_id)
        # Another request spends the last visit before this booking writes
        other = session_factory()
        try:
            other.query(UserMembership).filter(UserMembership.id == membership_id).update(
                {UserMembership.remaining_visits: 0}
            )
            other.commit()
        finally:
            other.close()
        return coverage

    monkeypatch.setattr(bookings.memberships, "is_service_covered", covered_then_used_up)

    booking = bookings.create_booking(user.id, slot.id)

    assert booking.is_membership is False
    assert booking.membership_id is None
    assert booked_count(db, slot.id) == 1
    assert db.get(UserMembership, membership_id).remaining_visits == 0


def test_service_outside_plan_is_not_covered(factory, bookings, memberships):
    included, other = factory.service(), factory.service(name_ru="Бокс", name_uz="Boks")
    user = factory.user()
    memberships.purchase_membership(user.id, factory.plan(services=[included]).id)

    assert bookings.create_booking(user.id, factory.slot(other).id).is_membership is False


def test_booking_can_opt_out_of_membership(db, factory, bookings, memberships):
    service = factory.service()
    plan = factory.plan(type=PLAN_VISITS, total_visits=3, services=[service])
    user = factory.user()
    membership = memberships.purchase_membership(user.id, plan.id)

    booking = bookings.create_booking(user.id, factory.slot(service).id, use_membership=False)

    assert booking.is_membership is False
    db.expire_all()
    assert db.get(UserMembership, membership.id).remaining_visits == 3


def test_list_user_bookings_newest_first_with_feedback_flag(factory, bookings, clock):
    user = factory.user()
    older = bookings.create_booking(user.id, factory.slot(start="09:00", end="10:00").id)
    clock.advance(minutes=5)
    newer = bookings.create_booking(user.id, factory.slot(start="12:00", end="13:00").id)
    factory.booking(factory.user(), factory.slot())

    listed = bookings.list_user_bookings(user.id)

    assert [b.id for b in listed] == [newer.id, older.id]
    assert all(b.feedback is None for b in listed)


def test_admin_list_filters_by_status_and_day(factory, bookings, clock):
    first = bookings.create_booking(factory.user().id, factory.slot().id)
    clock.advance(days=1)
    second = bookings.create_booking(factory.user().id, factory.slot().id)
    bookings.confirm_booking(second.id)

    assert [b.id for b in bookings.list_bookings(status=BOOKING_PENDING)] == [first.id]
    assert [b.id for b in bookings.list_bookings(day=NOW.date())] == [first.id]
    assert len(bookings.list_bookings()) == 2


def test_pending_counts(db, factory, bookings):
    user = factory.user()
    bookings.create_booking(user.id, factory.slot().id)
    confirmed = bookings.create_booking(user.id, factory.slot().id)
    bookings.confirm_booking(confirmed.id)
    db.add(BarOrder(user_id=user.id, total=25000))
    db.commit()

    counts = bookings.pending_counts()

    assert counts.pendingBookings == 1
    assert counts.pendingOrders == 1


def test_feedback_after_completed_session(factory, bookings):
    user = factory.user()
    booking = factory.booking(user, factory.slot(), status=BOOKING_COMPLETED)

    feedback = bookings.create_feedback(user.id, booking.id, 5, "Great class")

    assert feedback.rating == 5
    assert bookings.list_user_bookings(user.id)[0].feedback is not None
    with pytest.raises(FeedbackAlreadyExists):
        bookings.create_feedback(user.id, booking.id, 4)


def test_feedback_only_for_completed_own_booking(factory, bookings):
    user = factory.user()
    pending = factory.booking(user, factory.slot())
    foreign = factory.booking(factory.user(), factory.slot(), status=BOOKING_COMPLETED)

    with pytest.raises(FeedbackNotAllowed):
        bookings.create_feedback(user.id, pending.id, 5)
    with pytest.raises(BookingNotFound):
        bookings.create_feedback(user.id, foreign.id, 5)


def test_new_booking_notifies_staff_chat(db, factory, bookings, sender):
    SettingsRepository.set(db, "BOOKINGS_CHAT_ID", "-100500")
    db.commit()

    bookings.create_booking(factory.user(first_name="Aziza").id, factory.slot().id)

    chat_id, text = sender.messages[-1]
    assert chat_id == "-100500"
    assert "Aziza" in text
    assert "Йога" in text


def test_notification_failure_does_not_undo_booking(db, factory, clock):
    SettingsRepository.set(db, "BOOKINGS_CHAT_ID", "-100500")
    db.commit()
    failing = RecordingSender(fail=True)
    service = BookingService(db, clock=clock, notifications=NotificationService(db, failing))
    slot = factory.slot()

    booking = service.create_booking(factory.user().id, slot.id)

    assert failing.messages
    assert db.query(Booking).filter(Booking.id == booking.id).count() == 1
    assert booked_count(db, slot.id) == 1


def test_feedback_goes_to_feedback_chat(db, factory, bookings, sender):
    SettingsRepository.set(db, "FEEDBACK_CHAT_ID", "-100900")
    db.commit()
    user = factory.user(first_name="Laylo")
    booking = factory.booking(user, factory.slot(), status=BOOKING_COMPLETED)

    bookings.create_feedback(user.id, booking.id, 4, "Coach <Anvar> was great")

    chat_id, text = sender.messages[-1]
    assert chat_id == "-100900"
    assert "Laylo" in text
    assert "Йога" in text
    assert "4/5" in text
    assert "Coach &lt;Anvar&gt; was great" in text


def test_feedback_chat_falls_back_to_bookings_chat(db, factory, bookings, sender, monkeypatch):
    monkeypatch.setattr("centrisfit.domain.settings.service.FEEDBACK_CHAT_ID", None)
    SettingsRepository.set(db, "BOOKINGS_CHAT_ID", "-100500")
    db.commit()
    user = factory.user()
    booking = factory.booking(user, factory.slot(), status=BOOKING_COMPLETED)

    bookings.create_feedback(user.id, booking.id, 5)

    assert sender.chats() == ["-100500"]


def test_list_feedbacks_newest_first(factory, bookings):
    first_user, second_user = factory.user(), factory.user()
    first = factory.booking(first_user, factory.slot(), status=BOOKING_COMPLETED)
    second = factory.booking(second_user, factory.slot(), status=BOOKING_COMPLETED)
    bookings.create_feedback(first_user.id, first.id, 3)
    bookings.create_feedback(second_user.id, second.id, 5)

    listed = bookings.list_feedbacks()

    assert [(f.booking_id, f.rating) for f in listed] == [(second.id, 5), (first.id, 3)]


# ============================================================================
# DASHBOARD
# ============================================================================


def test_dashboard_stats(db, factory, bookings, memberships):
    yoga = factory.service()
    boxing = factory.service(name_ru="Бокс", name_uz="Boks")
    aziz, nodira = factory.user(), factory.user()

    bookings.create_booking(aziz.id, factory.slot(yoga).id)
    bookings.create_booking(nodira.id, factory.slot(yoga).id)
    factory.booking(
        aziz, factory.slot(boxing), status=BOOKING_COMPLETED, created_at=datetime(2026, 2, 27, 18)
    )
    factory.booking(
        nodira,
        factory.slot(boxing, day=NOW.date()),
        status=BOOKING_COMPLETED,
        created_at=datetime(2026, 3, 1, 12),
    )
    db.add(BarOrder(user_id=aziz.id, total=30000, created_at=NOW))
    db.add(BarOrder(user_id=nodira.id, total=20000, created_at=datetime(2026, 2, 10)))
    plan = factory.plan()
    db.add(
        UserMembership(
            user_id=nodira.id,
            plan_id=plan.id,
            start_date=datetime(2026, 1, 1),
            end_date=datetime(2026, 2, 1),
        )
    )
    db.commit()
    memberships.purchase_membership(aziz.id, plan.id)

    stats = bookings.dashboard_stats()

    assert stats.totalUsers == 2
    assert stats.totalBookings == 4
    assert stats.todayBookings == 2
    assert stats.totalOrders == 2
    assert stats.todayOrders == 1
    assert stats.revenue == 30000.0
    assert stats.usersWithMemberships == 2
    # The membership that ran out in February is swept before counting
    assert stats.activeMemberships == 1
    assert stats.completedVisits == 2
    assert stats.todayVisits == 1

    by_day = {d.date: d.count for d in stats.bookingsByDay}
    assert list(by_day) == [date(2026, 2, 24) + timedelta(days=i) for i in range(7)]
    assert by_day[date(2026, 2, 27)] == 1
    assert by_day[date(2026, 3, 1)] == 1
    assert by_day[date(2026, 3, 2)] == 2
    assert sum(by_day.values()) == 4
    assert [(s.serviceName, s.count) for s in stats.bookingsByService] == [
        ("Йога", 2),
        ("Бокс", 1),
    ]
