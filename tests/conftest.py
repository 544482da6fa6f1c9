import os

# Must be set before centrisfit.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEFAULT_ADMIN_PASSWORD", "test-admin-password")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import date, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from centrisfit.bootstrap import create_tables, ensure_default_admin  # noqa: E402
from centrisfit.database import enable_sqlite_foreign_keys, get_db  # noqa: E402
from centrisfit.models import (  # noqa: E402
    BOOKING_PENDING,
    PLAN_UNLIMITED,
    PLAN_VISITS,
    SLOT_ACTIVE,
    Booking,
    MembershipPlan,
    Service,
    ServiceCategory,
    Slot,
    User,
)
from centrisfit.services.notification_service import (  # noqa: E402
    NotificationService,
    get_notification_service,
)
from centrisfit.shared.validators import combine  # noqa: E402

ADMIN_EMAIL = "admin@centrisfit.com"
ADMIN_PASSWORD = "test-admin-password"

# Monday morning; slots are created for the following day by default
NOW = datetime(2026, 3, 2, 9, 0)
TOMORROW = date(2026, 3, 3)


class FrozenClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender:
    """Stands in for telegram_service.send_message and remembers every call"""

    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    def __call__(self, chat_id, text):
        self.messages.append((chat_id, text))
        if self.fail:
            raise RuntimeError("Telegram is down")
        return True, None

    def chats(self) -> list:
        return [chat_id for chat_id, _ in self.messages]


class Factory:
    """Creates committed rows with sensible defaults"""

    def __init__(self, db: Session):
        self.db = db
        self._seq = 0
        self._category = None

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def category(self) -> ServiceCategory:
        if self._category is None:
            self._category = self._save(
                ServiceCategory(slug="fitness", name_ru="Фитнес", name_uz="Fitnes")
            )
        return self._category

    def user(self, telegram_id=None, phone=None, first_name="Test", created_at=None, language="ru"):
        user = User(
            telegram_id=telegram_id or str(700000000 + self._next()),
            phone=phone,
            first_name=first_name,
            language=language,
        )
        if created_at is not None:
            user.created_at = created_at
        return self._save(user)

    def service(self, name_ru="Йога", name_uz="Yoga", capacity=1) -> Service:
        return self._save(
            Service(
                category_id=self.category().id,
                name_ru=name_ru,
                name_uz=name_uz,
                duration_minutes=60,
                capacity=capacity,
                price=100000.0,
            )
        )

    def slot(
        self,
        service=None,
        day=TOMORROW,
        start="10:00",
        end="11:00",
        capacity=1,
        booked_count=0,
        status=SLOT_ACTIVE,
    ) -> Slot:
        service = service or self.service()
        return self._save(
            Slot(
                service_id=service.id,
                date=day,
                start_time=combine(day, start),
                end_time=combine(day, end),
                capacity=capacity,
                booked_count=booked_count,
                status=status,
            )
        )

    def booking(self, user, slot, status=BOOKING_PENDING, created_at=None) -> Booking:
        """Raw booking row; slot counters are left alone"""
        booking = Booking(user_id=user.id, slot_id=slot.id, status=status)
        if created_at is not None:
            booking.created_at = created_at
        return self._save(booking)

    def plan(
        self,
        type=PLAN_UNLIMITED,
        services=(),
        duration_days=30,
        total_visits=None,
        max_freeze_days=14,
        price=500000.0,
        is_active=True,
        name_ru="Безлимит",
        name_uz="Cheksiz",
    ) -> MembershipPlan:
        if type == PLAN_VISITS and total_visits is None:
            total_visits = 8
        plan = MembershipPlan(
            name_ru=name_ru,
            name_uz=name_uz,
            type=type,
            duration_days=duration_days,
            total_visits=total_visits,
            max_freeze_days=max_freeze_days,
            price=price,
            is_active=is_active,
        )
        plan.services = list(services)
        return self._save(plan)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifications(db, sender):
    return NotificationService(db, sender=sender)


@pytest.fixture
def admin(db):
    # Low bcrypt cost keeps the suite fast
    return ensure_default_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD, rounds=4)


@pytest.fixture
def client(session_factory, sender, clock, admin):
    from centrisfit.domain.bookings.router import get_booking_service
    from centrisfit.domain.bookings.service import BookingService
    from centrisfit.domain.memberships.router import get_membership_service
    from centrisfit.domain.memberships.service import MembershipService
    from centrisfit.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_notifications(db: Session = Depends(get_db)):
        return NotificationService(db, sender=sender)

    def override_booking_service(
        db: Session = Depends(get_db),
        notifications: NotificationService = Depends(get_notification_service),
    ):
        return BookingService(db, clock=clock, notifications=notifications)

    def override_membership_service(
        db: Session = Depends(get_db),
        notifications: NotificationService = Depends(get_notification_service),
    ):
        return MembershipService(db, clock=clock, notifications=notifications)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = override_notifications
    app.dependency_overrides[get_booking_service] = override_booking_service
    app.dependency_overrides[get_membership_service] = override_membership_service

    # No context manager: the lifespan bootstrap would touch the real DATABASE_URL
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_auth():
    return (ADMIN_EMAIL, ADMIN_PASSWORD)
