from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Identity key prefixes for users created without Telegram
MANUAL_ID_PREFIX = "manual-"
PHONE_ID_PREFIX = "phone-"

# Slot statuses
SLOT_ACTIVE = "ACTIVE"
SLOT_CANCELLED = "CANCELLED"

# Booking statuses: PENDING -> CONFIRMED -> COMPLETED, cancellations are terminal
BOOKING_PENDING = "PENDING"
BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_COMPLETED = "COMPLETED"
BOOKING_CANCELLED_BY_USER = "CANCELLED_BY_USER"
BOOKING_CANCELLED_BY_ADMIN = "CANCELLED_BY_ADMIN"
ACTIVE_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED)

# Membership plan types
PLAN_UNLIMITED = "UNLIMITED"
PLAN_VISITS = "VISITS"

# Membership statuses: ACTIVE <-> FROZEN, then EXPIRED or CANCELLED (terminal)
MEMBERSHIP_ACTIVE = "ACTIVE"
MEMBERSHIP_FROZEN = "FROZEN"
MEMBERSHIP_EXPIRED = "EXPIRED"
MEMBERSHIP_CANCELLED = "CANCELLED"
CURRENT_MEMBERSHIP_STATUSES = (MEMBERSHIP_ACTIVE, MEMBERSHIP_FROZEN)

PAYMENT_OFFLINE = "OFFLINE"
PAYMENT_ONLINE = "ONLINE"

BAR_ORDER_PENDING = "PENDING"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Telegram id, or a synthetic "manual-<uuid>" / "phone-<digits>" key
    telegram_id = Column(String(64), unique=True, index=True, nullable=False)
    phone = Column(String(32), unique=True, index=True, nullable=True)  # digits only
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    username = Column(String(255), nullable=True)
    language = Column(String(5), default="ru", nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="user")
    memberships = relationship("UserMembership", back_populates="user")
    bar_orders = relationship("BarOrder", back_populates="user")

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        if parts:
            return " ".join(parts)
        return self.username or self.phone or self.telegram_id

    @property
    def has_telegram_identity(self) -> bool:
        return not self.telegram_id.startswith((MANUAL_ID_PREFIX, PHONE_ID_PREFIX))


class ServiceCategory(Base):
    __tablename__ = "service_categories"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, nullable=False)
    name_ru = Column(String(255), nullable=False)
    name_uz = Column(String(255), nullable=True)
    icon = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    services = relationship("Service", back_populates="category")

    @property
    def names(self) -> dict:
        return {"ru": self.name_ru, "uz": self.name_uz}


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("service_categories.id"), nullable=False)
    name_ru = Column(String(255), nullable=False)
    name_uz = Column(String(255), nullable=True)
    description_ru = Column(Text, nullable=True)
    description_uz = Column(Text, nullable=True)
    price = Column(Float, nullable=True)
    duration_minutes = Column(Integer, default=60, nullable=False)
    capacity = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    category = relationship("ServiceCategory", back_populates="services")
    slots = relationship("Slot", back_populates="service")

    @property
    def names(self) -> dict:
        return {"ru": self.name_ru, "uz": self.name_uz}


class Slot(Base):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    specialist = Column(String(255), nullable=True)
    capacity = Column(Integer, default=1, nullable=False)
    booked_count = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=SLOT_ACTIVE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    service = relationship("Service", back_populates="slots")
    bookings = relationship("Booking", back_populates="slot")

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="check_slot_capacity_positive"),
        CheckConstraint(
            "booked_count >= 0 AND booked_count <= capacity", name="check_slot_booked_count"
        ),
    )

    @property
    def is_full(self) -> bool:
        return self.booked_count >= self.capacity


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False, index=True)
    status = Column(String(30), default=BOOKING_PENDING, nullable=False, index=True)
    is_membership = Column(Boolean, default=False, nullable=False)
    membership_id = Column(Integer, ForeignKey("user_memberships.id"), nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    slot = relationship("Slot", back_populates="bookings")
    membership = relationship("UserMembership")
    feedback = relationship("SessionFeedback", back_populates="booking", uselist=False)

    __table_args__ = (
        # One active booking per user per slot
        Index(
            "uq_booking_active_user_slot",
            "user_id",
            "slot_id",
            unique=True,
            sqlite_where=text("status IN ('PENDING', 'CONFIRMED')"),
            postgresql_where=text("status IN ('PENDING', 'CONFIRMED')"),
        ),
    )


class SessionFeedback(Base):
    __tablename__ = "session_feedbacks"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    booking = relationship("Booking", back_populates="feedback")

    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 5", name="check_feedback_rating"),)


class BarOrder(Base):
    __tablename__ = "bar_orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(30), default=BAR_ORDER_PENDING, nullable=False)
    total = Column(Float, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="bar_orders")


plan_services = Table(
    "plan_services",
    Base.metadata,
    Column(
        "plan_id",
        Integer,
        ForeignKey("membership_plans.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("service_id", Integer, ForeignKey("services.id"), primary_key=True),
)


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)
    name_ru = Column(String(255), nullable=False)
    name_uz = Column(String(255), nullable=True)
    type = Column(String(20), nullable=False)  # UNLIMITED | VISITS
    duration_days = Column(Integer, nullable=False)
    total_visits = Column(Integer, nullable=True)  # required iff VISITS
    max_freeze_days = Column(Integer, default=0, nullable=False)
    price = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    services = relationship("Service", secondary=plan_services, order_by="Service.id")
    memberships = relationship("UserMembership", back_populates="plan")

    @property
    def names(self) -> dict:
        return {"ru": self.name_ru, "uz": self.name_uz}

    @property
    def included_service_ids(self) -> list[int]:
        return [s.id for s in self.services]


class UserMembership(Base):
    __tablename__ = "user_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    remaining_visits = Column(Integer, nullable=True)  # VISITS plans only
    used_freeze_days = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default=MEMBERSHIP_ACTIVE, nullable=False, index=True)
    payment_type = Column(String(20), default=PAYMENT_OFFLINE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="memberships")
    plan = relationship("MembershipPlan", back_populates="memberships")
    freezes = relationship(
        "MembershipFreeze", back_populates="membership", order_by="MembershipFreeze.id"
    )

    __table_args__ = (
        CheckConstraint(
            "remaining_visits IS NULL OR remaining_visits >= 0",
            name="check_membership_remaining_visits",
        ),
        CheckConstraint("used_freeze_days >= 0", name="check_membership_used_freeze_days"),
    )

    @property
    def open_freeze(self):
        for freeze in self.freezes:
            if freeze.freeze_end is None:
                return freeze
        return None


class MembershipFreeze(Base):
    """One freeze episode; rows are never deleted"""

    __tablename__ = "membership_freezes"

    id = Column(Integer, primary_key=True, index=True)
    membership_id = Column(Integer, ForeignKey("user_memberships.id"), nullable=False, index=True)
    freeze_start = Column(DateTime, nullable=False)
    freeze_end = Column(DateTime, nullable=True)  # null while the freeze is open
    days_frozen = Column(Integer, nullable=True)  # set on unfreeze
    created_at = Column(DateTime, server_default=func.now())

    membership = relationship("UserMembership", back_populates="freezes")

    __table_args__ = (
        Index(
            "uq_open_freeze_per_membership",
            "membership_id",
            unique=True,
            sqlite_where=text("freeze_end IS NULL"),
            postgresql_where=text("freeze_end IS NULL"),
        ),
    )


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(50), default="ADMIN", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
