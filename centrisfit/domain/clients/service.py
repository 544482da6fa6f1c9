"""Client service - identity keys, manual clients and duplicate merging"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import (
    BOOKING_CANCELLED_BY_ADMIN,
    MANUAL_ID_PREFIX,
    PHONE_ID_PREFIX,
    Booking,
    User,
    UserMembership,
)
from ...shared.clock import Clock, utcnow
from ...shared.exceptions import InvalidPhone, PhoneAlreadyUsed, UserNotFound
from ...shared.localization import DEFAULT_LANGUAGE
from ...shared.validators import normalize_phone
from ..memberships.repository import MembershipRepository
from ..slots.repository import SlotRepository
from .repository import ClientRepository
from .schemas import ClientCreate, TelegramLogin

logger = logging.getLogger(__name__)


def keep_rank(user: User) -> tuple:
    """
    Sort key for choosing which record survives a phone merge.

    Real Telegram users first, then manually created clients, then
    "phone-" placeholders; the oldest record wins within a kind.
    """
    if user.has_telegram_identity:
        kind = 0
    elif user.telegram_id.startswith(MANUAL_ID_PREFIX):
        kind = 1
    else:
        kind = 2
    return (kind, user.created_at or datetime.max, user.id)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.repo = ClientRepository()
        self.clock = clock

    def get_client(self, user_id: int) -> User:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise UserNotFound()
        return user

    def get_by_telegram_id(self, telegram_id: str) -> Optional[User]:
        return self.repo.get_by_telegram_id(self.db, telegram_id)

    # ========================================================================
    # IDENTITY
    # ========================================================================

    def find_or_create_by_telegram(self, data: TelegramLogin) -> User:
        """Upsert on every Mini App launch; profile fields follow Telegram"""
        user = self.repo.get_by_telegram_id(self.db, data.telegramId)
        if user:
            for field, column in (
                ("firstName", "first_name"),
                ("lastName", "last_name"),
                ("username", "username"),
            ):
                value = getattr(data, field)
                if value is not None:
                    setattr(user, column, value)
            self.db.commit()
            self.db.refresh(user)
            return user

        user = User(
            telegram_id=data.telegramId,
            first_name=data.firstName,
            last_name=data.lastName,
            username=data.username,
            language=data.language or DEFAULT_LANGUAGE,
        )
        try:
            user = self.repo.add_user(self.db, user)
        except IntegrityError:
            # Concurrent first launch created the row first
            self.db.rollback()
            return self.repo.get_by_telegram_id(self.db, data.telegramId)
        logger.info(f"👤 New Telegram user {user.id} ({data.telegramId})")
        return user

    def find_or_create_by_phone(self, phone: str) -> User:
        """Phone-only sign-in; unknown numbers get a "phone-<digits>" placeholder user"""
        normalized = normalize_phone(phone)
        if not normalized:
            raise InvalidPhone()

        user = self.repo.get_by_phone(self.db, normalized)
        if user:
            return user

        user = User(
            telegram_id=f"{PHONE_ID_PREFIX}{normalized}",
            phone=normalized,
            language=DEFAULT_LANGUAGE,
        )
        try:
            user = self.repo.add_user(self.db, user)
        except IntegrityError:
            self.db.rollback()
            user = self.repo.get_by_phone(self.db, normalized)
            if not user:
                raise PhoneAlreadyUsed()
            return user
        logger.info(f"👤 New phone-only user {user.id}")
        return user

    def create_manual_client(self, data: ClientCreate) -> User:
        """Client added at the front desk, without Telegram"""
        phone = None
        if data.phone is not None and data.phone.strip():
            phone = normalize_phone(data.phone)
            if not phone:
                raise InvalidPhone()
            if self.repo.get_by_phone(self.db, phone):
                raise PhoneAlreadyUsed()

        user = User(
            telegram_id=f"{MANUAL_ID_PREFIX}{uuid.uuid4()}",
            first_name=data.firstName.strip(),
            last_name=(data.lastName or "").strip() or None,
            phone=phone,
            language=DEFAULT_LANGUAGE,
        )
        try:
            user = self.repo.add_user(self.db, user)
        except IntegrityError:
            self.db.rollback()
            raise PhoneAlreadyUsed()
        logger.info(f"👤 Manual client {user.id} created")
        return user

    # ========================================================================
    # ADMIN LISTING
    # ========================================================================

    def list_clients(self, search: Optional[str] = None) -> list[tuple[User, int, int]]:
        return self.repo.list_clients(self.db, search)

    def get_client_details(
        self, user_id: int
    ) -> tuple[User, list[Booking], list[UserMembership]]:
        user = self.get_client(user_id)
        if MembershipRepository.expire_stale(self.db, user_id, self.clock()):
            self.db.commit()
        return (
            user,
            self.repo.recent_bookings(self.db, user_id),
            self.repo.memberships(self.db, user_id),
        )

    # ========================================================================
    # DEDUPLICATION
    # ========================================================================

    def merge_duplicate_phones(self) -> dict:
        """
        Collapse users sharing a phone number into one record.

        Each phone group is merged in its own transaction: bookings, bar
        orders and memberships move to the kept user, the duplicates are
        deleted and the kept phone is stored normalized. When the kept user
        and a duplicate both hold an active booking for the same slot, the
        duplicate's booking is cancelled and its place released. A group
        that fails is rolled back and skipped. Running it again merges
        nothing.
        """
        groups: dict[str, list[User]] = {}
        for user in self.repo.users_with_phone(self.db):
            normalized = normalize_phone(user.phone)
            if normalized:
                groups.setdefault(normalized, []).append(user)

        merged = 0
        merged_phones = []
        for phone, group in groups.items():
            if len(group) < 2:
                continue

            ranked = sorted(group, key=keep_rank)
            keep = ranked[0]
            keep_id = keep.id
            dup_ids = [u.id for u in ranked[1:]]

            try:
                cancelled = self._cancel_colliding_bookings(ranked)
                moved = self.repo.reassign_records(self.db, dup_ids, keep_id)
                moved["cancelledBookings"] = cancelled
                self.repo.delete_users(self.db, dup_ids)
                if keep.phone != phone:
                    keep.phone = phone
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to merge users {dup_ids} into {keep_id} ({phone}): {e}")
                continue

            merged += len(dup_ids)
            merged_phones.append(phone)
            logger.info(f"🔗 Merged users {dup_ids} into {keep_id} for phone {phone}: {moved}")

        if merged:
            logger.info(f"🔗 Duplicate merge finished: {merged} users merged")
        return {"merged": merged, "mergedPhones": merged_phones}

    def _cancel_colliding_bookings(self, ranked: list[User]) -> int:
        """
        Cancel active bookings that would share a slot once the group is one user.

        The higher ranked user's booking is the one kept. Does not commit.
        """
        rank = {user.id: position for position, user in enumerate(ranked)}
        bookings = sorted(
            self.repo.active_bookings(self.db, list(rank)),
            key=lambda b: (rank[b.user_id], b.id),
        )
        taken_slots = set()
        cancelled = 0
        for booking in bookings:
            if booking.slot_id not in taken_slots:
                taken_slots.add(booking.slot_id)
                continue
            booking.status = BOOKING_CANCELLED_BY_ADMIN
            SlotRepository.release_place(self.db, booking.slot_id)
            cancelled += 1
            logger.info(
                f"🚫 Booking {booking.id} of user {booking.user_id} cancelled by merge: "
                f"slot {booking.slot_id} already booked"
            )
        if cancelled:
            self.db.flush()
        return cancelled
