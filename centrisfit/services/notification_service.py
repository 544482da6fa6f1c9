"""
Notification Service
Best-effort Telegram messages for booking, membership and feedback events.

Nothing in here may raise: a failed notification is logged and the core
operation that triggered it stays committed. Client messages follow the
client's language; staff chats get the default language.
"""

import html
import logging
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain.settings.service import SettingsService
from ..models import Booking, SessionFeedback, User, UserMembership
from ..shared.localization import DEFAULT_LANGUAGE, localize
from .telegram_service import send_message

logger = logging.getLogger(__name__)

Sender = Callable[..., tuple[bool, Optional[str]]]

STAFF_LANGUAGE = DEFAULT_LANGUAGE

MESSAGES = {
    "booking_created": {
        "ru": (
            "📝 <b>Новая запись!</b>\n\n"
            "👤 Клиент: {client}\n"
            "🏷 Услуга: {service}\n"
            "📅 Дата/время: {when}"
        ),
        "uz": (
            "📝 <b>Yangi yozilish!</b>\n\n"
            "👤 Mijoz: {client}\n"
            "🏷 Xizmat: {service}\n"
            "📅 Sana/vaqt: {when}"
        ),
    },
    "membership_visit": {
        "ru": "\n🎫 По абонементу",
        "uz": "\n🎫 Abonement bo'yicha",
    },
    "booking_confirmed": {
        "ru": (
            "✅ <b>Ваша запись подтверждена!</b>\n\n"
            "🏷 Услуга: {service}\n"
            "📅 Дата/время: {when}\n\n"
            "Ждём вас в нашем клубе!"
        ),
        "uz": (
            "✅ <b>Yozilishingiz tasdiqlandi!</b>\n\n"
            "🏷 Xizmat: {service}\n"
            "📅 Sana/vaqt: {when}\n\n"
            "Sizni klubimizda kutamiz!"
        ),
    },
    "booking_cancelled": {
        "ru": (
            "❌ <b>Запись отменена</b>\n\n"
            "🏷 Услуга: {service}\n"
            "📅 Дата/время: {when}"
        ),
        "uz": (
            "❌ <b>Yozilish bekor qilindi</b>\n\n"
            "🏷 Xizmat: {service}\n"
            "📅 Sana/vaqt: {when}"
        ),
    },
    "cancel_reason": {
        "ru": "\n\n📝 Причина: {reason}",
        "uz": "\n\n📝 Sabab: {reason}",
    },
    "membership_created": {
        "ru": (
            "🎫 <b>Новый абонемент!</b>\n\n"
            "👤 Клиент: {client}\n"
            "📋 Абонемент: {plan}\n"
            "📅 Действует до: {until}\n"
            "💳 Оплата: {payment}"
        ),
        "uz": (
            "🎫 <b>Yangi abonement!</b>\n\n"
            "👤 Mijoz: {client}\n"
            "📋 Abonement: {plan}\n"
            "📅 Amal qilish muddati: {until}\n"
            "💳 To'lov: {payment}"
        ),
    },
    "feedback_created": {
        "ru": (
            "⭐ <b>Новый отзыв!</b>\n\n"
            "👤 Клиент: {client}\n"
            "🏷 Занятие: {service}\n"
            "📅 Дата: {date}\n"
            "⭐ Оценка: {rating}/5"
        ),
        "uz": (
            "⭐ <b>Yangi fikr-mulohaza!</b>\n\n"
            "👤 Mijoz: {client}\n"
            "🏷 Mashg'ulot: {service}\n"
            "📅 Sana: {date}\n"
            "⭐ Baho: {rating}/5"
        ),
    },
    "feedback_comment": {
        "ru": "\n\n💬 Комментарий: {comment}",
        "uz": "\n\n💬 Izoh: {comment}",
    },
}


def render(key: str, language: Optional[str], **fields) -> str:
    """Message ``key`` in ``language``; free-text fields are HTML-escaped"""
    escaped = {name: html.escape(str(value), quote=False) for name, value in fields.items()}
    return localize(MESSAGES[key], language).format(**escaped)


def format_slot_time(booking: Booking) -> str:
    slot = booking.slot
    return f"{slot.start_time:%d.%m.%Y %H:%M}"


class NotificationService:
    """Formats event messages and hands them to the Telegram sender"""

    def __init__(self, db: Session, sender: Sender = send_message):
        self.db = db
        self.sender = sender

    def _deliver(self, chat_id, text: str, notification_type: str) -> bool:
        if not chat_id:
            logger.debug(f"⚠️ No chat configured for {notification_type} notification")
            return False
        try:
            success, error = self.sender(chat_id, text)
        except Exception as e:
            logger.error(f"❌ Failed to send {notification_type} notification to {chat_id}: {e}")
            return False

        if success:
            logger.info(f"✅ {notification_type} notification sent to {chat_id}")
        elif error and "disabled" not in error.lower():
            logger.warning(f"⚠️ {notification_type} notification not sent to {chat_id}: {error}")
        else:
            logger.debug(f"ℹ️ {notification_type} notification skipped: {error}")
        return success

    def _staff_chat_id(self, feedback: bool = False) -> Optional[str]:
        try:
            settings = SettingsService(self.db)
            return settings.feedback_chat_id() if feedback else settings.bookings_chat_id()
        except Exception as e:
            logger.error(f"❌ Could not read notification chat settings: {e}")
            return None

    @staticmethod
    def _user_chat_id(user: User) -> Optional[str]:
        # Manual and phone-only clients have no Telegram chat
        return user.telegram_id if user.has_telegram_identity else None

    def booking_created(self, booking: Booking) -> bool:
        try:
            text = render(
                "booking_created",
                STAFF_LANGUAGE,
                client=booking.user.display_name,
                service=localize(booking.slot.service.names, STAFF_LANGUAGE),
                when=format_slot_time(booking),
            )
            if booking.is_membership:
                text += render("membership_visit", STAFF_LANGUAGE)
        except Exception as e:
            logger.error(f"❌ Could not build booking_created notification: {e}")
            return False
        return self._deliver(self._staff_chat_id(), text, "booking_created")

    def booking_confirmed(self, booking: Booking) -> bool:
        try:
            user = booking.user
            text = render(
                "booking_confirmed",
                user.language,
                service=localize(booking.slot.service.names, user.language),
                when=format_slot_time(booking),
            )
        except Exception as e:
            logger.error(f"❌ Could not build booking_confirmed notification: {e}")
            return False
        return self._deliver(self._user_chat_id(user), text, "booking_confirmed")

    def booking_cancelled(self, booking: Booking, reason: Optional[str] = None) -> bool:
        try:
            user = booking.user
            text = render(
                "booking_cancelled",
                user.language,
                service=localize(booking.slot.service.names, user.language),
                when=format_slot_time(booking),
            )
            if reason:
                text += render("cancel_reason", user.language, reason=reason)
        except Exception as e:
            logger.error(f"❌ Could not build booking_cancelled notification: {e}")
            return False
        return self._deliver(self._user_chat_id(user), text, "booking_cancelled")

    def membership_created(self, membership: UserMembership) -> bool:
        try:
            text = render(
                "membership_created",
                STAFF_LANGUAGE,
                client=membership.user.display_name,
                plan=localize(membership.plan.names, STAFF_LANGUAGE),
                until=f"{membership.end_date:%d.%m.%Y}",
                payment=membership.payment_type,
            )
        except Exception as e:
            logger.error(f"❌ Could not build membership_created notification: {e}")
            return False
        return self._deliver(self._staff_chat_id(), text, "membership_created")

    def feedback_created(self, feedback: SessionFeedback) -> bool:
        try:
            booking = feedback.booking
            text = render(
                "feedback_created",
                STAFF_LANGUAGE,
                client=booking.user.display_name,
                service=localize(booking.slot.service.names, STAFF_LANGUAGE),
                date=f"{booking.slot.date:%d.%m.%Y}",
                rating=feedback.rating,
            )
            if feedback.comment:
                text += render("feedback_comment", STAFF_LANGUAGE, comment=feedback.comment)
        except Exception as e:
            logger.error(f"❌ Could not build feedback_created notification: {e}")
            return False
        return self._deliver(self._staff_chat_id(feedback=True), text, "feedback_created")


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    """Dependency injection for NotificationService"""
    return NotificationService(db)
