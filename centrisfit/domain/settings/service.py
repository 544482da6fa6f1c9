"""Settings service - Telegram chat ids used for staff notifications"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import ADMIN_CHAT_ID, BOOKINGS_CHAT_ID, FEEDBACK_CHAT_ID
from .repository import SettingsRepository
from .schemas import TelegramChatSettings, TelegramChatSettingsUpdate

logger = logging.getLogger(__name__)

BOOKINGS_CHAT_KEY = "BOOKINGS_CHAT_ID"
BAR_ORDERS_CHAT_KEY = "BAR_ORDERS_CHAT_ID"
FEEDBACK_CHAT_KEY = "FEEDBACK_CHAT_ID"


class SettingsService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = SettingsRepository()

    def get_telegram_chat_settings(self) -> TelegramChatSettings:
        return TelegramChatSettings(
            bookingsChatId=self.repo.get(self.db, BOOKINGS_CHAT_KEY),
            barOrdersChatId=self.repo.get(self.db, BAR_ORDERS_CHAT_KEY),
            feedbackChatId=self.repo.get(self.db, FEEDBACK_CHAT_KEY),
        )

    def update_telegram_chat_settings(
        self, data: TelegramChatSettingsUpdate
    ) -> TelegramChatSettings:
        # Only fields present in the request are touched; blank clears the value
        for field, key in (
            ("bookingsChatId", BOOKINGS_CHAT_KEY),
            ("barOrdersChatId", BAR_ORDERS_CHAT_KEY),
            ("feedbackChatId", FEEDBACK_CHAT_KEY),
        ):
            if field in data.model_fields_set:
                value = getattr(data, field)
                self.repo.set(self.db, key, (value or "").strip() or None)
        self.db.commit()
        logger.info("⚙️ Telegram chat settings updated")
        return self.get_telegram_chat_settings()

    def bookings_chat_id(self) -> Optional[str]:
        """Stored chat id, then BOOKINGS_CHAT_ID, then ADMIN_CHAT_ID from the environment"""
        return self.repo.get(self.db, BOOKINGS_CHAT_KEY) or BOOKINGS_CHAT_ID or ADMIN_CHAT_ID

    def feedback_chat_id(self) -> Optional[str]:
        """Stored feedback chat, then FEEDBACK_CHAT_ID, then the bookings chat"""
        return (
            self.repo.get(self.db, FEEDBACK_CHAT_KEY)
            or FEEDBACK_CHAT_ID
            or self.bookings_chat_id()
        )
