"""Settings domain schemas"""

from typing import Optional

from pydantic import BaseModel


class TelegramChatSettings(BaseModel):
    bookingsChatId: Optional[str] = None
    barOrdersChatId: Optional[str] = None
    feedbackChatId: Optional[str] = None


class TelegramChatSettingsUpdate(BaseModel):
    bookingsChatId: Optional[str] = None
    barOrdersChatId: Optional[str] = None
    feedbackChatId: Optional[str] = None
