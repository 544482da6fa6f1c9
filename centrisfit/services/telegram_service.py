"""
Telegram Bot API client
Sends HTML-formatted messages to users and staff chats
"""

import logging
from typing import Optional, Union

import httpx

from ..config import NOTIFICATION_TIMEOUT, TELEGRAM_API_URL, TELEGRAM_BOT_TOKEN

logger = logging.getLogger(__name__)


def send_message(chat_id: Union[str, int], text: str) -> tuple[bool, Optional[str]]:
    """
    Send a message through the Bot API sendMessage method.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not TELEGRAM_BOT_TOKEN:
        logger.debug("TELEGRAM_BOT_TOKEN not set, message skipped")
        return False, "Bot disabled"

    if not chat_id:
        return False, "No chat id"

    url = f"{TELEGRAM_API_URL}/bot{TELEGRAM_BOT_TOKEN}/sendMessage"
    try:
        response = httpx.post(
            url,
            json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
            timeout=NOTIFICATION_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error(f"❌ Telegram request failed for chat {chat_id}: {e}")
        return False, str(e)

    if response.status_code != 200:
        logger.warning(
            f"⚠️ Telegram sendMessage returned HTTP {response.status_code} for chat {chat_id}"
        )
        return False, f"HTTP {response.status_code}"

    return True, None
