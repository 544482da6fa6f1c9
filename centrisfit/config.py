import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./centrisfit.db")

# Telegram Bot API (notifications only)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_API_URL = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
NOTIFICATION_TIMEOUT = float(os.getenv("NOTIFICATION_TIMEOUT", "5"))

# Fallback chat ids when nothing is stored in app_settings
ADMIN_CHAT_ID = os.getenv("ADMIN_CHAT_ID")
BOOKINGS_CHAT_ID = os.getenv("BOOKINGS_CHAT_ID")
FEEDBACK_CHAT_ID = os.getenv("FEEDBACK_CHAT_ID")

# Default admin created by the bootstrap step
DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@centrisfit.com")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD")
if not DEFAULT_ADMIN_PASSWORD:
    import warnings

    warnings.warn(
        "DEFAULT_ADMIN_PASSWORD not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    DEFAULT_ADMIN_PASSWORD = "admin123"  # noqa: S105 - Dev fallback only

# Mini App and admin dashboard origins
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
ADMIN_URL = os.getenv("ADMIN_URL", "http://localhost:5174")
