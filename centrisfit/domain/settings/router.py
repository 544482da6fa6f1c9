"""Settings router - admin endpoints for notification chat ids"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from .schemas import TelegramChatSettings, TelegramChatSettingsUpdate
from .service import SettingsService

admin_router = APIRouter(
    prefix="/admin/settings", tags=["Admin: Settings"], dependencies=[Depends(require_admin)]
)


def get_settings_service(db: Session = Depends(get_db)) -> SettingsService:
    """Dependency injection for SettingsService"""
    return SettingsService(db)


@admin_router.get("/telegram", response_model=TelegramChatSettings)
async def get_telegram_settings(service: SettingsService = Depends(get_settings_service)):
    return service.get_telegram_chat_settings()


@admin_router.patch("/telegram", response_model=TelegramChatSettings)
async def update_telegram_settings(
    data: TelegramChatSettingsUpdate,
    service: SettingsService = Depends(get_settings_service),
):
    return service.update_telegram_chat_settings(data)
