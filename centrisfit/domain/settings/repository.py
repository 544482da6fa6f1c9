"""Settings repository - key/value rows in app_settings"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import AppSetting


class SettingsRepository:
    """Repository for application settings"""

    @staticmethod
    def get(db: Session, key: str) -> Optional[str]:
        row = db.get(AppSetting, key)
        return row.value if row else None

    @staticmethod
    def set(db: Session, key: str, value: Optional[str]) -> None:
        row = db.get(AppSetting, key)
        if row is None:
            db.add(AppSetting(key=key, value=value))
        else:
            row.value = value
