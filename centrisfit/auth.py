import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session

from .database import get_db
from .models import AdminUser, User
from .security import verify_password

logger = logging.getLogger(__name__)

admin_security = HTTPBasic(auto_error=False)


async def get_current_user(
    x_telegram_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the Mini App user from the X-Telegram-Id header.

    The user must already exist (created through POST /api/users/telegram or
    /api/users/phone); unknown identities are rejected with 401.
    """
    if not x_telegram_id or not x_telegram_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Telegram-Id header")

    user = db.query(User).filter(User.telegram_id == x_telegram_id.strip()).first()
    if not user:
        logger.warning(f"⚠️ Unknown user identity: {x_telegram_id}")
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(
    credentials: Optional[HTTPBasicCredentials] = Depends(admin_security),
    db: Session = Depends(get_db),
) -> AdminUser:
    """HTTP Basic check against the admin_users table"""
    unauthorized = HTTPException(
        status_code=401,
        detail="Invalid admin credentials",
        headers={"WWW-Authenticate": "Basic"},
    )
    if credentials is None:
        raise unauthorized

    admin = (
        db.query(AdminUser)
        .filter(AdminUser.email == credentials.username.strip().lower())
        .first()
    )
    if not admin or not admin.is_active:
        raise unauthorized
    if not verify_password(credentials.password, admin.password_hash):
        logger.warning(f"⚠️ Failed admin login for {credentials.username}")
        raise unauthorized
    return admin
