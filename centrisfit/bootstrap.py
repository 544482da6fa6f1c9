"""
Startup bootstrap.

Runs once from the application lifespan: creates missing tables and makes
sure a default admin account exists. Safe to run any number of times.
"""

import logging

from sqlalchemy.orm import Session

from .config import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD
from .database import Base, engine
from .models import AdminUser
from .security import DEFAULT_ROUNDS, hash_password

logger = logging.getLogger(__name__)


def create_tables(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def ensure_default_admin(
    db: Session,
    email: str = DEFAULT_ADMIN_EMAIL,
    password: str = DEFAULT_ADMIN_PASSWORD,
    rounds: int = DEFAULT_ROUNDS,
) -> AdminUser:
    """Create the default admin if missing; an existing account is left untouched"""
    email = email.strip().lower()
    admin = db.query(AdminUser).filter(AdminUser.email == email).first()
    if admin:
        logger.debug(f"ℹ️ Default admin {email} already exists")
        return admin

    admin = AdminUser(
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        name="Admin",
        role="SUPER_ADMIN",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info(f"👑 Default admin created: {email}")
    return admin


def bootstrap(db: Session) -> None:
    create_tables(db.get_bind())
    ensure_default_admin(db)
