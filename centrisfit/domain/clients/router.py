"""Client router - sign-in upserts and admin client management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ..bookings.service import booking_to_response
from ..memberships.service import membership_to_response
from .schemas import (
    ClientCreate,
    ClientDetailsResponse,
    ClientResponse,
    MergeResult,
    PhoneLogin,
    TelegramLogin,
)
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])
admin_router = APIRouter(
    prefix="/admin/clients", tags=["Admin: Clients"], dependencies=[Depends(require_admin)]
)


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


def to_client_response(user: User, bookings_count: int = 0, orders_count: int = 0) -> ClientResponse:
    return ClientResponse(
        id=user.id,
        telegramId=user.telegram_id,
        firstName=user.first_name,
        lastName=user.last_name,
        username=user.username,
        phone=user.phone,
        language=user.language,
        hasTelegram=user.has_telegram_identity,
        createdAt=user.created_at,
        bookingsCount=bookings_count,
        ordersCount=orders_count,
    )


# ============================================================================
# CLIENT APP
# ============================================================================


@router.post("/telegram", response_model=ClientResponse)
async def telegram_login(data: TelegramLogin, service: ClientService = Depends(get_client_service)):
    """Find or create the user behind a Telegram account"""
    return to_client_response(service.find_or_create_by_telegram(data))


@router.post("/phone", response_model=ClientResponse)
async def phone_login(data: PhoneLogin, service: ClientService = Depends(get_client_service)):
    """Find or create a phone-only user"""
    return to_client_response(service.find_or_create_by_phone(data.phone))


@router.get("/me", response_model=ClientResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return to_client_response(current_user)


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("", response_model=list[ClientResponse])
async def list_clients(
    search: Optional[str] = Query(None),
    service: ClientService = Depends(get_client_service),
):
    return [to_client_response(u, b, o) for u, b, o in service.list_clients(search)]


@admin_router.post("", response_model=ClientResponse, status_code=201)
async def create_client(data: ClientCreate, service: ClientService = Depends(get_client_service)):
    """Add a client without Telegram"""
    return to_client_response(service.create_manual_client(data))


@admin_router.post("/merge-duplicates", response_model=MergeResult)
async def merge_duplicates(service: ClientService = Depends(get_client_service)):
    """Merge clients sharing the same phone number"""
    return service.merge_duplicate_phones()


@admin_router.get("/{client_id}", response_model=ClientDetailsResponse)
async def get_client_details(client_id: int, service: ClientService = Depends(get_client_service)):
    user, bookings, memberships = service.get_client_details(client_id)
    base = to_client_response(user, len(user.bookings), len(user.bar_orders))
    return ClientDetailsResponse(
        **base.model_dump(),
        bookings=[booking_to_response(b) for b in bookings],
        memberships=[membership_to_response(m) for m in memberships],
    )
