"""Slot router - public availability and admin schedule management"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from .schemas import BulkSlotCreate, BulkSlotResult, SlotCreate, SlotResponse, SlotUpdate
from .service import SlotService, slot_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])
admin_router = APIRouter(
    prefix="/admin/slots", tags=["Admin: Slots"], dependencies=[Depends(require_admin)]
)


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    """Dependency injection for SlotService"""
    return SlotService(db)


@router.get("/available", response_model=list[SlotResponse])
async def get_available_slots(
    serviceId: int = Query(...),
    day: date = Query(..., alias="date"),
    lang: str = Query("ru"),
    service: SlotService = Depends(get_slot_service),
):
    """Bookable slots of a service for one day"""
    return [slot_to_response(s, lang) for s in service.list_available_slots(serviceId, day)]


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("", response_model=list[SlotResponse])
async def list_slots(
    day: Optional[date] = Query(None, alias="date"),
    serviceId: Optional[int] = Query(None),
    service: SlotService = Depends(get_slot_service),
):
    return [slot_to_response(s) for s in service.list_slots(day, serviceId)]


@admin_router.post("", response_model=SlotResponse, status_code=201)
async def create_slot(data: SlotCreate, service: SlotService = Depends(get_slot_service)):
    return slot_to_response(service.create_slot(data))


@admin_router.post("/bulk", response_model=BulkSlotResult, status_code=201)
async def create_bulk_slots(data: BulkSlotCreate, service: SlotService = Depends(get_slot_service)):
    """Create slots for every selected date and time window in one batch"""
    try:
        created = service.create_bulk_slots(data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return BulkSlotResult(created=created)


@admin_router.patch("/{slot_id}", response_model=SlotResponse)
async def update_slot(
    slot_id: int, data: SlotUpdate, service: SlotService = Depends(get_slot_service)
):
    return slot_to_response(service.update_slot(slot_id, data))


@admin_router.delete("/{slot_id}")
async def delete_slot(slot_id: int, service: SlotService = Depends(get_slot_service)):
    return service.delete_slot(slot_id)
