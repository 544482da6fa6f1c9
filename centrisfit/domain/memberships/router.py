"""Membership router - client app endpoints and admin management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from ...services.notification_service import NotificationService, get_notification_service
from .schemas import (
    AssignMembershipRequest,
    CoverageResponse,
    MembershipResponse,
    MembershipStatusUpdate,
    PlanAdminResponse,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    PurchaseRequest,
    UnfreezeResponse,
)
from .service import MembershipService, membership_to_response, plan_to_admin_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memberships", tags=["Memberships"])
admin_router = APIRouter(
    prefix="/admin", tags=["Admin: Memberships"], dependencies=[Depends(require_admin)]
)


def get_membership_service(
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> MembershipService:
    """Dependency injection for MembershipService"""
    return MembershipService(db, notifications=notifications)


def _unfreeze_response(result, language: str) -> UnfreezeResponse:
    membership, days = result
    return UnfreezeResponse(
        message=f"Membership unfrozen and extended by {days} days",
        daysFrozen=days,
        newEndDate=membership.end_date,
        membership=membership_to_response(membership, language),
    )


# ============================================================================
# CLIENT APP
# ============================================================================


@router.get("/plans", response_model=list[PlanResponse])
async def get_plans(
    lang: str = Query("ru"),
    service: MembershipService = Depends(get_membership_service),
):
    """Plans on sale"""
    return service.list_plans(lang)


@router.get("/my", response_model=Optional[MembershipResponse])
async def get_my_membership(
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
):
    """Current ACTIVE or FROZEN membership, or null"""
    membership = service.get_current_membership(current_user.id)
    if not membership:
        return None
    return membership_to_response(membership, current_user.language)


@router.post("/my/freeze", response_model=MembershipResponse)
async def freeze_my_membership(
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
):
    membership = service.freeze_my_membership(current_user.id)
    return membership_to_response(membership, current_user.language)


@router.post("/my/unfreeze", response_model=UnfreezeResponse)
async def unfreeze_my_membership(
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
):
    return _unfreeze_response(service.unfreeze_my_membership(current_user.id), current_user.language)


@router.post("/purchase", response_model=MembershipResponse, status_code=201)
async def purchase_membership(
    data: PurchaseRequest,
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
):
    membership = service.purchase_membership(current_user.id, data.planId, data.paymentType)
    return membership_to_response(membership, current_user.language)


@router.get("/check-service", response_model=CoverageResponse)
async def check_service(
    serviceId: int = Query(...),
    current_user: User = Depends(get_current_user),
    service: MembershipService = Depends(get_membership_service),
):
    """Whether booking this service would be paid by the membership"""
    coverage = service.is_service_covered(current_user.id, serviceId)
    return CoverageResponse(
        isCovered=coverage.is_covered,
        membershipId=coverage.membership_id,
        planType=coverage.plan_type,
        remainingVisits=coverage.remaining_visits,
    )


# ============================================================================
# ADMIN: PLANS
# ============================================================================


@admin_router.get("/membership-plans", response_model=list[PlanAdminResponse])
async def list_all_plans(service: MembershipService = Depends(get_membership_service)):
    return [plan_to_admin_response(p) for p in service.list_all_plans()]


@admin_router.post("/membership-plans", response_model=PlanAdminResponse, status_code=201)
async def create_plan(data: PlanCreate, service: MembershipService = Depends(get_membership_service)):
    return plan_to_admin_response(service.create_plan(data))


@admin_router.patch("/membership-plans/{plan_id}", response_model=PlanAdminResponse)
async def update_plan(
    plan_id: int, data: PlanUpdate, service: MembershipService = Depends(get_membership_service)
):
    return plan_to_admin_response(service.update_plan(plan_id, data))


@admin_router.delete("/membership-plans/{plan_id}")
async def delete_plan(plan_id: int, service: MembershipService = Depends(get_membership_service)):
    return service.delete_plan(plan_id)


# ============================================================================
# ADMIN: USER MEMBERSHIPS
# ============================================================================


@admin_router.get("/memberships", response_model=list[MembershipResponse])
async def list_memberships(
    status: Optional[str] = Query(None),
    service: MembershipService = Depends(get_membership_service),
):
    return [membership_to_response(m) for m in service.list_memberships(status)]


@admin_router.post("/memberships", response_model=MembershipResponse, status_code=201)
async def assign_membership(
    data: AssignMembershipRequest,
    service: MembershipService = Depends(get_membership_service),
):
    membership = service.assign_membership(data.userId, data.planId, data.paymentType)
    return membership_to_response(membership)


@admin_router.post("/memberships/{membership_id}/freeze", response_model=MembershipResponse)
async def freeze_membership(
    membership_id: int, service: MembershipService = Depends(get_membership_service)
):
    return membership_to_response(service.freeze_membership(membership_id))


@admin_router.post("/memberships/{membership_id}/unfreeze", response_model=UnfreezeResponse)
async def unfreeze_membership(
    membership_id: int, service: MembershipService = Depends(get_membership_service)
):
    return _unfreeze_response(service.unfreeze_membership(membership_id), "ru")


@admin_router.patch("/memberships/{membership_id}/status", response_model=MembershipResponse)
async def update_membership_status(
    membership_id: int,
    data: MembershipStatusUpdate,
    service: MembershipService = Depends(get_membership_service),
):
    return membership_to_response(service.update_membership_status(membership_id, data.status))
