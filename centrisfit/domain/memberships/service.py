"""Membership service - plans, purchase, freezes, visits and coverage"""

import logging
import math
from datetime import timedelta
from typing import NamedTuple, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import (
    CURRENT_MEMBERSHIP_STATUSES,
    MEMBERSHIP_ACTIVE,
    MEMBERSHIP_CANCELLED,
    MEMBERSHIP_FROZEN,
    PAYMENT_OFFLINE,
    PLAN_UNLIMITED,
    PLAN_VISITS,
    MembershipFreeze,
    MembershipPlan,
    UserMembership,
)
from ...services.notification_service import NotificationService
from ...shared.clock import Clock, utcnow
from ...shared.exceptions import (
    AlreadyHasMembership,
    FreezeLimitExceeded,
    InvalidStatusTransition,
    MembershipNotFound,
    NoOpenFreeze,
    NotActive,
    NotFrozen,
    NoVisitsRemaining,
    PlanInactive,
    PlanInUse,
    PlanNotFound,
    ServiceNotFound,
    UserNotFound,
)
from ...shared.localization import localize
from ..catalog.repository import CatalogRepository
from ..clients.repository import ClientRepository
from .repository import MembershipRepository
from .schemas import (
    FreezeResponse,
    IncludedService,
    MembershipPlanSummary,
    MembershipResponse,
    PlanAdminResponse,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Fields that may still change once a plan has been sold
PLAN_METADATA_FIELDS = {"nameRu", "nameUz", "price", "isActive", "sortOrder"}

PLAN_FIELD_COLUMNS = {
    "nameRu": "name_ru",
    "nameUz": "name_uz",
    "type": "type",
    "durationDays": "duration_days",
    "totalVisits": "total_visits",
    "maxFreezeDays": "max_freeze_days",
    "price": "price",
    "isActive": "is_active",
    "sortOrder": "sort_order",
}


class CoverageResult(NamedTuple):
    is_covered: bool
    membership_id: Optional[int] = None
    plan_type: Optional[str] = None
    remaining_visits: Optional[int] = None


NOT_COVERED = CoverageResult(is_covered=False)


def frozen_days(freeze_start, freeze_end) -> int:
    """Whole days credited for a freeze; any started day counts"""
    return max(math.ceil((freeze_end - freeze_start) / ONE_DAY), 0)


def plan_to_response(plan: MembershipPlan, language: str = "ru") -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        name=localize(plan.names, language),
        type=plan.type,
        durationDays=plan.duration_days,
        totalVisits=plan.total_visits,
        maxFreezeDays=plan.max_freeze_days,
        price=plan.price,
        includedServices=[
            IncludedService(id=s.id, name=localize(s.names, language)) for s in plan.services
        ],
    )


def plan_to_admin_response(plan: MembershipPlan) -> PlanAdminResponse:
    return PlanAdminResponse(
        id=plan.id,
        nameRu=plan.name_ru,
        nameUz=plan.name_uz,
        type=plan.type,
        durationDays=plan.duration_days,
        totalVisits=plan.total_visits,
        maxFreezeDays=plan.max_freeze_days,
        price=plan.price,
        isActive=plan.is_active,
        sortOrder=plan.sort_order,
        serviceIds=plan.included_service_ids,
    )


def membership_to_response(membership: UserMembership, language: str = "ru") -> MembershipResponse:
    plan = membership.plan
    open_freeze = membership.open_freeze
    return MembershipResponse(
        id=membership.id,
        userId=membership.user_id,
        userName=membership.user.display_name if membership.user else None,
        plan=MembershipPlanSummary(
            id=plan.id,
            name=localize(plan.names, language),
            type=plan.type,
            durationDays=plan.duration_days,
            totalVisits=plan.total_visits,
            maxFreezeDays=plan.max_freeze_days,
        ),
        startDate=membership.start_date,
        endDate=membership.end_date,
        remainingVisits=membership.remaining_visits,
        usedFreezeDays=membership.used_freeze_days,
        status=membership.status,
        isFrozen=membership.status == MEMBERSHIP_FROZEN,
        paymentType=membership.payment_type,
        currentFreeze=(
            FreezeResponse(
                id=open_freeze.id,
                freezeStart=open_freeze.freeze_start,
                freezeEnd=open_freeze.freeze_end,
                daysFrozen=open_freeze.days_frozen,
            )
            if open_freeze
            else None
        ),
        includedServiceIds=plan.included_service_ids,
    )


class MembershipService:
    """Service layer for membership business logic"""

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.repo = MembershipRepository()
        self.catalog = CatalogRepository()
        self.clients = ClientRepository()
        self.clock = clock
        self.notifications = notifications or NotificationService(db)

    # ========================================================================
    # PLANS
    # ========================================================================

    def list_plans(self, language: str = "ru") -> list[PlanResponse]:
        """Active plans for the client app, names resolved to ``language``"""
        return [plan_to_response(p, language) for p in self.repo.list_plans(self.db)]

    def list_all_plans(self) -> list[MembershipPlan]:
        return self.repo.list_plans(self.db, active_only=False)

    def get_plan(self, plan_id: int) -> MembershipPlan:
        plan = self.repo.get_plan(self.db, plan_id)
        if not plan:
            raise PlanNotFound()
        return plan

    def _resolve_services(self, service_ids: list[int]):
        unique_ids = list(dict.fromkeys(service_ids))
        services = self.catalog.get_services(self.db, unique_ids)
        missing = set(unique_ids) - {s.id for s in services}
        if missing:
            raise ServiceNotFound(f"Unknown service ids: {sorted(missing)}")
        return sorted(services, key=lambda s: s.id)

    def create_plan(self, data: PlanCreate) -> MembershipPlan:
        plan = MembershipPlan(
            name_ru=data.nameRu,
            name_uz=data.nameUz,
            type=data.type,
            duration_days=data.durationDays,
            total_visits=data.totalVisits,
            max_freeze_days=data.maxFreezeDays,
            price=data.price,
            is_active=data.isActive,
            sort_order=data.sortOrder,
        )
        plan.services = self._resolve_services(data.serviceIds)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"🎫 Membership plan {plan.id} created: {plan.name_ru}")
        return plan

    def update_plan(self, plan_id: int, data: PlanUpdate) -> MembershipPlan:
        """
        Update a plan.

        Once any membership references the plan, only its names, price,
        visibility and sort order may change; terms already sold stay fixed.
        """
        plan = self.get_plan(plan_id)
        changes = {f: getattr(data, f) for f in data.model_fields_set}

        structural = {
            field
            for field, value in changes.items()
            if field not in PLAN_METADATA_FIELDS and not self._same_as_stored(plan, field, value)
        }
        if structural and self.repo.plan_in_use(self.db, plan_id):
            raise PlanInUse(
                "Plan is already sold; only name, price, visibility and order can change "
                f"(got {', '.join(sorted(structural))})"
            )

        for field in ("nameRu", "durationDays", "maxFreezeDays", "price", "isActive", "sortOrder"):
            if field in changes and changes[field] is None:
                raise HTTPException(status_code=422, detail=f"{field} cannot be empty")

        new_type = changes.get("type") or plan.type
        if "totalVisits" in changes:
            new_visits = changes["totalVisits"]
        else:
            new_visits = None if new_type == PLAN_UNLIMITED else plan.total_visits
        if new_type == PLAN_VISITS and new_visits is None:
            raise HTTPException(status_code=422, detail="totalVisits is required for VISITS plans")
        if new_type == PLAN_UNLIMITED and new_visits is not None:
            raise HTTPException(
                status_code=422, detail="totalVisits must be empty for UNLIMITED plans"
            )
        changes["type"] = new_type
        changes["totalVisits"] = new_visits

        for field, column in PLAN_FIELD_COLUMNS.items():
            if field in changes:
                setattr(plan, column, changes[field])
        if data.serviceIds is not None:
            plan.services = self._resolve_services(data.serviceIds)

        self.db.commit()
        self.db.refresh(plan)
        return plan

    @staticmethod
    def _same_as_stored(plan: MembershipPlan, field: str, value) -> bool:
        if field == "serviceIds":
            return value is None or sorted(set(value)) == plan.included_service_ids
        return getattr(plan, PLAN_FIELD_COLUMNS[field]) == value

    def delete_plan(self, plan_id: int) -> dict:
        plan = self.get_plan(plan_id)
        if self.repo.plan_in_use(self.db, plan_id):
            raise PlanInUse("Plan is used by memberships; deactivate it instead")
        self.repo.delete_plan(self.db, plan)
        logger.info(f"🗑️ Membership plan {plan_id} deleted")
        return {"message": "Plan deleted"}

    # ========================================================================
    # MEMBERSHIPS
    # ========================================================================

    def expire_stale_memberships(self, user_id: Optional[int] = None) -> int:
        """
        Lazy expiry: ACTIVE memberships whose end date has passed become EXPIRED.

        Runs for one user before their membership is read, or for everyone
        (``user_id=None``) before staff listings.
        """
        expired = self.repo.expire_stale(self.db, user_id, self.clock())
        if expired:
            self.db.commit()
            scope = f"user {user_id}" if user_id is not None else "all users"
            logger.info(f"⌛ Expired {expired} membership(s) for {scope}")
        return expired

    def get_current_membership(self, user_id: int) -> Optional[UserMembership]:
        self.expire_stale_memberships(user_id)
        return self.repo.get_current_membership(self.db, user_id)

    def get_membership(self, membership_id: int) -> UserMembership:
        membership = self.repo.get_membership(self.db, membership_id)
        if not membership:
            raise MembershipNotFound()
        return membership

    def list_memberships(self, status: Optional[str] = None) -> list[UserMembership]:
        self.expire_stale_memberships()
        return self.repo.list_memberships(self.db, status)

    def purchase_membership(
        self, user_id: int, plan_id: int, payment_type: str = PAYMENT_OFFLINE
    ) -> UserMembership:
        """Client buys a plan from the app"""
        return self._create_membership(user_id, plan_id, payment_type)

    def assign_membership(
        self, user_id: int, plan_id: int, payment_type: str = PAYMENT_OFFLINE
    ) -> UserMembership:
        """Staff issues a plan to a client, e.g. after payment at the desk"""
        if not self.clients.get_user(self.db, user_id):
            raise UserNotFound()
        return self._create_membership(user_id, plan_id, payment_type)

    def _create_membership(self, user_id: int, plan_id: int, payment_type: str) -> UserMembership:
        plan = self.get_plan(plan_id)
        if not plan.is_active:
            raise PlanInactive()

        self.expire_stale_memberships(user_id)
        if self.repo.get_current_membership(self.db, user_id):
            raise AlreadyHasMembership()

        now = self.clock()
        membership = UserMembership(
            user_id=user_id,
            plan_id=plan.id,
            start_date=now,
            end_date=now + timedelta(days=plan.duration_days),
            remaining_visits=plan.total_visits if plan.type == PLAN_VISITS else None,
            used_freeze_days=0,
            status=MEMBERSHIP_ACTIVE,
            payment_type=payment_type,
        )
        self.db.add(membership)
        self.db.commit()
        self.db.refresh(membership)
        logger.info(
            f"🎫 Membership {membership.id} ({plan.type}) created for user {user_id}, "
            f"ends {membership.end_date:%Y-%m-%d}"
        )

        self.notifications.membership_created(membership)
        return membership

    def freeze_membership(self, membership_id: int) -> UserMembership:
        membership = self.get_membership(membership_id)
        self.expire_stale_memberships(membership.user_id)
        self.db.refresh(membership)

        if membership.status != MEMBERSHIP_ACTIVE:
            raise NotActive()
        if membership.used_freeze_days >= membership.plan.max_freeze_days:
            raise FreezeLimitExceeded(
                f"Freeze limit is exhausted ({membership.plan.max_freeze_days} days)"
            )

        now = self.clock()
        # Status flip first so a concurrent freeze of the same membership loses
        flipped = (
            self.db.query(UserMembership)
            .filter(UserMembership.id == membership_id, UserMembership.status == MEMBERSHIP_ACTIVE)
            .update({UserMembership.status: MEMBERSHIP_FROZEN}, synchronize_session="fetch")
        )
        if not flipped:
            self.db.rollback()
            raise NotActive()

        self.db.add(MembershipFreeze(membership_id=membership_id, freeze_start=now))
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"❄️ Membership {membership_id} frozen")
        return membership

    def unfreeze_membership(self, membership_id: int) -> tuple[UserMembership, int]:
        """Close the open freeze and push the end date by the frozen days"""
        membership = self.get_membership(membership_id)
        if membership.status != MEMBERSHIP_FROZEN:
            raise NotFrozen()

        freeze = self.repo.get_open_freeze(self.db, membership_id)
        if not freeze:
            raise NoOpenFreeze()

        now = self.clock()
        days = frozen_days(freeze.freeze_start, now)
        # Credited in full even past max_freeze_days; the limit only gates new freezes
        thawed = (
            self.db.query(UserMembership)
            .filter(UserMembership.id == membership_id, UserMembership.status == MEMBERSHIP_FROZEN)
            .update(
                {
                    UserMembership.status: MEMBERSHIP_ACTIVE,
                    UserMembership.end_date: membership.end_date + timedelta(days=days),
                    UserMembership.used_freeze_days: UserMembership.used_freeze_days + days,
                },
                synchronize_session="fetch",
            )
        )
        if not thawed:
            self.db.rollback()
            raise NotFrozen()

        freeze.freeze_end = now
        freeze.days_frozen = days
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"🔥 Membership {membership_id} unfrozen, extended by {days} days")
        return membership, days

    def _require_current(self, user_id: int) -> UserMembership:
        membership = self.get_current_membership(user_id)
        if not membership:
            raise MembershipNotFound("You have no active membership")
        return membership

    def freeze_my_membership(self, user_id: int) -> UserMembership:
        return self.freeze_membership(self._require_current(user_id).id)

    def unfreeze_my_membership(self, user_id: int) -> tuple[UserMembership, int]:
        return self.unfreeze_membership(self._require_current(user_id).id)

    def update_membership_status(self, membership_id: int, status: str) -> UserMembership:
        """Manual status change by staff; only cancellation of a current membership"""
        membership = self.get_membership(membership_id)
        if status != MEMBERSHIP_CANCELLED or membership.status not in CURRENT_MEMBERSHIP_STATUSES:
            raise InvalidStatusTransition(
                f"Cannot change membership from {membership.status} to {status}"
            )

        freeze = self.repo.get_open_freeze(self.db, membership_id)
        if freeze:
            now = self.clock()
            freeze.freeze_end = now
            freeze.days_frozen = frozen_days(freeze.freeze_start, now)

        membership.status = MEMBERSHIP_CANCELLED
        self.db.commit()
        self.db.refresh(membership)
        logger.info(f"🚫 Membership {membership_id} cancelled")
        return membership

    # ========================================================================
    # VISITS AND COVERAGE
    # ========================================================================

    def is_service_covered(self, user_id: int, service_id: int) -> CoverageResult:
        """
        Whether the user's current membership pays for ``service_id``.

        A frozen membership covers nothing, and a VISITS plan with no visits
        left covers nothing even when the service is included.
        """
        membership = self.get_current_membership(user_id)
        if not membership or membership.status != MEMBERSHIP_ACTIVE:
            return NOT_COVERED

        plan = membership.plan
        if service_id not in plan.included_service_ids:
            return NOT_COVERED
        if plan.type == PLAN_VISITS and (membership.remaining_visits or 0) <= 0:
            return NOT_COVERED

        return CoverageResult(
            is_covered=True,
            membership_id=membership.id,
            plan_type=plan.type,
            remaining_visits=membership.remaining_visits,
        )

    def decrement_visit(self, membership_id: int, commit: bool = True) -> None:
        """
        Take one visit off a VISITS membership.

        With ``commit=False`` the update joins the caller's transaction.
        """
        if not self.repo.try_decrement_visit(self.db, membership_id):
            raise NoVisitsRemaining()
        if commit:
            self.db.commit()
