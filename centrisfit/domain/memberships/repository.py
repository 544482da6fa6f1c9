"""Membership repository - Database operations for plans, memberships and freezes"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import (
    CURRENT_MEMBERSHIP_STATUSES,
    MEMBERSHIP_ACTIVE,
    MEMBERSHIP_EXPIRED,
    MembershipFreeze,
    MembershipPlan,
    UserMembership,
)


class MembershipRepository:
    """Repository for membership database operations"""

    # ------------------------------------------------------------------ plans

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> Optional[MembershipPlan]:
        return db.get(MembershipPlan, plan_id)

    @staticmethod
    def list_plans(db: Session, active_only: bool = True) -> list[MembershipPlan]:
        query = db.query(MembershipPlan).options(selectinload(MembershipPlan.services))
        if active_only:
            query = query.filter(MembershipPlan.is_active.is_(True))
        return query.order_by(MembershipPlan.sort_order, MembershipPlan.id).all()

    @staticmethod
    def plan_in_use(db: Session, plan_id: int) -> bool:
        return (
            db.query(UserMembership.id).filter(UserMembership.plan_id == plan_id).first()
            is not None
        )

    @staticmethod
    def delete_plan(db: Session, plan: MembershipPlan) -> None:
        db.delete(plan)
        db.commit()

    # ------------------------------------------------------------ memberships

    @staticmethod
    def get_membership(db: Session, membership_id: int) -> Optional[UserMembership]:
        return db.get(UserMembership, membership_id)

    @staticmethod
    def get_current_membership(
        db: Session, user_id: int, status: Optional[str] = None
    ) -> Optional[UserMembership]:
        """Most recent ACTIVE/FROZEN membership, optionally narrowed to one status"""
        statuses = (status,) if status else CURRENT_MEMBERSHIP_STATUSES
        return (
            db.query(UserMembership)
            .options(
                joinedload(UserMembership.plan).selectinload(MembershipPlan.services),
                selectinload(UserMembership.freezes),
            )
            .filter(UserMembership.user_id == user_id, UserMembership.status.in_(statuses))
            .order_by(UserMembership.created_at.desc(), UserMembership.id.desc())
            .first()
        )

    @staticmethod
    def list_memberships(db: Session, status: Optional[str] = None) -> list[UserMembership]:
        query = db.query(UserMembership).options(
            joinedload(UserMembership.user), joinedload(UserMembership.plan)
        )
        if status:
            query = query.filter(UserMembership.status == status)
        return query.order_by(UserMembership.created_at.desc(), UserMembership.id.desc()).all()

    @staticmethod
    def expire_stale(db: Session, user_id: Optional[int], now: datetime) -> int:
        """
        Move ACTIVE memberships past their end date to EXPIRED; does not commit.

        ``user_id=None`` sweeps every user.
        """
        query = db.query(UserMembership).filter(
            UserMembership.status == MEMBERSHIP_ACTIVE,
            UserMembership.end_date < now,
        )
        if user_id is not None:
            query = query.filter(UserMembership.user_id == user_id)
        return query.update(
            {UserMembership.status: MEMBERSHIP_EXPIRED}, synchronize_session="fetch"
        )

    @staticmethod
    def try_decrement_visit(db: Session, membership_id: int) -> bool:
        """Take one visit in a single conditional UPDATE; does not commit"""
        updated = (
            db.query(UserMembership)
            .filter(
                UserMembership.id == membership_id,
                UserMembership.remaining_visits.isnot(None),
                UserMembership.remaining_visits > 0,
            )
            .update(
                {UserMembership.remaining_visits: UserMembership.remaining_visits - 1},
                synchronize_session="fetch",
            )
        )
        return updated == 1

    # ---------------------------------------------------------------- freezes

    @staticmethod
    def get_open_freeze(db: Session, membership_id: int) -> Optional[MembershipFreeze]:
        return (
            db.query(MembershipFreeze)
            .filter(
                MembershipFreeze.membership_id == membership_id,
                MembershipFreeze.freeze_end.is_(None),
            )
            .first()
        )
