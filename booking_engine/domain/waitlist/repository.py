"""Waitlist repository - Database operations for waitlist entries"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from ...models import WaitlistEntry
from ...states import WaitlistPriority, WaitlistStatus

OPEN_STATUSES = (WaitlistStatus.ACTIVE, WaitlistStatus.NOTIFIED)

priority_rank = case(
    {member: member.rank for member in WaitlistPriority},
    value=WaitlistEntry.priority,
    else_=0,
)


class WaitlistRepository:
    """Repository for waitlist database operations"""

    @staticmethod
    def get_by_id(db: Session, entry_id: int, for_update: bool = False) -> Optional[WaitlistEntry]:
        query = db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_entries(
        db: Session,
        business_id: int,
        service_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        status: Optional[WaitlistStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WaitlistEntry]:
        """Entries in notification order: tier descending, then first come first served"""
        query = db.query(WaitlistEntry).filter(WaitlistEntry.business_id == business_id)
        if service_id is not None:
            query = query.filter(WaitlistEntry.service_id == service_id)
        if customer_id is not None:
            query = query.filter(WaitlistEntry.customer_id == customer_id)
        if status is not None:
            query = query.filter(WaitlistEntry.status == status)
        return (
            query.order_by(priority_rank.desc(), WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_open_for_customer(
        db: Session, business_id: int, service_id: Optional[int], customer_id: int
    ) -> Optional[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.business_id == business_id,
                WaitlistEntry.service_id == service_id,
                WaitlistEntry.customer_id == customer_id,
                WaitlistEntry.status.in_(OPEN_STATUSES),
            )
            .first()
        )

    @staticmethod
    def get_active_candidates(
        db: Session, business_id: int, service_id: Optional[int]
    ) -> list[WaitlistEntry]:
        """Active entries that could take a slot of this service, locked for the selection"""
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.business_id == business_id,
            WaitlistEntry.status == WaitlistStatus.ACTIVE,
        )
        if service_id is not None:
            query = query.filter(
                (WaitlistEntry.service_id == service_id) | WaitlistEntry.service_id.is_(None)
            )
        return (
            query.order_by(priority_rank.desc(), WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc())
            .with_for_update()
            .all()
        )

    @staticmethod
    def get_overdue_notified(
        db: Session,
        now: datetime,
        business_id: Optional[int] = None,
        service_id: Optional[int] = None,
    ) -> list[WaitlistEntry]:
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.response_deadline.isnot(None),
            WaitlistEntry.response_deadline < now,
        )
        if business_id is not None:
            query = query.filter(WaitlistEntry.business_id == business_id)
        if service_id is not None:
            query = query.filter(
                (WaitlistEntry.service_id == service_id) | WaitlistEntry.service_id.is_(None)
            )
        return query.with_for_update().all()

    @staticmethod
    def create(db: Session, **fields) -> WaitlistEntry:
        entry = WaitlistEntry(**fields)
        db.add(entry)
        db.flush()
        return entry
