"""Policy repository - Database operations for cancellation policies"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import CancellationPolicy, Service, utcnow_naive


class PolicyRepository:
    """Repository for cancellation policy database operations"""

    @staticmethod
    def get_by_id(db: Session, policy_id: int) -> Optional[CancellationPolicy]:
        return (
            db.query(CancellationPolicy)
            .filter(CancellationPolicy.id == policy_id, CancellationPolicy.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def get_by_business(db: Session, business_id: int) -> list[CancellationPolicy]:
        return (
            db.query(CancellationPolicy)
            .filter(
                CancellationPolicy.business_id == business_id,
                CancellationPolicy.deleted_at.is_(None),
            )
            .order_by(CancellationPolicy.is_default.desc(), CancellationPolicy.hours_before.desc())
            .all()
        )

    @staticmethod
    def get_default(db: Session, business_id: int, for_update: bool = False) -> Optional[CancellationPolicy]:
        query = db.query(CancellationPolicy).filter(
            CancellationPolicy.business_id == business_id,
            CancellationPolicy.is_default.is_(True),
            CancellationPolicy.deleted_at.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def clear_default(db: Session, business_id: int, keep_id: Optional[int] = None) -> int:
        """Unset the default flag on every other live policy of the business"""
        query = db.query(CancellationPolicy).filter(
            CancellationPolicy.business_id == business_id,
            CancellationPolicy.is_default.is_(True),
            CancellationPolicy.deleted_at.is_(None),
        )
        if keep_id is not None:
            query = query.filter(CancellationPolicy.id != keep_id)
        count = query.update({CancellationPolicy.is_default: False}, synchronize_session="fetch")
        db.flush()
        return count

    @staticmethod
    def count_services_using(db: Session, policy_id: int) -> int:
        return (
            db.query(Service)
            .filter(Service.policy_id == policy_id, Service.deleted_at.is_(None))
            .count()
        )

    @staticmethod
    def create(db: Session, **fields) -> CancellationPolicy:
        policy = CancellationPolicy(**fields)
        db.add(policy)
        db.flush()
        return policy

    @staticmethod
    def update(db: Session, policy: CancellationPolicy, **fields) -> CancellationPolicy:
        for field, value in fields.items():
            setattr(policy, field, value)
        db.flush()
        return policy

    @staticmethod
    def soft_delete(db: Session, policy: CancellationPolicy) -> None:
        policy.deleted_at = utcnow_naive()
        policy.is_default = False
        db.flush()
