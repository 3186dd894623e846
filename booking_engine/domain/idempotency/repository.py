"""Idempotency repository - Database operations for idempotency keys"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import IdempotencyKey


class IdempotencyRepository:
    """Repository for idempotency key database operations"""

    @staticmethod
    def get(db: Session, scope: str, key: str, for_update: bool = False) -> Optional[IdempotencyKey]:
        query = db.query(IdempotencyKey).filter(IdempotencyKey.scope == scope, IdempotencyKey.key == key)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def create(db: Session, scope: str, key: str, request_hash: str, expires_at: datetime) -> IdempotencyKey:
        record = IdempotencyKey(scope=scope, key=key, request_hash=request_hash, expires_at=expires_at)
        db.add(record)
        db.flush()
        return record

    @staticmethod
    def delete(db: Session, record: IdempotencyKey) -> None:
        db.delete(record)
        db.flush()

    @staticmethod
    def purge_expired(db: Session, now: datetime) -> int:
        count = (
            db.query(IdempotencyKey)
            .filter(IdempotencyKey.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.flush()
        return count
