"""Idempotency service - Guards booking creation against duplicate client retries"""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Callable, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import IDEMPOTENCY_TTL_HOURS
from ...database import transaction
from ...exceptions import BadRequestError, ConflictError
from ...models import IdempotencyKey
from ...shared.timeutils import from_storage, to_storage, utcnow
from ...states import IdempotencyStatus, ensure_transition
from .repository import IdempotencyRepository

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 255


class IdempotentOutcome(NamedTuple):
    booking_id: Optional[int]
    replayed: bool = False
    pending: bool = False


def request_hash(payload: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of a normalized request payload"""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyService:
    """
    Exactly-once outcome for a keyed operation.

    A first call records a pending key and commits it, so concurrent duplicates
    collide on the (scope, key) constraint. The operation and the completion of
    the key then commit together. A retry with the same payload gets the stored
    outcome back; a retry with a different payload is a key reuse conflict.
    """

    def __init__(self, db: Session, ttl_hours: Optional[int] = None):
        self.db = db
        self.repo = IdempotencyRepository()
        self.ttl = timedelta(hours=ttl_hours or IDEMPOTENCY_TTL_HOURS)

    def _claim(self, scope: str, key: str, digest: str):
        """Return (record, outcome); outcome is set when the caller must not run the operation"""
        now = utcnow()
        expires_at = to_storage(now + self.ttl)

        with transaction(self.db):
            record = self.repo.get(self.db, scope, key, for_update=True)

            if record is not None and from_storage(record.expires_at) <= now:
                logger.info(f"Idempotency key {scope}/{key} expired; starting over")
                self.repo.delete(self.db, record)
                record = None

            if record is None:
                # A concurrent insert of the same key raises IntegrityError to execute()
                record = self.repo.create(self.db, scope, key, digest, expires_at)
                return record, None

            if record.request_hash != digest:
                raise ConflictError(
                    "Idempotency key was already used with a different request",
                    code="idempotency_key_reused",
                )

            status = IdempotencyStatus(record.status)
            if status == IdempotencyStatus.COMPLETED:
                logger.info(f"🔁 Replaying stored outcome for idempotency key {scope}/{key}")
                return record, IdempotentOutcome(record.booking_id, replayed=True)
            if status == IdempotencyStatus.PENDING:
                return record, IdempotentOutcome(None, replayed=True, pending=True)

            # A failed attempt may be retried with the same payload
            record.status = ensure_transition(status, IdempotencyStatus.PENDING, "idempotency")
            record.error_detail = None
            record.expires_at = expires_at
            self.db.flush()
            return record, None

    def execute(
        self,
        scope: str,
        key: str,
        payload: dict[str, Any],
        operation: Callable[[], Any],
    ) -> IdempotentOutcome:
        """
        Run `operation` at most once per (scope, key).

        `operation` must return an object with an `id` (the created booking). It runs
        inside a transaction that also marks the key completed.
        """
        if not key or len(key) > MAX_KEY_LENGTH:
            raise BadRequestError(f"Idempotency key must be 1-{MAX_KEY_LENGTH} characters")

        digest = request_hash(payload)
        try:
            record, outcome = self._claim(scope, key, digest)
        except IntegrityError:
            raise ConflictError(
                "Request with this idempotency key is already in progress",
                code="idempotency_in_progress",
            )
        if outcome is not None:
            return outcome

        record_id = record.id
        try:
            with transaction(self.db):
                result = operation()
                record = self.db.get(IdempotencyKey, record_id)
                record.status = ensure_transition(record.status, IdempotencyStatus.COMPLETED, "idempotency")
                record.booking_id = result.id
                self.db.flush()
        except Exception as e:
            self._mark_failed(record_id, e)
            raise

        logger.info(f"✅ Idempotency key {scope}/{key} completed with booking {result.id}")
        return IdempotentOutcome(result.id)

    def _mark_failed(self, record_id: int, error: Exception) -> None:
        with transaction(self.db):
            record = self.db.get(IdempotencyKey, record_id)
            if record is None:
                return
            record.status = ensure_transition(record.status, IdempotencyStatus.FAILED, "idempotency")
            record.error_detail = str(getattr(error, "detail", error))[:1000]
            self.db.flush()
        logger.warning(f"Idempotency key {record.scope}/{record.key} failed: {record.error_detail}")

    def purge_expired(self) -> int:
        with transaction(self.db):
            count = self.repo.purge_expired(self.db, to_storage(utcnow()))
        if count:
            logger.info(f"Purged {count} expired idempotency keys")
        return count
