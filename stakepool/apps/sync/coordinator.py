"""
Idempotency coordinator.

Guards an operation that writes to both the ledger and the database so its
side effects happen at most once per key:

    absent  --begin-->  pending  --complete-->  completed   (replayed forever)
                           |
                           +------fail------->  failed      (may be re-begun)

A pending record older than the staleness window may be reclaimed by a new
attempt; otherwise a second begin on a pending key is a conflict. Every
transition is a compare-and-set UPDATE filtered on the expected state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from stakepool.apps.ledger.errors import LedgerOutcomeUnknown

from .models import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyError(Exception):
    pass


class IdempotencyConflict(IdempotencyError):
    """Another attempt holds the key; poll instead of resubmitting."""

    def __init__(self, key: str):
        super().__init__(f"Operation {key} is already in progress")
        self.key = key


class InvalidTransition(IdempotencyError):
    def __init__(self, key: str, target: str):
        super().__init__(f"Cannot move {key} to {target}: not pending")
        self.key = key
        self.target = target


def request_idempotency_key(request, body: dict) -> Optional[str]:
    """Idempotency-Key header, else the body's idempotency_key. ValueError if malformed."""
    key = request.headers.get("Idempotency-Key") or body.get("idempotency_key")
    if key is None:
        return None
    max_length = IdempotencyRecord._meta.get_field("key").max_length
    if not isinstance(key, str) or not 0 < len(key) <= max_length:
        raise ValueError("invalid idempotency key")
    return key


@dataclass
class BeginResult:
    key: str
    replay: bool
    tx_signature: Optional[str] = None
    db_record_id: Optional[str] = None
    attempts: int = 1


class IdempotencyCoordinator:
    def __init__(self, pending_ttl_seconds: Optional[int] = None, clock: Callable = timezone.now):
        self.pending_ttl = timedelta(
            seconds=pending_ttl_seconds
            if pending_ttl_seconds is not None
            else settings.IDEMPOTENCY_PENDING_TTL_SECONDS
        )
        self.clock = clock

    def begin(self, key: str, operation: str = "") -> BeginResult:
        """
        Claim `key` for a new attempt, or replay its completed result.
        Raises IdempotencyConflict while another attempt is live.
        """
        now = self.clock()
        with transaction.atomic():
            record, created = IdempotencyRecord.objects.get_or_create(
                key=key,
                defaults={"operation": operation, "status": IdempotencyRecord.PENDING, "updated_at": now},
            )
        if created:
            logger.info(f"Idempotency key {key} claimed ({operation})")
            return BeginResult(key=key, replay=False)

        if record.status == IdempotencyRecord.COMPLETED:
            logger.info(f"Idempotency key {key} replayed (tx: {record.tx_signature})")
            return BeginResult(
                key=key,
                replay=True,
                tx_signature=record.tx_signature,
                db_record_id=record.db_record_id,
                attempts=record.attempts,
            )

        if record.status == IdempotencyRecord.FAILED:
            claimed = IdempotencyRecord.objects.filter(key=key, status=IdempotencyRecord.FAILED).update(
                status=IdempotencyRecord.PENDING,
                attempts=F("attempts") + 1,
                error="",
                updated_at=now,
            )
            if claimed:
                logger.info(f"Idempotency key {key} retried after failure (attempt {record.attempts + 1})")
                return BeginResult(key=key, replay=False, attempts=record.attempts + 1)
            raise IdempotencyConflict(key)

        if record.updated_at <= now - self.pending_ttl:
            claimed = IdempotencyRecord.objects.filter(
                key=key,
                status=IdempotencyRecord.PENDING,
                updated_at=record.updated_at,
            ).update(attempts=F("attempts") + 1, updated_at=now)
            if claimed:
                logger.warning(
                    f"Reclaimed stale pending key {key} (idle since {record.updated_at.isoformat()})"
                )
                return BeginResult(key=key, replay=False, attempts=record.attempts + 1)

        raise IdempotencyConflict(key)

    def _pending(self, key: str, attempts: Optional[int]):
        pending = IdempotencyRecord.objects.filter(key=key, status=IdempotencyRecord.PENDING)
        if attempts is not None:
            pending = pending.filter(attempts=attempts)
        return pending

    def complete(
        self,
        key: str,
        tx_signature: Optional[str],
        db_record_id: Optional[str],
        attempts: Optional[int] = None,
    ) -> None:
        """
        Finalize a pending key. With `attempts`, only that attempt may finalize
        it; an attempt whose key was reclaimed raises InvalidTransition.
        """
        now = self.clock()
        updated = self._pending(key, attempts).update(
            status=IdempotencyRecord.COMPLETED,
            tx_signature=tx_signature,
            db_record_id=db_record_id,
            completed_at=now,
            updated_at=now,
        )
        if not updated:
            raise InvalidTransition(key, IdempotencyRecord.COMPLETED)
        logger.info(f"Idempotency key {key} completed (tx: {tx_signature}, record: {db_record_id})")

    def fail(self, key: str, error: str = "", attempts: Optional[int] = None) -> None:
        updated = self._pending(key, attempts).update(
            status=IdempotencyRecord.FAILED,
            error=error[:2000],
            updated_at=self.clock(),
        )
        if not updated:
            logger.warning(f"Idempotency key {key} not pending for this attempt; failure not recorded")
            return
        logger.info(f"Idempotency key {key} failed: {error}")

    def run(
        self,
        key: str,
        func: Callable[[], Tuple[Optional[str], Optional[str]]],
        operation: str = "",
    ) -> BeginResult:
        """
        begin -> func() -> complete, with func returning (tx_signature, db_record_id).

        The database part of func commits together with the completion. An
        unconfirmed ledger outcome leaves the key pending; any other error
        marks it failed and propagates.
        """
        begun = self.begin(key, operation)
        if begun.replay:
            return begun

        try:
            with transaction.atomic():
                tx_signature, db_record_id = func()
                self.complete(key, tx_signature, db_record_id, attempts=begun.attempts)
        except LedgerOutcomeUnknown as e:
            logger.warning(f"Idempotency key {key} left pending: outcome of {e.signature} unknown")
            raise
        except Exception as e:
            self.fail(key, str(e) or e.__class__.__name__, attempts=begun.attempts)
            raise

        return BeginResult(
            key=key,
            replay=False,
            tx_signature=tx_signature,
            db_record_id=db_record_id,
            attempts=begun.attempts,
        )
