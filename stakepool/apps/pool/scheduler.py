"""
Yield accrual scheduler.

Each cycle reads the pool, decides whether an accrual is due, and submits at
most one record_yield instruction:

    Idle --(interval elapsed, stake > 0, yield > 0)--> Submitting --> Idle

Nothing is retried inside a cycle; a failed or unconfirmed submission is
reconsidered on the next tick after a fresh read of the pool.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from django.conf import settings

from stakepool.apps.ledger.accounts import PoolState
from stakepool.apps.ledger.errors import (
    AccountDecodeError,
    AccountNotFound,
    LedgerError,
    LedgerOutcomeUnknown,
    LedgerRejection,
)

from .rewards import REWARD_INDEX_SCALE, index_delta
from .yield_calc import SECONDS_PER_YEAR, calculate_yield

logger = logging.getLogger(__name__)

SUBMITTED = "submitted"
SKIPPED = "skipped"
FAILED = "failed"
UNKNOWN = "unknown"

NOT_ENOUGH_TIME = "not_enough_time"
ZERO_STAKE = "zero_stake"
ZERO_YIELD = "zero_yield"
BUSY = "busy"


class SchedulerState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


@dataclass
class AccrualOutcome:
    status: str
    reason: Optional[str] = None
    amount: int = 0
    signature: Optional[str] = None
    seconds_elapsed: int = 0
    seconds_remaining: int = 0
    total_staked: int = 0
    apy_basis_points: int = 0
    error: Optional[Exception] = field(default=None, repr=False)

    @property
    def submitted(self) -> bool:
        return self.status == SUBMITTED

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status,
            "reason": self.reason,
            "amount": self.amount,
            "signature": self.signature,
            "seconds_elapsed": self.seconds_elapsed,
            "seconds_remaining": self.seconds_remaining,
            "total_staked": self.total_staked,
            "apy_basis_points": self.apy_basis_points,
        }
        if isinstance(self.error, LedgerRejection):
            data["error"] = self.error.to_dict()
        elif self.error is not None:
            data["error"] = str(self.error)
        return data


class AccrualScheduler:
    """
    Decides and submits yield accruals against one pool.

    `service` needs get_pool_state() and record_yield(amount); `recorder`,
    when given, is called as recorder(outcome, pool) after a confirmed
    submission.
    """

    def __init__(
        self,
        service,
        interval_seconds: Optional[int] = None,
        apy_basis_points: Optional[int] = None,
        check_interval_seconds: Optional[int] = None,
        seconds_per_year: int = SECONDS_PER_YEAR,
        scale: int = REWARD_INDEX_SCALE,
        clock: Callable[[], float] = time.time,
        recorder: Optional[Callable[[AccrualOutcome, PoolState], Any]] = None,
    ):
        self.service = service
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.YIELD_INTERVAL_HOURS * 3600
        )
        self.apy_override = apy_basis_points if apy_basis_points is not None else settings.APY_BASIS_POINTS
        self.check_interval_seconds = (
            check_interval_seconds
            if check_interval_seconds is not None
            else settings.YIELD_CHECK_INTERVAL_SECONDS
        )
        self.seconds_per_year = seconds_per_year
        self.scale = scale
        self.clock = clock
        self.recorder = recorder
        self._state = SchedulerState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    def apy_for(self, pool: PoolState) -> int:
        if self.apy_override is not None:
            return int(self.apy_override)
        return pool.config.apy_basis_points

    def _evaluate(self, pool: PoolState, now: int, force: bool) -> AccrualOutcome:
        """Pure skip-or-submit decision; never touches the ledger."""
        elapsed = now - pool.last_yield_update
        apy = self.apy_for(pool)
        outcome = AccrualOutcome(
            status=SUBMITTED,
            seconds_elapsed=elapsed,
            total_staked=pool.total_staked,
            apy_basis_points=apy,
        )

        if not force and elapsed < self.interval_seconds:
            outcome.status = SKIPPED
            outcome.reason = NOT_ENOUGH_TIME
            outcome.seconds_remaining = self.interval_seconds - elapsed
            return outcome
        if pool.total_staked == 0:
            outcome.status = SKIPPED
            outcome.reason = ZERO_STAKE
            return outcome

        outcome.amount = calculate_yield(pool.total_staked, apy, elapsed, self.seconds_per_year)
        if outcome.amount == 0:
            outcome.status = SKIPPED
            outcome.reason = ZERO_YIELD
        return outcome

    def preview(self) -> Dict[str, Any]:
        """
        Current pool snapshot plus what an accrual right now would do.
        Ledger read errors propagate to the caller.
        """
        pool = self.service.get_pool_state()
        now = int(self.clock())
        decision = self._evaluate(pool, now, force=False)
        would_accrue = calculate_yield(
            pool.total_staked, decision.apy_basis_points, decision.seconds_elapsed, self.seconds_per_year
        )
        projected_index = pool.reward_index
        if would_accrue > 0 and pool.total_staked > 0:
            projected_index += index_delta(would_accrue, pool.total_staked, self.scale)

        return {
            "pool": pool.to_dict(),
            "now": now,
            "interval_seconds": self.interval_seconds,
            "seconds_elapsed": decision.seconds_elapsed,
            "seconds_remaining": decision.seconds_remaining,
            "apy_basis_points": decision.apy_basis_points,
            "would_accrue": would_accrue,
            "projected_reward_index": str(projected_index),
            "needs_update": decision.status == SUBMITTED,
            "reason": decision.reason,
        }

    def run_once(self, force: bool = False) -> AccrualOutcome:
        """Exactly one check-and-maybe-submit cycle."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Accrual already in flight in this process; skipping cycle")
            return AccrualOutcome(status=SKIPPED, reason=BUSY)
        try:
            return self._cycle(force)
        finally:
            self._state = SchedulerState.IDLE
            self._lock.release()

    def _cycle(self, force: bool) -> AccrualOutcome:
        try:
            pool = self.service.get_pool_state()
        except (AccountNotFound, AccountDecodeError) as e:
            logger.exception(f"Cannot read pool state: {e}")
            return AccrualOutcome(status=FAILED, reason="pool_unreadable", error=e)
        except LedgerError as e:
            logger.error(f"Pool state read failed, retrying next tick: {e}")
            return AccrualOutcome(status=FAILED, reason="transient", error=e)

        now = int(self.clock())
        outcome = self._evaluate(pool, now, force)
        if outcome.status == SKIPPED:
            if outcome.reason == NOT_ENOUGH_TIME:
                logger.info(
                    f"Next accrual in {outcome.seconds_remaining}s "
                    f"({outcome.seconds_remaining / 3600:.2f}h)"
                )
            else:
                logger.info(f"Accrual skipped: {outcome.reason}")
            return outcome

        self._state = SchedulerState.SUBMITTING
        logger.info(
            f"Recording yield {outcome.amount} on stake {pool.total_staked} "
            f"({outcome.seconds_elapsed}s at {outcome.apy_basis_points}bp, force={force})"
        )
        try:
            result = self.service.record_yield(outcome.amount)
        except LedgerOutcomeUnknown as e:
            logger.warning(f"Accrual {e.signature} unconfirmed; state re-read next tick")
            outcome.status = UNKNOWN
            outcome.signature = e.signature
            outcome.error = e
            return outcome
        except LedgerRejection as e:
            logger.error(f"Accrual rejected ({e.name}): {e.message}")
            outcome.status = FAILED
            outcome.reason = "rejected"
            outcome.error = e
            return outcome
        except LedgerError as e:
            logger.error(f"Accrual submission failed, retrying next tick: {e}")
            outcome.status = FAILED
            outcome.reason = "transient"
            outcome.error = e
            return outcome

        outcome.signature = result["signature"]
        logger.info(f"Yield recorded: {outcome.amount} (tx: {outcome.signature})")
        if self.recorder is not None:
            try:
                self.recorder(outcome, pool)
            except Exception:
                logger.exception(f"Failed to persist accrual {outcome.signature}")
        return outcome

    def run_forever(self, stop_event: Optional[threading.Event] = None, max_cycles: Optional[int] = None):
        """Run cycles every check_interval_seconds until stopped."""
        stop_event = stop_event or threading.Event()
        cycles = 0
        logger.info(
            f"Accrual loop started: check every {self.check_interval_seconds}s, "
            f"interval {self.interval_seconds}s"
        )
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Accrual cycle crashed; continuing")
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            stop_event.wait(self.check_interval_seconds)
        logger.info("Accrual loop stopped")
