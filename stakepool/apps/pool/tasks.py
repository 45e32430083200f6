from __future__ import annotations

import logging

from celery import shared_task

from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService
from stakepool.apps.pool.deposit_status_store import DepositStatusStore
from stakepool.apps.pool.scanner import DelegationScanner
from stakepool.apps.pool.scheduler import AccrualScheduler
from stakepool.apps.pool.services.position_sync import StakePositionSyncService
from stakepool.apps.pool.services.records import record_accrual, record_deposit, take_snapshot

logger = logging.getLogger(__name__)

# One scanner per worker process, so its processed set lives as long as the process.
_scanner: DelegationScanner | None = None


def get_scanner() -> DelegationScanner:
    global _scanner
    if _scanner is None:
        service = VoucherPoolService()
        _scanner = DelegationScanner(
            service,
            status_store=DepositStatusStore(service=service),
            recorder=record_deposit,
        )
    return _scanner


@shared_task(queue="pool", bind=True, time_limit=300)
def run_yield_accrual(self, force: bool = False) -> dict:
    """
    One accrual cycle. Failures are reported in the result and retried by
    the next beat tick, never by Celery.
    """
    scheduler = AccrualScheduler(VoucherPoolService(), recorder=record_accrual)
    outcome = scheduler.run_once(force=force)
    return outcome.to_dict()


@shared_task(queue="pool", bind=True, time_limit=600)
def scan_delegations(self) -> dict:
    try:
        report = get_scanner().scan()
    except LedgerError as e:
        logger.error(f"Delegation scan aborted: {e}")
        return {"error": str(e)}
    return report.to_dict()


@shared_task(queue="pool", bind=True, time_limit=600)
def sync_stake_positions(self) -> int:
    synced = StakePositionSyncService(VoucherPoolService()).sync_all_positions()
    logger.info(f"Synced {synced} stake positions")
    return synced


@shared_task(queue="pool", bind=True, time_limit=120)
def take_pool_snapshot(self) -> str | None:
    try:
        pool = VoucherPoolService().get_pool_state()
    except LedgerError as e:
        logger.error(f"Pool snapshot skipped: {e}")
        return None
    snapshot = take_snapshot(pool)
    return snapshot.at.isoformat()
