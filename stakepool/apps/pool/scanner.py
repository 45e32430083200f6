"""
Delegation scanner / deposit agent.

Finds voucher token accounts that delegated an allowance to the pool's
operating key and stakes that allowance with deposit_voucher. The user does
not sign; the delegate does.

The `processed` set only avoids resubmitting within one process lifetime.
It is not durable. What actually prevents a double deposit is the ledger:
the token program decrements the delegated allowance as it is consumed, and
the account is re-read right before each submission.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from stakepool.apps.ledger.accounts import PoolState, TokenAccount
from stakepool.apps.ledger.errors import LedgerError, LedgerOutcomeUnknown, LedgerRejection

logger = logging.getLogger(__name__)

DEPOSITED = "deposited"
SKIPPED = "skipped"
FAILED = "failed"
UNKNOWN = "unknown"


@dataclass
class DepositResult:
    owner: str
    token_account: Optional[str]
    status: str
    reason: Optional[str] = None
    amount: int = 0
    signature: Optional[str] = None
    error: Optional[Exception] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "owner": self.owner,
            "token_account": self.token_account,
            "status": self.status,
            "reason": self.reason,
            "amount": self.amount,
            "signature": self.signature,
        }
        if isinstance(self.error, LedgerRejection):
            data["error"] = self.error.to_dict()
        elif self.error is not None:
            data["error"] = str(self.error)
        return data


@dataclass
class ScanReport:
    found: int = 0
    results: List[DepositResult] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def deposited(self) -> int:
        return self._count(DEPOSITED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED) + self._count(UNKNOWN)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "found": self.found,
            "deposited": self.deposited,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


class DelegationScanner:
    """
    `service` is a VoucherPoolService (or anything with the same read and
    deposit methods). `recorder(result, pool)` is called after each
    confirmed deposit.
    """

    def __init__(
        self,
        service,
        status_store=None,
        recorder: Optional[Callable[[DepositResult, PoolState], Any]] = None,
    ):
        self.service = service
        self.status_store = status_store
        self.recorder = recorder
        self.processed: Set[str] = set()

    def check_delegation(self, token_account: Optional[TokenAccount]) -> Tuple[bool, int]:
        if token_account is None:
            return False, 0
        if token_account.delegate != self.service.operating_key or token_account.delegated_amount == 0:
            return False, 0
        return True, token_account.delegated_amount

    def _guard(self, pool: PoolState, owner, amount: int) -> Optional[str]:
        """Reason to skip before submitting, or None."""
        config = pool.config
        if not config.deposits_enabled:
            return "deposits_disabled"
        if amount < config.min_stake_amount:
            return "below_min_stake"
        record = self.service.get_user_stake_record(owner)
        already = record.staked_amount if record else 0
        if already + amount > config.max_stake_per_user:
            return "exceeds_max_stake"
        return None

    def process_account(self, account: TokenAccount, pool: PoolState, skip_processed: bool = True) -> DepositResult:
        owner = str(account.owner)
        address = str(account.address) if account.address else None
        result = DepositResult(owner=owner, token_account=address, status=SKIPPED)

        if skip_processed and owner in self.processed:
            result.reason = "already_processed"
            return result

        has_delegation, _ = self.check_delegation(account)
        if not has_delegation:
            result.reason = "no_delegation"
            return result

        fresh = self.service.get_token_account(account.address)
        has_delegation, delegated = self.check_delegation(fresh)
        if not has_delegation:
            logger.info(f"Delegation from {owner} already consumed")
            result.reason = "delegation_consumed"
            return result

        result.amount = min(delegated, fresh.amount)
        if result.amount == 0:
            result.reason = "zero_amount"
            return result

        reason = self._guard(pool, account.owner, result.amount)
        if reason:
            logger.warning(f"Skipping deposit of {result.amount} for {owner}: {reason}")
            result.reason = reason
            return result

        logger.info(f"Delegation detected: {owner} allows {delegated}, depositing {result.amount}")
        if self.status_store is not None:
            self.status_store.create(owner, address, result.amount)
            self.status_store.set_submitting(owner)

        try:
            sent = self.service.deposit_voucher(
                account.owner, account.address, result.amount, vault_ata=pool.vault_ata
            )
        except LedgerOutcomeUnknown as e:
            logger.warning(f"Deposit for {owner} unconfirmed ({e.signature}); left eligible")
            result.status = UNKNOWN
            result.signature = e.signature
            result.error = e
            if self.status_store is not None:
                self.status_store.set_unconfirmed(owner, e.signature)
            return result
        except LedgerError as e:
            logger.error(f"Deposit for {owner} failed: {e}")
            result.status = FAILED
            result.reason = "rejected" if isinstance(e, LedgerRejection) else "transient"
            result.error = e
            if self.status_store is not None:
                self.status_store.set_error(owner, str(e))
            return result

        result.status = DEPOSITED
        result.signature = sent["signature"]
        self.processed.add(owner)
        if self.status_store is not None:
            self.status_store.set_success(owner, {"tx_signature": result.signature, "amount": result.amount})
        if self.recorder is not None:
            try:
                self.recorder(result, pool)
            except Exception:
                logger.exception(f"Failed to persist deposit {result.signature}")
        return result

    def scan(self) -> ScanReport:
        """
        Evaluate every delegated voucher account once.
        Pool and account-list reads propagate; per-account failures do not.
        """
        pool = self.service.get_pool_state()
        accounts = self.service.list_delegated_token_accounts()
        report = ScanReport(found=len(accounts))

        for account in accounts:
            try:
                result = self.process_account(account, pool)
            except Exception as e:
                logger.exception(f"Unexpected error processing {account.address}")
                result = DepositResult(
                    owner=str(account.owner),
                    token_account=str(account.address),
                    status=FAILED,
                    reason="error",
                    error=e,
                )
            report.results.append(result)

        logger.info(
            f"Scan complete: {report.found} found, {report.deposited} deposited, "
            f"{report.skipped} skipped, {report.failed} failed "
            f"({len(self.processed)} processed this process)"
        )
        return report

    def deposit_for_owner(self, owner) -> DepositResult:
        """Deposit one wallet's delegation on request, ignoring the processed set."""
        account = self.service.get_user_token_account(owner)
        if account is None:
            return DepositResult(owner=str(owner), token_account=None, status=SKIPPED, reason="no_token_account")
        pool = self.service.get_pool_state()
        return self.process_account(account, pool, skip_processed=False)
