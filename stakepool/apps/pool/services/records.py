"""
Persist confirmed ledger operations into the off-chain store.
Every writer is idempotent on the transaction signature.
"""

import logging

from django.utils import timezone

from stakepool.apps.ledger.accounts import PoolState
from stakepool.apps.pool.models import PoolDeposit, PoolSnapshot, PoolWithdrawal, YieldAccrual

logger = logging.getLogger(__name__)


def record_accrual(outcome, pool: PoolState, trigger: str = "scheduler") -> YieldAccrual:
    accrual, created = YieldAccrual.objects.get_or_create(
        tx_hash=outcome.signature,
        defaults={
            "amount": outcome.amount,
            "seconds_elapsed": outcome.seconds_elapsed,
            "apy_basis_points": outcome.apy_basis_points,
            "total_staked": pool.total_staked,
            "reward_index_before": pool.reward_index,
            "trigger": trigger,
        },
    )
    if created:
        logger.info(f"Stored accrual {accrual.id} ({outcome.amount}, tx: {outcome.signature})")
    return accrual


def record_manual_accrual(outcome, pool: PoolState) -> YieldAccrual:
    return record_accrual(outcome, pool, trigger="manual")


def record_deposit_row(wallet: str, amount: int, tx_hash: str, token_account: str = "") -> PoolDeposit:
    deposit, created = PoolDeposit.objects.get_or_create(
        tx_hash=tx_hash,
        defaults={
            "wallet": wallet,
            "token_account": token_account,
            "amount": amount,
        },
    )
    if created:
        logger.info(f"Stored deposit {deposit.id} for {wallet} ({amount})")
    return deposit


def record_deposit(result, pool: PoolState = None) -> PoolDeposit:
    """Scanner recorder: persist a confirmed DepositResult."""
    return record_deposit_row(result.owner, result.amount, result.signature, result.token_account or "")


def record_withdrawal(wallet: str, principal_out: int, interest_out: int, tx_hash: str) -> PoolWithdrawal:
    withdrawal, created = PoolWithdrawal.objects.get_or_create(
        tx_hash=tx_hash,
        defaults={
            "wallet": wallet,
            "principal_out": principal_out,
            "interest_out": interest_out,
        },
    )
    if created:
        logger.info(f"Stored withdrawal {withdrawal.id} for {wallet} ({principal_out} + {interest_out})")
    return withdrawal


def take_snapshot(pool: PoolState) -> PoolSnapshot:
    return PoolSnapshot.objects.create(
        at=timezone.now(),
        total_staked=pool.total_staked,
        total_yield_earned=pool.total_yield_earned,
        total_stakers=pool.total_stakers,
        reward_index=pool.reward_index,
        last_yield_update=pool.last_yield_update,
    )
