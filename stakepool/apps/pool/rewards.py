"""
Reward index accounting.

The pool keeps one cumulative yield-per-staked-unit index. A user's share of
everything accrued since their last action is

    staked_amount * (reward_index - user_reward_index) // scale

so accrual never loops over users. These functions replicate the program's
instruction effects on decoded PoolState / UserStakeRecord values; the
project_* helpers run them on copies to preview a position, and nothing
here is written back to the ledger.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional

from stakepool.apps.ledger.accounts import PoolState, UserStakeRecord

REWARD_INDEX_SCALE = 10**12
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


class ArithmeticOverflow(ArithmeticError):
    pass


def _checked(value: int, limit: int, what: str) -> int:
    if value > limit:
        raise ArithmeticOverflow(f"{what} overflows ({value} > {limit})")
    return value


def index_delta(yield_amount: int, total_staked: int, scale: int = REWARD_INDEX_SCALE) -> int:
    if total_staked <= 0:
        raise ValueError("cannot spread yield over an empty pool")
    return _checked(yield_amount * scale, U128_MAX, "yield * scale") // total_staked


def accrue(
    pool: PoolState,
    yield_amount: int,
    now: Optional[int] = None,
    scale: int = REWARD_INDEX_SCALE,
) -> int:
    """
    Spread yield_amount across all stake. Returns the new reward index.

    Raises ValueError when yield_amount <= 0 or nothing is staked.
    """
    if yield_amount <= 0:
        raise ValueError("yield_amount must be positive")
    if pool.total_staked == 0:
        raise ValueError("no stake to accrue against")

    delta = index_delta(yield_amount, pool.total_staked, scale)
    pool.reward_index = _checked(pool.reward_index + delta, U128_MAX, "reward_index")
    pool.total_yield_earned = _checked(pool.total_yield_earned + yield_amount, U64_MAX, "total_yield_earned")
    if now is not None:
        pool.last_yield_update = now
    return pool.reward_index


def claimable(pool: PoolState, user: UserStakeRecord, scale: int = REWARD_INDEX_SCALE) -> int:
    pending_index = max(0, pool.reward_index - user.user_reward_index)
    return (user.staked_amount * pending_index) // scale


def settle(pool: PoolState, user: UserStakeRecord, scale: int = REWARD_INDEX_SCALE) -> int:
    """Credit claimable yield to the user and move them onto the current index."""
    amount = claimable(pool, user, scale)
    user.total_yield_claimed = _checked(user.total_yield_claimed + amount, U64_MAX, "total_yield_claimed")
    user.user_reward_index = pool.reward_index
    return amount


def apply_deposit(
    pool: PoolState,
    user: UserStakeRecord,
    amount: int,
    now: int,
    scale: int = REWARD_INDEX_SCALE,
) -> int:
    """
    Stake `amount` for `user`, settling first. Returns the settled yield.
    A first deposit (or re-entry after full redemption) starts at the
    current index and earns nothing retroactively. On overflow neither
    record is modified.
    """
    if amount <= 0:
        raise ValueError("deposit amount must be positive")

    settled = claimable(pool, user, scale)
    claimed = _checked(user.total_yield_claimed + settled, U64_MAX, "total_yield_claimed")
    staked = _checked(user.staked_amount + amount, U64_MAX, "staked_amount")
    total_staked = _checked(pool.total_staked + amount, U64_MAX, "total_staked")

    if user.staked_amount == 0:
        pool.total_stakers += 1
        user.staked_at = now
    user.total_yield_claimed = claimed
    user.user_reward_index = pool.reward_index
    user.staked_amount = staked
    user.last_action_at = now
    pool.total_staked = total_staked
    return settled


def apply_redeem(
    pool: PoolState,
    user: UserStakeRecord,
    amount: int,
    now: int,
    scale: int = REWARD_INDEX_SCALE,
) -> int:
    """Unstake `amount`, settling first. The record survives a full redemption."""
    if amount <= 0:
        raise ValueError("redeem amount must be positive")
    if amount > user.staked_amount:
        raise ValueError(f"redeem {amount} exceeds staked {user.staked_amount}")
    if amount > pool.total_staked:
        raise ValueError(f"redeem {amount} exceeds pool total {pool.total_staked}")

    settled = claimable(pool, user, scale)
    claimed = _checked(user.total_yield_claimed + settled, U64_MAX, "total_yield_claimed")

    user.total_yield_claimed = claimed
    user.user_reward_index = pool.reward_index
    user.staked_amount -= amount
    pool.total_staked -= amount
    if user.staked_amount == 0:
        pool.total_stakers = max(0, pool.total_stakers - 1)
    user.last_action_at = now
    return settled


def project_redeem(pool: PoolState, user: UserStakeRecord, amount: int, now: int) -> Dict[str, Any]:
    """What redeeming `amount` right now would pay out, leaving both records untouched."""
    after = replace(user)
    interest = apply_redeem(replace(pool), after, amount, now)
    return {
        "principal_out": amount,
        "interest_out": interest,
        "remaining_stake": after.staked_amount,
    }


def project_deposit(pool: PoolState, user: UserStakeRecord, amount: int, now: int) -> Dict[str, Any]:
    """Position after depositing `amount` right now, leaving both records untouched."""
    after = replace(user)
    settled = apply_deposit(replace(pool), after, amount, now)
    return {
        "settled_yield": settled,
        "staked_amount": after.staked_amount,
        "user_reward_index": str(after.user_reward_index),
    }
