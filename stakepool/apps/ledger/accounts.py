"""
Typed views of the ledger accounts the backend reads.

Layouts follow the program's declared field order; see layout.AccountLayout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from .layout import AccountLayout, Field, account_discriminator

POOL_STATE_LAYOUT = AccountLayout(
    "PoolState",
    [
        Field.pubkey("pool_authority"),
        Field.pubkey("pool_delegate"),
        Field.pubkey("vault_ata"),
        Field.pubkey("voucher_mint"),
        # PoolConfig (borsh, packed)
        Field.scalar("min_stake_amount", "u64"),
        Field.scalar("max_stake_per_user", "u64"),
        Field.scalar("deposits_enabled", "bool"),
        Field.scalar("withdrawals_enabled", "bool"),
        Field.scalar("apy_basis_points", "u16"),
        Field.scalar("total_voucher_staked", "u64"),
        Field.scalar("total_sol_staked", "u64"),
        Field.scalar("total_yield_earned", "u64"),
        Field.scalar("total_stakers", "u64"),
        Field.u128("reward_index"),
        Field.scalar("created_at", "i64"),
        Field.scalar("last_yield_update", "i64"),
        Field.scalar("bump", "u8"),
        Field.raw("reserved", 64),
    ],
    discriminator=account_discriminator("PoolState"),
)

USER_STAKE_RECORD_LAYOUT = AccountLayout(
    "UserStakeRecord",
    [
        Field.pubkey("user"),
        Field.pubkey("pool"),
        Field.scalar("staked_amount", "u64"),
        Field.u128("user_reward_index"),
        Field.scalar("total_yield_claimed", "u64"),
        Field.scalar("staked_at", "i64"),
        Field.scalar("last_action_at", "i64"),
        Field.scalar("bump", "u8"),
        Field.raw("reserved", 32),
    ],
    discriminator=account_discriminator("UserStakeRecord"),
)

# SPL token account, 165 bytes, no discriminator.
TOKEN_ACCOUNT_LAYOUT = AccountLayout(
    "TokenAccount",
    [
        Field.pubkey("mint"),
        Field.pubkey("owner"),
        Field.scalar("amount", "u64"),
        Field.option_pubkey("delegate"),
        Field.scalar("state", "u8"),
        Field.option_u64("is_native"),
        Field.scalar("delegated_amount", "u64"),
        Field.option_pubkey("close_authority"),
    ],
)
TOKEN_ACCOUNT_SIZE = TOKEN_ACCOUNT_LAYOUT.size


@dataclass
class PoolConfig:
    min_stake_amount: int
    max_stake_per_user: int
    deposits_enabled: bool
    withdrawals_enabled: bool
    apy_basis_points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_stake_amount": self.min_stake_amount,
            "max_stake_per_user": self.max_stake_per_user,
            "deposits_enabled": self.deposits_enabled,
            "withdrawals_enabled": self.withdrawals_enabled,
            "apy_basis_points": self.apy_basis_points,
        }


@dataclass
class PoolState:
    pool_authority: Pubkey
    pool_delegate: Pubkey
    vault_ata: Pubkey
    voucher_mint: Pubkey
    config: PoolConfig
    total_staked: int
    total_sol_staked: int
    total_yield_earned: int
    total_stakers: int
    reward_index: int
    created_at: int
    last_yield_update: int
    bump: int = 0

    @classmethod
    def from_bytes(cls, data: bytes, address: Optional[str] = None) -> "PoolState":
        v = POOL_STATE_LAYOUT.decode(data, address=address)
        return cls(
            pool_authority=v["pool_authority"],
            pool_delegate=v["pool_delegate"],
            vault_ata=v["vault_ata"],
            voucher_mint=v["voucher_mint"],
            config=PoolConfig(
                min_stake_amount=v["min_stake_amount"],
                max_stake_per_user=v["max_stake_per_user"],
                deposits_enabled=v["deposits_enabled"],
                withdrawals_enabled=v["withdrawals_enabled"],
                apy_basis_points=v["apy_basis_points"],
            ),
            total_staked=v["total_voucher_staked"],
            total_sol_staked=v["total_sol_staked"],
            total_yield_earned=v["total_yield_earned"],
            total_stakers=v["total_stakers"],
            reward_index=v["reward_index"],
            created_at=v["created_at"],
            last_yield_update=v["last_yield_update"],
            bump=v["bump"],
        )

    def to_bytes(self) -> bytes:
        values = {
            "pool_authority": self.pool_authority,
            "pool_delegate": self.pool_delegate,
            "vault_ata": self.vault_ata,
            "voucher_mint": self.voucher_mint,
            "total_voucher_staked": self.total_staked,
            "total_sol_staked": self.total_sol_staked,
            "total_yield_earned": self.total_yield_earned,
            "total_stakers": self.total_stakers,
            "reward_index": self.reward_index,
            "created_at": self.created_at,
            "last_yield_update": self.last_yield_update,
            "bump": self.bump,
        }
        values.update(self.config.to_dict())
        return POOL_STATE_LAYOUT.encode(values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_authority": str(self.pool_authority),
            "pool_delegate": str(self.pool_delegate),
            "vault_ata": str(self.vault_ata),
            "voucher_mint": str(self.voucher_mint),
            "config": self.config.to_dict(),
            "total_staked": self.total_staked,
            "total_sol_staked": self.total_sol_staked,
            "total_yield_earned": self.total_yield_earned,
            "total_stakers": self.total_stakers,
            # u128 does not survive JSON number parsing in most clients
            "reward_index": str(self.reward_index),
            "created_at": self.created_at,
            "last_yield_update": self.last_yield_update,
        }


@dataclass
class UserStakeRecord:
    user: Pubkey
    pool: Pubkey
    staked_amount: int = 0
    user_reward_index: int = 0
    total_yield_claimed: int = 0
    staked_at: int = 0
    last_action_at: int = 0
    bump: int = 0

    @classmethod
    def from_bytes(cls, data: bytes, address: Optional[str] = None) -> "UserStakeRecord":
        v = USER_STAKE_RECORD_LAYOUT.decode(data, address=address)
        v.pop("reserved")
        return cls(**v)

    def to_bytes(self) -> bytes:
        return USER_STAKE_RECORD_LAYOUT.encode(
            {
                "user": self.user,
                "pool": self.pool,
                "staked_amount": self.staked_amount,
                "user_reward_index": self.user_reward_index,
                "total_yield_claimed": self.total_yield_claimed,
                "staked_at": self.staked_at,
                "last_action_at": self.last_action_at,
                "bump": self.bump,
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": str(self.user),
            "pool": str(self.pool),
            "staked_amount": self.staked_amount,
            "user_reward_index": str(self.user_reward_index),
            "total_yield_claimed": self.total_yield_claimed,
            "staked_at": self.staked_at,
            "last_action_at": self.last_action_at,
        }


@dataclass
class TokenAccount:
    address: Optional[Pubkey]
    mint: Pubkey
    owner: Pubkey
    amount: int
    delegate: Optional[Pubkey]
    delegated_amount: int
    state: int = 1
    is_native: Optional[int] = None
    close_authority: Optional[Pubkey] = field(default=None, repr=False)

    @classmethod
    def from_bytes(cls, data: bytes, address: Optional[Pubkey] = None) -> "TokenAccount":
        v = TOKEN_ACCOUNT_LAYOUT.decode(data, address=str(address) if address else None)
        return cls(address=address, **v)

    def to_bytes(self) -> bytes:
        return TOKEN_ACCOUNT_LAYOUT.encode(
            {
                "mint": self.mint,
                "owner": self.owner,
                "amount": self.amount,
                "delegate": self.delegate,
                "state": self.state,
                "is_native": self.is_native,
                "delegated_amount": self.delegated_amount,
                "close_authority": self.close_authority,
            }
        )
