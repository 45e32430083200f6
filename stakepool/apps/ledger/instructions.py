"""
Instruction builders for the voucher pool program.

Each instruction is an 8-byte Anchor discriminator followed by Borsh-encoded
arguments, with the account list in the order the program declares it.
"""

from __future__ import annotations

import hashlib
import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from spl.token.constants import TOKEN_PROGRAM_ID

from .accounts import PoolConfig
from .pda import (
    pool_state_address,
    pool_vault_authority_address,
    user_stake_address,
)

U64_MAX = 2**64 - 1


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


DEPOSIT_VOUCHER = instruction_discriminator("deposit_voucher")
REDEEM_VOUCHER = instruction_discriminator("redeem_voucher")
RECORD_YIELD = instruction_discriminator("record_yield")
INITIALIZE_POOL = instruction_discriminator("initialize_pool")
UPDATE_POOL_CONFIG = instruction_discriminator("update_pool_config")


def _u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"amount {value} does not fit in u64")
    return struct.pack("<Q", value)


def encode_pool_config(config: PoolConfig) -> bytes:
    if not 0 <= config.apy_basis_points <= 0xFFFF:
        raise ValueError("apy_basis_points does not fit in u16")
    return (
        _u64(config.min_stake_amount)
        + _u64(config.max_stake_per_user)
        + struct.pack("<??", config.deposits_enabled, config.withdrawals_enabled)
        + struct.pack("<H", config.apy_basis_points)
    )


def deposit_voucher(
    program_id: Pubkey,
    pool_delegate: Pubkey,
    user: Pubkey,
    user_token_account: Pubkey,
    vault_ata: Pubkey,
    amount: int,
) -> Instruction:
    pool_state, _ = pool_state_address(program_id)
    stake_record, _ = user_stake_address(program_id, pool_state, user)
    accounts = [
        AccountMeta(user, is_signer=False, is_writable=False),
        AccountMeta(pool_delegate, is_signer=True, is_writable=True),
        AccountMeta(pool_state, is_signer=False, is_writable=True),
        AccountMeta(stake_record, is_signer=False, is_writable=True),
        AccountMeta(user_token_account, is_signer=False, is_writable=True),
        AccountMeta(vault_ata, is_signer=False, is_writable=True),
        AccountMeta(SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, DEPOSIT_VOUCHER + _u64(amount), accounts)


def redeem_voucher(
    program_id: Pubkey,
    user: Pubkey,
    user_token_account: Pubkey,
    vault_ata: Pubkey,
    amount: int,
) -> Instruction:
    pool_state, _ = pool_state_address(program_id)
    stake_record, _ = user_stake_address(program_id, pool_state, user)
    vault_authority, _ = pool_vault_authority_address(program_id)
    accounts = [
        AccountMeta(user, is_signer=True, is_writable=True),
        AccountMeta(pool_state, is_signer=False, is_writable=True),
        AccountMeta(stake_record, is_signer=False, is_writable=True),
        AccountMeta(user_token_account, is_signer=False, is_writable=True),
        AccountMeta(vault_ata, is_signer=False, is_writable=True),
        AccountMeta(vault_authority, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, REDEEM_VOUCHER + _u64(amount), accounts)


def record_yield(program_id: Pubkey, pool_delegate: Pubkey, amount: int) -> Instruction:
    pool_state, _ = pool_state_address(program_id)
    accounts = [
        AccountMeta(pool_delegate, is_signer=True, is_writable=False),
        AccountMeta(pool_state, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id, RECORD_YIELD + _u64(amount), accounts)


def initialize_pool(
    program_id: Pubkey,
    pool_authority: Pubkey,
    pool_delegate: Pubkey,
    vault_ata: Pubkey,
    voucher_mint: Pubkey,
    config: PoolConfig,
) -> Instruction:
    pool_state, _ = pool_state_address(program_id)
    vault_authority, _ = pool_vault_authority_address(program_id)
    accounts = [
        AccountMeta(pool_authority, is_signer=True, is_writable=True),
        AccountMeta(pool_delegate, is_signer=False, is_writable=False),
        AccountMeta(pool_state, is_signer=False, is_writable=True),
        AccountMeta(vault_ata, is_signer=False, is_writable=True),
        AccountMeta(vault_authority, is_signer=False, is_writable=False),
        AccountMeta(voucher_mint, is_signer=False, is_writable=False),
        AccountMeta(SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, INITIALIZE_POOL + encode_pool_config(config), accounts)


def update_pool_config(program_id: Pubkey, pool_authority: Pubkey, config: PoolConfig) -> Instruction:
    pool_state, _ = pool_state_address(program_id)
    accounts = [
        AccountMeta(pool_authority, is_signer=True, is_writable=False),
        AccountMeta(pool_state, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id, UPDATE_POOL_CONFIG + encode_pool_config(config), accounts)
