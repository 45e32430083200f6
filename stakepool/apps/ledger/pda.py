from typing import Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

POOL_STATE_SEED = b"pool_state"
POOL_VAULT_AUTHORITY_SEED = b"pool_vault_authority"
USER_STAKE_SEED = b"user_stake"


def pool_state_address(program_id: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([POOL_STATE_SEED], program_id)


def pool_vault_authority_address(program_id: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address([POOL_VAULT_AUTHORITY_SEED], program_id)


def user_stake_address(program_id: Pubkey, pool_state: Pubkey, user: Pubkey) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address(
        [USER_STAKE_SEED, bytes(pool_state), bytes(user)], program_id
    )


def vault_token_address(program_id: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account of the vault authority PDA (off-curve owner)."""
    vault_authority, _ = pool_vault_authority_address(program_id)
    return get_associated_token_address(vault_authority, mint)


def user_token_address(user: Pubkey, mint: Pubkey) -> Pubkey:
    return get_associated_token_address(user, mint)
