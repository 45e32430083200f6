"""
Voucher Pool Program Service
Handles pool state reads, delegated deposits, redemptions and yield recording
"""

from typing import Any, Dict, List, Optional

from django.conf import settings
from solana.rpc.types import MemcmpOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

import logging

from .. import instructions
from ..accounts import (
    TOKEN_ACCOUNT_LAYOUT,
    TOKEN_ACCOUNT_SIZE,
    PoolConfig,
    PoolState,
    TokenAccount,
    UserStakeRecord,
)
from ..errors import AccountNotFound
from ..pda import pool_state_address, user_stake_address, user_token_address, vault_token_address
from .base_program import BaseProgramService, load_keypair

logger = logging.getLogger(__name__)

# COption<Pubkey> is a u32 tag followed by the key
_DELEGATE_KEY_OFFSET = TOKEN_ACCOUNT_LAYOUT.offset_of("delegate") + 4


def _pubkey(value) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(str(value))


class VoucherPoolService(BaseProgramService):
    """Service for interacting with the voucher staking pool program"""

    def __init__(
        self,
        program_id: Optional[str] = None,
        voucher_mint: Optional[str] = None,
        delegate: Optional[Keypair] = None,
        **kwargs,
    ):
        super().__init__(program_id=program_id or settings.STAKING_PROGRAM_ID, **kwargs)
        self.voucher_mint = _pubkey(voucher_mint or settings.VOUCHER_MINT)
        self._delegate = delegate
        self.pool_state_address, _ = pool_state_address(self.program_id)

    @property
    def delegate(self) -> Keypair:
        """The operating key; loaded lazily so read-only callers need no secret."""
        if self._delegate is None:
            self._delegate = load_keypair(
                secret=settings.DELEGATE_PRIVATE_KEY,
                path=settings.DELEGATE_KEYPAIR_PATH,
            )
        return self._delegate

    @property
    def operating_key(self) -> Pubkey:
        return self.delegate.pubkey()

    @property
    def vault_ata(self) -> Pubkey:
        return vault_token_address(self.program_id, self.voucher_mint)

    # ============================================================
    # READ-ONLY FUNCTIONS - Pool
    # ============================================================

    def get_pool_state(self) -> PoolState:
        """
        Fetch and decode the singleton pool state

        Returns:
            PoolState

        Raises:
            AccountNotFound: the pool has not been initialized
        """
        data = self.fetch_account_data(self.pool_state_address)
        if data is None:
            raise AccountNotFound("PoolState", str(self.pool_state_address))
        return PoolState.from_bytes(data, address=str(self.pool_state_address))

    def get_user_stake_record(self, user) -> Optional[UserStakeRecord]:
        """
        Fetch a user's stake record

        Args:
            user: Wallet public key

        Returns:
            UserStakeRecord, or None before the user's first deposit
        """
        address, _ = user_stake_address(self.program_id, self.pool_state_address, _pubkey(user))
        data = self.fetch_account_data(address)
        if data is None:
            return None
        return UserStakeRecord.from_bytes(data, address=str(address))

    # ============================================================
    # READ-ONLY FUNCTIONS - Token accounts
    # ============================================================

    def get_token_account(self, address) -> Optional[TokenAccount]:
        address = _pubkey(address)
        data = self.fetch_account_data(address)
        if data is None:
            return None
        return TokenAccount.from_bytes(data, address=address)

    def get_user_token_account(self, owner) -> Optional[TokenAccount]:
        """The owner's associated token account for the voucher mint."""
        return self.get_token_account(user_token_address(_pubkey(owner), self.voucher_mint))

    def list_delegated_token_accounts(self, delegate: Optional[Pubkey] = None) -> List[TokenAccount]:
        """
        Enumerate voucher token accounts whose delegate is the operating key

        Args:
            delegate: Delegate to match (defaults to the operating key)

        Returns:
            List of decoded token accounts
        """
        delegate = delegate or self.operating_key
        filters = [
            TOKEN_ACCOUNT_SIZE,
            MemcmpOpts(offset=0, bytes=str(self.voucher_mint)),
            MemcmpOpts(offset=_DELEGATE_KEY_OFFSET, bytes=str(delegate)),
        ]
        keyed = self.fetch_program_accounts(TOKEN_PROGRAM_ID, filters)

        accounts = []
        for item in keyed:
            account = TokenAccount.from_bytes(bytes(item.account.data), address=item.pubkey)
            if account.delegate == delegate:
                accounts.append(account)
        logger.info(f"Found {len(accounts)} voucher accounts delegated to {delegate}")
        return accounts

    # ============================================================
    # WRITE FUNCTIONS - Staking
    # ============================================================

    def deposit_voucher(
        self,
        user,
        user_token_account,
        amount: int,
        vault_ata: Optional[Pubkey] = None,
    ) -> Dict[str, Any]:
        """
        Move delegated vouchers into the vault on the user's behalf

        Args:
            user: Token account owner
            user_token_account: Source token account (delegate = operating key)
            amount: Amount in smallest units
            vault_ata: Pool vault (defaults to the derived vault address)

        Returns:
            Dict with the transaction signature and slot
        """
        ix = instructions.deposit_voucher(
            self.program_id,
            self.operating_key,
            _pubkey(user),
            _pubkey(user_token_account),
            vault_ata or self.vault_ata,
            amount,
        )
        result = self.send_instructions([ix], [self.delegate])
        logger.info(f"Deposited {amount} for {user} (tx: {result['signature']})")
        return result

    def record_yield(self, amount: int) -> Dict[str, Any]:
        """
        Record accrued yield against the pool's reward index

        Args:
            amount: Yield amount in smallest units

        Returns:
            Dict with the transaction signature and slot
        """
        ix = instructions.record_yield(self.program_id, self.operating_key, amount)
        result = self.send_instructions([ix], [self.delegate])
        logger.info(f"Recorded yield of {amount} (tx: {result['signature']})")
        return result

    # ============================================================
    # ADMIN FUNCTIONS
    # ============================================================

    def initialize_pool(self, authority: Keypair, config: PoolConfig) -> Dict[str, Any]:
        ix = instructions.initialize_pool(
            self.program_id,
            authority.pubkey(),
            self.operating_key,
            self.vault_ata,
            self.voucher_mint,
            config,
        )
        result = self.send_instructions([ix], [authority])
        logger.info(f"Initialized pool {self.pool_state_address} (tx: {result['signature']})")
        return result

    def update_pool_config(self, authority: Keypair, config: PoolConfig) -> Dict[str, Any]:
        ix = instructions.update_pool_config(self.program_id, authority.pubkey(), config)
        result = self.send_instructions([ix], [authority])
        logger.info(f"Updated pool config {config.to_dict()} (tx: {result['signature']})")
        return result
