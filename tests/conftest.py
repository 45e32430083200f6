import dataclasses
import itertools
from typing import Dict, Optional

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from stakepool.apps.ledger.accounts import PoolConfig, PoolState, TokenAccount, UserStakeRecord
from stakepool.apps.ledger.errors import LedgerRejection
from stakepool.apps.pool import rewards

NOW = 1_700_000_000
TOKEN = 10**9


def make_pool(**overrides) -> PoolState:
    config = overrides.pop("config", None) or PoolConfig(
        min_stake_amount=1 * TOKEN,
        max_stake_per_user=1_000_000 * TOKEN,
        deposits_enabled=True,
        withdrawals_enabled=True,
        apy_basis_points=1200,
    )
    values = dict(
        pool_authority=Pubkey.new_unique(),
        pool_delegate=Pubkey.new_unique(),
        vault_ata=Pubkey.new_unique(),
        voucher_mint=Pubkey.new_unique(),
        config=config,
        total_staked=0,
        total_sol_staked=0,
        total_yield_earned=0,
        total_stakers=0,
        reward_index=0,
        created_at=NOW - 86_400,
        last_yield_update=NOW - 86_400,
        bump=254,
    )
    values.update(overrides)
    return PoolState(**values)


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeLedger:
    """
    In-memory stand-in for VoucherPoolService. Deposits and accruals apply
    the same reward-index effects the program does.
    """

    def __init__(self, pool: Optional[PoolState] = None, clock: Optional[FakeClock] = None):
        self.delegate = Keypair()
        self.operating_key = self.delegate.pubkey()
        self.clock = clock or FakeClock()
        self.pool = pool or make_pool(pool_delegate=self.operating_key)
        self.records: Dict[str, UserStakeRecord] = {}
        self.token_accounts: Dict[str, TokenAccount] = {}
        self.record_yield_calls = []
        self.deposit_calls = []
        self.fail_deposits_for = set()
        self.record_yield_error: Optional[Exception] = None
        self.deposit_error: Optional[Exception] = None
        self.statuses: Dict[str, dict] = {}
        self._sigs = itertools.count(1)

    # reads

    def get_pool_state(self) -> PoolState:
        return dataclasses.replace(self.pool)

    def get_user_stake_record(self, user) -> Optional[UserStakeRecord]:
        record = self.records.get(str(user))
        return dataclasses.replace(record) if record else None

    def get_token_account(self, address) -> Optional[TokenAccount]:
        account = self.token_accounts.get(str(address))
        return dataclasses.replace(account) if account else None

    def get_user_token_account(self, owner) -> Optional[TokenAccount]:
        for account in self.token_accounts.values():
            if str(account.owner) == str(owner):
                return dataclasses.replace(account)
        return None

    def list_delegated_token_accounts(self, delegate=None):
        delegate = delegate or self.operating_key
        return [dataclasses.replace(a) for a in self.token_accounts.values() if a.delegate == delegate]

    def get_transaction_status(self, signature: str) -> dict:
        return self.statuses.get(signature, {"status": "confirmed", "slot": 99, "error": None})

    # writes

    def _signature(self) -> str:
        return f"sig{next(self._sigs)}"

    def record_yield(self, amount: int) -> dict:
        self.record_yield_calls.append(amount)
        if self.record_yield_error is not None:
            raise self.record_yield_error
        rewards.accrue(self.pool, amount, now=int(self.clock()))
        return {"signature": self._signature(), "slot": len(self.record_yield_calls)}

    def deposit_voucher(self, user, user_token_account, amount: int, vault_ata=None) -> dict:
        self.deposit_calls.append((str(user), str(user_token_account), amount))
        if self.deposit_error is not None:
            raise self.deposit_error
        if str(user) in self.fail_deposits_for:
            raise LedgerRejection("custom program error: 0x1780", code=6016)
        account = self.token_accounts[str(user_token_account)]
        account.amount -= amount
        account.delegated_amount -= amount
        if account.delegated_amount == 0:
            account.delegate = None
        record = self.records.setdefault(str(user), UserStakeRecord(user=Pubkey.from_string(str(user)), pool=Pubkey.new_unique()))
        rewards.apply_deposit(self.pool, record, amount, now=int(self.clock()))
        return {"signature": self._signature(), "slot": 1}

    # helpers

    def add_token_account(self, amount: int, delegated: int, delegate: Optional[Pubkey] = None, owner=None) -> TokenAccount:
        account = TokenAccount(
            address=Pubkey.new_unique(),
            mint=self.pool.voucher_mint,
            owner=owner or Pubkey.new_unique(),
            amount=amount,
            delegate=delegate if delegate is not None else (self.operating_key if delegated else None),
            delegated_amount=delegated,
        )
        self.token_accounts[str(account.address)] = account
        return account


class FakeRedis:
    """Just the commands DepositStatusStore uses."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ttl


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return FakeLedger(clock=clock)
