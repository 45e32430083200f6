
import pytest
from solders.pubkey import Pubkey

from stakepool.apps.ledger.accounts import UserStakeRecord
from stakepool.apps.ledger.errors import TransientLedgerError
from stakepool.apps.pool.models import PoolDeposit, PoolSnapshot, StakePosition, YieldAccrual
from stakepool.apps.pool.scheduler import AccrualOutcome, SUBMITTED
from stakepool.apps.pool.services import records
from stakepool.apps.pool.services.position_sync import StakePositionSyncService
from stakepool.apps.sync.models import LedgerTransaction
from stakepool.apps.sync.services import TransactionNotConfirmed, record_client_transaction

from tests.conftest import TOKEN, make_pool

pytestmark = pytest.mark.django_db

WALLET = str(Pubkey.new_unique())


def test_deposit_row_updates_position_once():
    records.record_deposit_row(WALLET, 10 * TOKEN, "sig1")
    records.record_deposit_row(WALLET, 10 * TOKEN, "sig1")
    records.record_deposit_row(WALLET, 5 * TOKEN, "sig2")

    assert PoolDeposit.objects.count() == 2
    assert StakePosition.objects.get(wallet=WALLET).staked_amount == 15 * TOKEN


def test_withdrawal_decrements_stake_and_counts_yield():
    records.record_deposit_row(WALLET, 10 * TOKEN, "sig1")
    records.record_withdrawal(WALLET, 4 * TOKEN, 123, "sig2")

    position = StakePosition.objects.get(wallet=WALLET)
    assert position.staked_amount == 6 * TOKEN
    assert position.total_yield_claimed == 123


def test_accrual_is_stored_once_per_signature():
    pool = make_pool(total_staked=10_000 * TOKEN, reward_index=2**127 + 5)
    outcome = AccrualOutcome(
        status=SUBMITTED, amount=821_355_236, signature="sigY", seconds_elapsed=21_600, apy_basis_points=1200
    )

    records.record_accrual(outcome, pool)
    records.record_manual_accrual(outcome, pool)

    accrual = YieldAccrual.objects.get()
    assert accrual.trigger == "scheduler"
    assert accrual.amount == 821_355_236
    assert accrual.reward_index_before == 2**127 + 5


def test_snapshot_keeps_full_index():
    pool = make_pool(total_staked=5, total_stakers=1, reward_index=2**128 - 1)
    records.take_snapshot(pool)
    assert PoolSnapshot.objects.get().reward_index == 2**128 - 1


def test_position_sync_mirrors_stake_record(ledger):
    ledger.records[WALLET] = UserStakeRecord(
        user=Pubkey.from_string(WALLET),
        pool=Pubkey.new_unique(),
        staked_amount=7 * TOKEN,
        user_reward_index=2**100 + 1,
        total_yield_claimed=99,
    )
    StakePosition.objects.create(wallet=WALLET, staked_amount=1)

    assert StakePositionSyncService(ledger).sync_all_positions() == 1

    position = StakePosition.objects.get(wallet=WALLET)
    assert position.staked_amount == 7 * TOKEN
    assert position.user_reward_index == 2**100 + 1
    assert position.total_yield_claimed == 99
    assert position.last_synced_at is not None


def test_position_sync_leaves_matching_row_alone(ledger, caplog):
    ledger.records[WALLET] = UserStakeRecord(
        user=Pubkey.from_string(WALLET),
        pool=Pubkey.new_unique(),
        staked_amount=TOKEN,
        user_reward_index=2**127 + 9,
        total_yield_claimed=0,
    )
    StakePosition.objects.create(wallet=WALLET, staked_amount=TOKEN, user_reward_index=2**127 + 9)

    with caplog.at_level("INFO", logger="stakepool.apps.pool.services.position_sync"):
        StakePositionSyncService(ledger).sync_wallet(WALLET)

    assert "Updating" not in caplog.text
    assert StakePosition.objects.filter(user_reward_index=2**127 + 9).count() == 1


def test_index_outside_u128_is_refused():
    with pytest.raises(ValueError):
        StakePosition.objects.create(wallet=WALLET, user_reward_index=2**128)


def test_position_sync_reports_ledger_errors(ledger):
    def down(user):
        raise TransientLedgerError("timeout")

    ledger.get_user_stake_record = down
    assert StakePositionSyncService(ledger).sync_wallet(WALLET) is False


def test_client_deposit_recorded_after_confirmation(ledger):
    sig, row_id = record_client_transaction(ledger, "sigC", "deposit", WALLET, 3 * TOKEN)

    assert sig == "sigC"
    tx = LedgerTransaction.objects.get(pk=row_id)
    assert tx.slot == 99
    assert PoolDeposit.objects.get(tx_hash="sigC").amount == 3 * TOKEN

    # second call returns the existing row without touching the ledger
    ledger.statuses["sigC"] = {"status": "failed", "slot": None, "error": "x"}
    assert record_client_transaction(ledger, "sigC", "deposit", WALLET, 3 * TOKEN) == (sig, row_id)


def test_client_redeem_records_withdrawal(ledger):
    records.record_deposit_row(WALLET, 10 * TOKEN, "sig1")
    record_client_transaction(ledger, "sigR", "redeem", WALLET, 10 * TOKEN, {"interest_out": "42"})

    position = StakePosition.objects.get(wallet=WALLET)
    assert position.staked_amount == 0
    assert position.total_yield_claimed == 42


def test_unconfirmed_client_transaction_is_not_recorded(ledger):
    ledger.statuses["sigP"] = {"status": "pending", "slot": None, "error": None}

    with pytest.raises(TransactionNotConfirmed) as exc:
        record_client_transaction(ledger, "sigP", "deposit", WALLET, TOKEN)

    assert exc.value.status == "pending"
    assert not LedgerTransaction.objects.exists()
