import json
import struct
from types import SimpleNamespace
from unittest import mock

import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from stakepool.apps.ledger import instructions
from stakepool.apps.ledger.accounts import TokenAccount
from stakepool.apps.ledger.errors import (
    AccountNotFound,
    LedgerOutcomeUnknown,
    LedgerRejection,
    TransientLedgerError,
)
from stakepool.apps.ledger.services.base_program import load_keypair
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService

from tests.conftest import make_pool


class ConnectionDropped(SolanaRpcException):
    def __init__(self, message):
        Exception.__init__(self, message)


def _status(confirmation=TransactionConfirmationStatus.Confirmed, err=None, slot=42):
    return SimpleNamespace(err=err, confirmation_status=confirmation, slot=slot)


@pytest.fixture
def client():
    client = mock.MagicMock()
    client.get_latest_blockhash.return_value = SimpleNamespace(value=SimpleNamespace(blockhash=Hash.new_unique()))
    client.get_signature_statuses.return_value = SimpleNamespace(value=[_status()])
    return client


@pytest.fixture
def service(client):
    return VoucherPoolService(client=client, delegate=Keypair(), confirm_timeout=0, poll_interval=0)


def _sent_transaction(client) -> Transaction:
    raw = client.send_raw_transaction.call_args[0][0]
    return Transaction.from_bytes(raw)


# ---- reads ----


def test_get_pool_state_decodes_account(service, client):
    pool = make_pool(total_staked=123)
    client.get_account_info.return_value = SimpleNamespace(value=SimpleNamespace(data=pool.to_bytes()))

    state = service.get_pool_state()

    assert state.total_staked == 123
    assert client.get_account_info.call_args[0][0] == service.pool_state_address


def test_missing_pool_is_not_found(service, client):
    client.get_account_info.return_value = SimpleNamespace(value=None)
    with pytest.raises(AccountNotFound):
        service.get_pool_state()


def test_missing_stake_record_is_none(service, client):
    client.get_account_info.return_value = SimpleNamespace(value=None)
    assert service.get_user_stake_record(Pubkey.new_unique()) is None


def test_rpc_failure_is_transient(service, client):
    client.get_account_info.side_effect = ConnectionDropped("connection refused")
    with pytest.raises(TransientLedgerError):
        service.get_pool_state()


def test_list_delegated_token_accounts_filters(service, client):
    mine = TokenAccount(None, service.voucher_mint, Pubkey.new_unique(), 10, service.operating_key, 10)
    other = TokenAccount(None, service.voucher_mint, Pubkey.new_unique(), 10, Pubkey.new_unique(), 10)
    keyed = [
        SimpleNamespace(pubkey=Pubkey.new_unique(), account=SimpleNamespace(data=mine.to_bytes())),
        SimpleNamespace(pubkey=Pubkey.new_unique(), account=SimpleNamespace(data=other.to_bytes())),
    ]
    client.get_program_accounts.return_value = SimpleNamespace(value=keyed)

    found = service.list_delegated_token_accounts()

    assert [a.owner for a in found] == [mine.owner]
    assert found[0].address == keyed[0].pubkey
    filters = client.get_program_accounts.call_args.kwargs["filters"]
    assert filters[0] == 165
    assert (filters[1].offset, filters[1].bytes) == (0, str(service.voucher_mint))
    assert (filters[2].offset, filters[2].bytes) == (76, str(service.operating_key))


# ---- writes ----


def test_record_yield_sends_and_confirms(service, client):
    result = service.record_yield(500)

    assert result["slot"] == 42
    tx = _sent_transaction(client)
    assert str(tx.signatures[0]) == result["signature"]
    assert bytes(tx.message.instructions[0].data) == instructions.RECORD_YIELD + struct.pack("<Q", 500)


def test_deposit_voucher_signed_by_delegate_only(service, client):
    service.deposit_voucher(Pubkey.new_unique(), Pubkey.new_unique(), 9)

    tx = _sent_transaction(client)
    assert len(tx.signatures) == 1
    assert tx.message.account_keys[0] == service.operating_key


def test_program_error_becomes_rejection(service, client):
    payload = SimpleNamespace(
        message="Transaction simulation failed: Error processing Instruction 0",
        data=SimpleNamespace(logs=["Program log: AnchorError. Error Number: 6025. Error Message: Deposits disabled."]),
    )
    client.send_raw_transaction.side_effect = RPCException(payload)

    with pytest.raises(LedgerRejection) as exc:
        service.record_yield(1)

    assert exc.value.code == 6025
    assert exc.value.name == "DepositsDisabled"
    assert exc.value.logs


def test_stale_blockhash_is_retried(service, client):
    stale = RPCException(SimpleNamespace(message="Transaction simulation failed: Blockhash not found", data=None))
    client.send_raw_transaction.side_effect = [stale, None]

    result = service.record_yield(1)

    assert result["slot"] == 42
    assert client.send_raw_transaction.call_count == 2
    assert client.get_latest_blockhash.call_count == 2


def test_dropped_send_is_outcome_unknown(service, client):
    client.send_raw_transaction.side_effect = ConnectionDropped("read timeout")
    with pytest.raises(LedgerOutcomeUnknown) as exc:
        service.record_yield(1)
    assert exc.value.signature == str(_sent_transaction(client).signatures[0])


def test_confirmation_timeout_is_outcome_unknown(service, client):
    client.get_signature_statuses.return_value = SimpleNamespace(
        value=[_status(TransactionConfirmationStatus.Processed)]
    )
    with pytest.raises(LedgerOutcomeUnknown):
        service.record_yield(1)


def test_failed_execution_is_rejection(service, client):
    client.get_signature_statuses.return_value = SimpleNamespace(
        value=[_status(err="InstructionError(0, Custom(6031))")]
    )
    with pytest.raises(LedgerRejection) as exc:
        service.record_yield(1)
    assert exc.value.name == "Overflow"


@pytest.mark.parametrize(
    "status, expected",
    [
        (None, "not_found"),
        (_status(), "confirmed"),
        (_status(TransactionConfirmationStatus.Processed), "pending"),
        (_status(err="InstructionError"), "failed"),
    ],
)
def test_transaction_status(service, client, status, expected):
    client.get_signature_statuses.return_value = SimpleNamespace(value=[status])
    assert service.get_transaction_status(str(Signature.new_unique()))["status"] == expected


# ---- keys ----


def test_load_keypair_inline_and_file(tmp_path):
    kp = Keypair()
    secret = json.dumps(list(bytes(kp)))
    path = tmp_path / "id.json"
    path.write_text(secret)

    assert load_keypair(secret=secret).pubkey() == kp.pubkey()
    assert load_keypair(path=str(path)).pubkey() == kp.pubkey()
    with pytest.raises(ValueError):
        load_keypair()
