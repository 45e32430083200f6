import json
from unittest import mock

import pytest
from solders.pubkey import Pubkey
from solders.signature import Signature

from stakepool.apps.audit.models import DataAccessLog
from stakepool.apps.ledger.errors import LedgerOutcomeUnknown, TransientLedgerError
from stakepool.apps.pool.deposit_status_store import DepositStatusStore
from stakepool.apps.pool.models import PoolDeposit, StakePosition, YieldAccrual
from stakepool.apps.sync.models import IdempotencyRecord, LedgerTransaction

from tests.conftest import TOKEN, FakeRedis

pytestmark = pytest.mark.django_db

ADMIN = {"HTTP_X_ADMIN_KEY": "test-admin-key"}


@pytest.fixture
def pool_service(ledger):
    with mock.patch("stakepool.apps.pool.views.VoucherPoolService", return_value=ledger):
        yield ledger


@pytest.fixture
def redis():
    fake = FakeRedis()

    def store(**kwargs):
        return DepositStatusStore(redis_client=fake, **kwargs)

    with mock.patch("stakepool.apps.pool.views.DepositStatusStore", side_effect=store):
        yield fake


def _post(client, url, body, **extra):
    return client.post(url, data=json.dumps(body), content_type="application/json", **extra)


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# ---- record-yield ----


def test_record_yield_preview(client, pool_service):
    pool_service.pool.total_staked = 100 * TOKEN
    response = client.get("/pool/record-yield/")

    data = response.json()
    assert response.status_code == 200
    assert data["success"] is True
    assert data["pool"]["total_staked"] == 100 * TOKEN
    assert "would_accrue" in data
    assert pool_service.record_yield_calls == []


def test_record_yield_requires_admin_key(client, pool_service):
    response = _post(client, "/pool/record-yield/", {"adminKey": "wrong"})
    assert response.status_code == 401
    assert pool_service.record_yield_calls == []


def test_record_yield_skip_is_reported(client, pool_service):
    response = _post(client, "/pool/record-yield/", {"adminKey": "test-admin-key"})

    data = response.json()
    assert response.status_code == 400
    assert data["reason"] == "zero_stake"
    assert data["message"] == "No tokens staked in pool"
    assert DataAccessLog.objects.filter(resource="pool.record_yield").count() == 1


def test_record_yield_submits_and_stores(client, pool_service):
    pool_service.pool.total_staked = 10_000 * TOKEN

    response = _post(client, "/pool/record-yield/", {"force": True}, **ADMIN)

    data = response.json()
    assert response.status_code == 200
    assert data["success"] is True
    assert data["transaction"] == "sig1"
    assert data["yield_recorded"] == pool_service.record_yield_calls[0]
    assert YieldAccrual.objects.get().trigger == "manual"


def test_record_yield_unknown_outcome_is_202(client, pool_service):
    pool_service.pool.total_staked = 10_000 * TOKEN
    pool_service.record_yield_error = LedgerOutcomeUnknown("sigU")

    response = _post(client, "/pool/record-yield/", {}, **ADMIN)

    assert response.status_code == 202
    assert response.json()["signature"] == "sigU"
    assert not YieldAccrual.objects.exists()


def test_record_yield_ledger_down_is_503(client, pool_service):
    pool_service.pool.total_staked = 10_000 * TOKEN
    pool_service.record_yield_error = TransientLedgerError("rpc down")

    response = _post(client, "/pool/record-yield/", {}, **ADMIN)
    assert response.status_code == 503


# ---- deposits ----


def test_deposit_runs_once_per_key(client, pool_service, redis):
    account = pool_service.add_token_account(amount=10 * TOKEN, delegated=10 * TOKEN)
    wallet = str(account.owner)

    first = _post(client, "/pool/deposit/", {"wallet": wallet}, HTTP_IDEMPOTENCY_KEY="dep-1")
    second = _post(client, "/pool/deposit/", {"wallet": wallet}, HTTP_IDEMPOTENCY_KEY="dep-1")

    assert first.status_code == 200
    assert first.json()["replay"] is False
    assert second.json()["replay"] is True
    assert second.json()["transaction"] == first.json()["transaction"]
    assert len(pool_service.deposit_calls) == 1
    assert StakePosition.objects.get(wallet=wallet).staked_amount == 10 * TOKEN

    status = client.get(f"/pool/deposit/status/{wallet}/")
    assert status.json()["status"] == "success"


def test_deposit_without_delegation_is_422(client, pool_service, redis):
    account = pool_service.add_token_account(amount=10 * TOKEN, delegated=0)

    response = _post(client, "/pool/deposit/", {"wallet": str(account.owner)})

    assert response.status_code == 422
    assert response.json()["reason"] == "no_delegation"
    assert not PoolDeposit.objects.exists()
    assert IdempotencyRecord.objects.get().status == IdempotencyRecord.FAILED


def test_deposit_conflict_while_pending(client, pool_service, redis):
    IdempotencyRecord.objects.create(key="dep-2", status=IdempotencyRecord.PENDING)
    account = pool_service.add_token_account(amount=10 * TOKEN, delegated=10 * TOKEN)

    response = _post(client, "/pool/deposit/", {"wallet": str(account.owner), "idempotency_key": "dep-2"})

    assert response.status_code == 409
    assert pool_service.deposit_calls == []


def test_deposit_rejects_bad_wallet(client, pool_service, redis):
    assert _post(client, "/pool/deposit/", {"wallet": "not-a-key"}).status_code == 400
    assert _post(client, "/pool/deposit/", {"wallet": 12}).status_code == 400
    assert pool_service.deposit_calls == []


def test_deposit_rejects_bad_idempotency_key(client, pool_service, redis):
    account = pool_service.add_token_account(amount=10 * TOKEN, delegated=10 * TOKEN)

    response = _post(client, "/pool/deposit/", {"wallet": str(account.owner), "idempotency_key": ["k"]})

    assert response.status_code == 400
    assert pool_service.deposit_calls == []
    assert not IdempotencyRecord.objects.exists()


def test_deposit_status_unknown_wallet(client, redis):
    response = client.get(f"/pool/deposit/status/{Pubkey.new_unique()}/")
    assert response.status_code == 404


def test_position_view(client, pool_service, redis):
    account = pool_service.add_token_account(amount=10 * TOKEN, delegated=10 * TOKEN)
    _post(client, "/pool/deposit/", {"wallet": str(account.owner)})
    pool_service.record_yield(TOKEN)

    response = client.get(f"/pool/positions/{account.owner}/")

    data = response.json()
    assert data["stake_record"]["staked_amount"] == 10 * TOKEN
    assert data["claimable"] == TOKEN
    assert data["full_redeem"] == {"principal_out": 10 * TOKEN, "interest_out": TOKEN, "remaining_stake": 0}
    assert data["projected_annual_yield"] == 10 * TOKEN * pool_service.pool.config.apy_basis_points // 10_000
    assert "after_deposit" not in data
    assert data["off_chain"]["staked_amount"] == 10 * TOKEN
    # previews never touch the decoded records
    assert pool_service.pool.total_staked == 10 * TOKEN


def test_position_view_deposit_preview(client, pool_service):
    wallet = Pubkey.new_unique()

    response = client.get(f"/pool/positions/{wallet}/", {"deposit": str(3 * TOKEN)})

    data = response.json()
    assert data["stake_record"] is None
    assert data["full_redeem"] is None
    assert data["after_deposit"] == {
        "settled_yield": 0,
        "staked_amount": 3 * TOKEN,
        "user_reward_index": str(pool_service.pool.reward_index),
    }


@pytest.mark.parametrize("deposit", ["-5", "lots", str(2**64)])
def test_position_view_rejects_bad_deposit_preview(client, pool_service, deposit):
    response = client.get(f"/pool/positions/{Pubkey.new_unique()}/", {"deposit": deposit})
    assert response.status_code == 400


# ---- client transaction sync ----


@pytest.fixture
def sync_service(ledger):
    with mock.patch("stakepool.apps.sync.views.VoucherPoolService", return_value=ledger):
        yield ledger


def _sig() -> str:
    return str(Signature.new_unique())


def test_sync_records_and_replays(client, sync_service):
    wallet = str(Pubkey.new_unique())
    sig = _sig()
    body = {"txSignature": sig, "kind": "deposit", "wallet": wallet, "amount": 5 * TOKEN}

    first = _post(client, "/sync/transaction/", body)
    second = _post(client, "/sync/transaction/", body)

    assert first.status_code == 200
    assert first.json()["replay"] is False
    assert second.json()["replay"] is True
    assert second.json()["data"] == first.json()["data"]
    assert first.json()["data"]["tx_signature"] == sig
    assert LedgerTransaction.objects.count() == 1
    assert StakePosition.objects.get(wallet=wallet).staked_amount == 5 * TOKEN


def test_sync_pending_transaction_is_202(client, sync_service):
    sig = _sig()
    sync_service.statuses[sig] = {"status": "pending", "slot": None, "error": None}
    body = {"tx_signature": sig, "kind": "redeem", "wallet": str(Pubkey.new_unique()), "amount": 1}

    response = _post(client, "/sync/transaction/", body)

    assert response.status_code == 202
    assert response.json()["ledger_status"] == "pending"


def test_sync_failed_transaction_is_422(client, sync_service):
    sig = _sig()
    sync_service.statuses[sig] = {"status": "failed", "slot": 3, "error": "InstructionError"}
    body = {"tx_signature": sig, "kind": "deposit", "wallet": str(Pubkey.new_unique()), "amount": 1}

    assert _post(client, "/sync/transaction/", body).status_code == 422


WALLET = str(Pubkey.new_unique())
SIG = str(Signature.new_unique())


@pytest.mark.parametrize(
    "body, error",
    [
        ({"kind": "deposit", "wallet": WALLET, "amount": 1}, "Missing required fields"),
        ({"tx_signature": SIG, "kind": "stake", "wallet": WALLET, "amount": 1}, "Unknown transaction kind: stake"),
        ({"tx_signature": SIG, "kind": ["deposit"], "wallet": WALLET}, "Unknown transaction kind: ['deposit']"),
        ({"tx_signature": "not-a-signature", "kind": "deposit", "wallet": WALLET}, "Invalid transaction signature"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": "w" * 45}, "Invalid wallet"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": ["a"]}, "Invalid wallet"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": WALLET, "amount": "lots"}, "Invalid amount"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": WALLET, "amount": -1}, "Invalid amount"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": WALLET, "amount": 2**63}, "Invalid amount"),
        ({"tx_signature": SIG, "kind": "deposit", "wallet": WALLET, "metadata": [1]}, "metadata must be an object"),
        (
            {"tx_signature": SIG, "kind": "redeem", "wallet": WALLET, "metadata": {"interest_out": "x"}},
            "metadata.interest_out must be a non-negative integer",
        ),
        (
            {"tx_signature": SIG, "kind": "deposit", "wallet": WALLET, "idempotency_key": "k" * 256},
            "Invalid idempotency key",
        ),
    ],
)
def test_sync_validation(client, sync_service, body, error):
    response = _post(client, "/sync/transaction/", body)

    assert response.status_code == 400
    assert response.json()["error"] == error
    assert not IdempotencyRecord.objects.exists()
    assert not LedgerTransaction.objects.exists()


@pytest.mark.parametrize("url", ["/sync/transaction/", "/pool/deposit/", "/pool/record-yield/"])
def test_non_object_body_is_400(client, pool_service, sync_service, redis, url):
    response = client.post(url, data="[]", content_type="application/json", **ADMIN)
    assert response.status_code == 400
    assert not IdempotencyRecord.objects.exists()
