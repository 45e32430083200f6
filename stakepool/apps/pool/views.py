import json
import logging
import time
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.crypto import constant_time_compare
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST
from solders.pubkey import Pubkey

from stakepool.apps.audit.models import DataAccessLog
from stakepool.apps.ledger.accounts import UserStakeRecord
from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.ledger.responses import ledger_error_response
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService
from stakepool.apps.ledger.validators import is_pubkey, parse_amount
from stakepool.apps.pool.deposit_status_store import DepositStatusStore
from stakepool.apps.pool.models import StakePosition
from stakepool.apps.pool.rewards import ArithmeticOverflow, claimable, project_deposit, project_redeem
from stakepool.apps.pool.scanner import DEPOSITED, UNKNOWN, DelegationScanner
from stakepool.apps.pool.scanner import FAILED as DEPOSIT_FAILED
from stakepool.apps.pool.scheduler import FAILED, SKIPPED, AccrualScheduler
from stakepool.apps.pool.scheduler import UNKNOWN as ACCRUAL_UNKNOWN
from stakepool.apps.pool.services.records import record_deposit, record_manual_accrual
from stakepool.apps.pool.yield_calc import annual_yield
from stakepool.apps.sync.coordinator import IdempotencyConflict, IdempotencyCoordinator, request_idempotency_key

logger = logging.getLogger(__name__)

SKIP_MESSAGES = {
    "not_enough_time": "Not enough time elapsed since the last accrual",
    "zero_stake": "No tokens staked in pool",
    "zero_yield": "Calculated yield is 0",
    "busy": "An accrual is already being submitted",
}


class DepositNotMade(Exception):
    def __init__(self, result):
        super().__init__(f"Deposit for {result.owner} skipped: {result.reason}")
        self.result = result


def _json_body(request) -> dict:
    """Parsed JSON object body; ValueError for malformed JSON or a non-object."""
    if not request.body:
        return {}
    body = json.loads(request.body)
    if not isinstance(body, dict):
        raise ValueError("body must be a JSON object")
    return body


@csrf_exempt
@require_http_methods(["GET", "POST"])
def record_yield_view(request):
    """
    GET: pool snapshot and a would-accrue preview.
    POST: trigger one accrual cycle; {"adminKey"?, "force"?}.
    """
    if request.method == "GET":
        try:
            preview = AccrualScheduler(VoucherPoolService()).preview()
        except LedgerError as e:
            logger.error(f"Accrual preview failed: {e}")
            return ledger_error_response(e)
        return JsonResponse({"success": True, **preview})

    try:
        body = _json_body(request)
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid JSON"}, status=400)

    expected = settings.ADMIN_API_KEY
    admin_key = body.get("adminKey") or request.headers.get("X-Admin-Key") or ""
    if expected and not constant_time_compare(admin_key, expected):
        return JsonResponse({"success": False, "error": "Unauthorized"}, status=401)

    force = body.get("force") is True
    logger.info(f"Manual accrual triggered (force={force})")

    scheduler = AccrualScheduler(VoucherPoolService(), recorder=record_manual_accrual)
    outcome = scheduler.run_once(force=force)
    DataAccessLog.record("admin", "pool.record_yield", "trigger", force=force, outcome=outcome.to_dict())

    if outcome.status == SKIPPED:
        return JsonResponse(
            {
                "success": False,
                "message": SKIP_MESSAGES.get(outcome.reason, outcome.reason),
                **outcome.to_dict(),
            },
            status=400,
        )
    if outcome.status in (FAILED, ACCRUAL_UNKNOWN):
        if outcome.error is not None:
            return ledger_error_response(outcome.error)
        return JsonResponse({"success": False, **outcome.to_dict()}, status=500)

    return JsonResponse(
        {
            "success": True,
            "transaction": outcome.signature,
            "yield_recorded": outcome.amount,
            **outcome.to_dict(),
        }
    )


@csrf_exempt
@require_POST
def deposit_view(request):
    """
    Deposit one wallet's delegated allowance now.
    Body: {"wallet"}; Idempotency-Key header or idempotency_key field.
    """
    try:
        body = _json_body(request)
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid JSON"}, status=400)

    wallet = body.get("wallet", "")
    if not is_pubkey(wallet):
        return JsonResponse({"success": False, "error": "Invalid wallet"}, status=400)
    try:
        key = request_idempotency_key(request, body) or str(uuid.uuid4())
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid idempotency key"}, status=400)

    service = VoucherPoolService()
    scanner = DelegationScanner(service, status_store=DepositStatusStore(service=service))

    def deposit():
        result = scanner.deposit_for_owner(wallet)
        if result.status == DEPOSITED:
            row = record_deposit(result)
            return result.signature, str(row.id)
        if result.status in (UNKNOWN, DEPOSIT_FAILED) and result.error is not None:
            raise result.error
        raise DepositNotMade(result)

    try:
        begun = IdempotencyCoordinator().run(key, deposit, operation="pool.deposit")
    except IdempotencyConflict as e:
        return JsonResponse({"success": False, "error": "in_progress", "message": str(e)}, status=409)
    except DepositNotMade as e:
        return JsonResponse({"success": False, **e.result.to_dict()}, status=422)
    except LedgerError as e:
        return ledger_error_response(e)

    return JsonResponse(
        {
            "success": True,
            "replay": begun.replay,
            "transaction": begun.tx_signature,
            "deposit_id": begun.db_record_id,
        }
    )


@require_GET
def deposit_status_view(request, wallet: str):
    """Progress of the most recent delegated deposit for a wallet."""
    data = DepositStatusStore().get(wallet)
    if not data:
        return JsonResponse({"status": "not_found", "wallet": wallet}, status=404)
    return JsonResponse(data)


@require_GET
def position_view(request, wallet: str):
    """
    On-chain stake record, claimable preview and the off-chain mirror.
    ?deposit=<amount> adds the position a deposit of that size would leave.
    """
    if not is_pubkey(wallet):
        return JsonResponse({"success": False, "error": "Invalid wallet"}, status=400)
    try:
        deposit_amount = parse_amount(request.GET.get("deposit"), default=0)
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid deposit amount"}, status=400)

    try:
        service = VoucherPoolService()
        pool = service.get_pool_state()
        record = service.get_user_stake_record(wallet)
    except LedgerError as e:
        return ledger_error_response(e)

    now = int(time.time())
    data = {
        "success": True,
        "wallet": wallet,
        "stake_record": record.to_dict() if record else None,
        "claimable": claimable(pool, record) if record else 0,
        "reward_index": str(pool.reward_index),
        "projected_annual_yield": annual_yield(record.staked_amount, pool.config.apy_basis_points) if record else 0,
        "full_redeem": project_redeem(pool, record, record.staked_amount, now)
        if record and record.staked_amount
        else None,
    }
    if deposit_amount:
        current = record or UserStakeRecord(user=Pubkey.from_string(wallet), pool=Pubkey.default())
        try:
            data["after_deposit"] = project_deposit(pool, current, deposit_amount, now)
        except ArithmeticOverflow as e:
            return JsonResponse({"success": False, "error": str(e)}, status=400)

    mirror = StakePosition.objects.filter(wallet=wallet).first()
    data["off_chain"] = (
        {
            "staked_amount": mirror.staked_amount,
            "total_yield_claimed": mirror.total_yield_claimed,
            "last_synced_at": mirror.last_synced_at.isoformat() if mirror.last_synced_at else None,
        }
        if mirror
        else None
    )
    return JsonResponse(data)
