import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from stakepool.apps.ledger.errors import LedgerError
from stakepool.apps.ledger.responses import ledger_error_response
from stakepool.apps.ledger.services.voucher_pool import VoucherPoolService
from stakepool.apps.ledger.validators import is_pubkey, is_signature, parse_amount

from .coordinator import IdempotencyConflict, IdempotencyCoordinator, request_idempotency_key
from .services import (
    DB_AMOUNT_MAX,
    KINDS,
    TransactionNotConfirmed,
    record_client_transaction,
    validate_metadata,
)

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def sync_transaction_view(request):
    """
    Record a client-submitted, ledger-confirmed transaction exactly once.

    Body: {"tx_signature", "kind": "deposit"|"redeem", "wallet", "amount", "metadata"?}
    Key: Idempotency-Key header, idempotency_key field, else sync:<signature>.
    """
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid JSON"}, status=400)
    if not isinstance(body, dict):
        return JsonResponse({"success": False, "error": "Body must be a JSON object"}, status=400)

    signature = body.get("tx_signature") or body.get("txSignature")
    kind = body.get("kind")
    wallet = body.get("wallet")
    if not signature or not kind or not wallet:
        return JsonResponse({"success": False, "error": "Missing required fields"}, status=400)
    if not isinstance(kind, str) or kind not in KINDS:
        return JsonResponse({"success": False, "error": f"Unknown transaction kind: {kind}"}, status=400)
    if not is_signature(signature):
        return JsonResponse({"success": False, "error": "Invalid transaction signature"}, status=400)
    if not is_pubkey(wallet):
        return JsonResponse({"success": False, "error": "Invalid wallet"}, status=400)
    try:
        amount = parse_amount(body.get("amount"), default=0, maximum=DB_AMOUNT_MAX)
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid amount"}, status=400)

    metadata = body.get("metadata") or {}
    try:
        validate_metadata(kind, metadata)
    except ValueError as e:
        return JsonResponse({"success": False, "error": str(e)}, status=400)
    try:
        key = request_idempotency_key(request, body) or f"sync:{signature}"
    except ValueError:
        return JsonResponse({"success": False, "error": "Invalid idempotency key"}, status=400)

    try:
        service = VoucherPoolService()
        result = IdempotencyCoordinator().run(
            key,
            lambda: record_client_transaction(service, signature, kind, wallet, amount, metadata),
            operation=f"sync.{kind}",
        )
    except IdempotencyConflict as e:
        return JsonResponse({"success": False, "error": "in_progress", "message": str(e)}, status=409)
    except TransactionNotConfirmed as e:
        status = 422 if e.status == "failed" else 202
        return JsonResponse(
            {"success": False, "error": "not_confirmed", "ledger_status": e.status, "message": str(e)},
            status=status,
        )
    except LedgerError as e:
        return ledger_error_response(e)

    return JsonResponse(
        {
            "success": True,
            "replay": result.replay,
            "data": {"id": result.db_record_id, "tx_signature": result.tx_signature},
        }
    )
