from django.http import JsonResponse

from .errors import (
    AccountDecodeError,
    AccountNotFound,
    LedgerOutcomeUnknown,
    LedgerRejection,
    TransientLedgerError,
)


def ledger_error_response(e: Exception) -> JsonResponse:
    """Map a ledger exception onto the HTTP status the API promises for it."""
    if isinstance(e, LedgerRejection):
        return JsonResponse({"success": False, "error": "rejected", "ledger_error": e.to_dict()}, status=422)
    if isinstance(e, LedgerOutcomeUnknown):
        return JsonResponse(
            {
                "success": False,
                "error": "outcome_unknown",
                "signature": e.signature,
                "message": "Submitted but not yet confirmed; check the signature before retrying",
            },
            status=202,
        )
    if isinstance(e, TransientLedgerError):
        return JsonResponse({"success": False, "error": "ledger_unavailable", "message": str(e)}, status=503)
    if isinstance(e, AccountNotFound):
        return JsonResponse({"success": False, "error": "not_found", "message": str(e)}, status=404)
    if isinstance(e, AccountDecodeError):
        return JsonResponse({"success": False, "error": "decode_error", "message": str(e)}, status=500)
    return JsonResponse({"success": False, "error": str(e)}, status=500)
