import logging
from typing import Any, Dict, Optional, Tuple

from stakepool.apps.ledger.validators import is_pubkey, parse_amount
from stakepool.apps.pool.services.records import record_deposit_row, record_withdrawal

from .models import LedgerTransaction

logger = logging.getLogger(__name__)

KINDS = {"deposit", "redeem"}
DB_AMOUNT_MAX = 2**63 - 1  # BigIntegerField


class TransactionNotConfirmed(Exception):
    def __init__(self, signature: str, status: str, error: Optional[str] = None):
        super().__init__(f"Transaction {signature} is {status}" + (f": {error}" if error else ""))
        self.signature = signature
        self.status = status
        self.error = error


def validate_metadata(kind: str, metadata) -> None:
    """Raise ValueError unless metadata is an object the recorder for `kind` can use."""
    if not isinstance(metadata, dict):
        raise ValueError("metadata must be an object")
    if kind == "deposit":
        token_account = metadata.get("token_account")
        if token_account is not None and not is_pubkey(token_account):
            raise ValueError("metadata.token_account must be a token account address")
    else:
        try:
            parse_amount(metadata.get("interest_out"), default=0, maximum=DB_AMOUNT_MAX)
        except ValueError:
            raise ValueError("metadata.interest_out must be a non-negative integer") from None


def record_client_transaction(
    service,
    tx_signature: str,
    kind: str,
    wallet: str,
    amount: int,
    metadata: Optional[Dict[str, Any]] = None,
) -> Tuple[str, str]:
    """
    Verify a client-submitted transaction on the ledger and record it once.

    Returns (tx_signature, ledger_transaction_id). Raises
    TransactionNotConfirmed when the ledger does not show it as confirmed.
    """
    metadata = metadata or {}
    existing = LedgerTransaction.objects.filter(tx_signature=tx_signature).first()
    if existing:
        logger.info(f"Transaction {tx_signature} already recorded as {existing.id}")
        return existing.tx_signature, str(existing.id)

    status = service.get_transaction_status(tx_signature)
    if status["status"] != "confirmed":
        raise TransactionNotConfirmed(tx_signature, status["status"], status.get("error"))

    ledger_tx = LedgerTransaction.objects.create(
        tx_signature=tx_signature,
        kind=kind,
        wallet=wallet,
        amount=amount,
        slot=status.get("slot"),
        metadata=metadata,
    )
    if kind == "deposit":
        record_deposit_row(wallet, amount, tx_signature, token_account=metadata.get("token_account") or "")
    else:
        record_withdrawal(wallet, amount, int(metadata.get("interest_out") or 0), tx_signature)

    logger.info(f"Recorded {kind} {ledger_tx.id} for {wallet} ({amount}, tx: {tx_signature})")
    return tx_signature, str(ledger_tx.id)
