"""
Base Solana Program Service
Provides common functionality for reading program accounts and submitting
instructions through a JSON-RPC node.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from django.conf import settings
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from ..errors import (
    LedgerOutcomeUnknown,
    LedgerRejection,
    TransientLedgerError,
)

logger = logging.getLogger(__name__)

_CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


def load_keypair(secret: Optional[str] = None, path: Optional[str] = None) -> Keypair:
    """
    Load a keypair from a JSON byte array (the solana-keygen file format),
    given inline or as a file path. Inline wins when both are set.
    """
    if secret:
        raw = json.loads(secret)
    elif path:
        raw = json.loads(Path(path).expanduser().read_text())
    else:
        raise ValueError("No keypair configured: set a secret or a keypair path")
    return Keypair.from_bytes(bytes(raw))


class BaseProgramService:
    """Base class for on-chain program interactions"""

    def __init__(
        self,
        program_id: str,
        rpc_url: Optional[str] = None,
        client: Optional[Client] = None,
        confirm_timeout: Optional[float] = None,
        poll_interval: float = 0.5,
    ):
        """
        Initialize the program service

        Args:
            program_id: The deployed program address (base58)
            rpc_url: Optional RPC endpoint (defaults to settings)
            client: Optional pre-built RPC client
            confirm_timeout: Seconds to wait for confirmation before giving up
            poll_interval: Seconds between signature status polls
        """
        self.rpc_url = rpc_url or settings.SOLANA_RPC_URL
        self.client = client or Client(self.rpc_url, commitment=Confirmed)
        self.program_id = Pubkey.from_string(program_id)
        self.confirm_timeout = (
            confirm_timeout if confirm_timeout is not None else settings.LEDGER_CONFIRM_TIMEOUT_SECONDS
        )
        self.poll_interval = poll_interval

        logger.info(f"Initialized program service for {self.program_id} via {self.rpc_url}")

    def fetch_account_data(self, address: Pubkey) -> Optional[bytes]:
        """Raw account bytes, or None when the account does not exist."""
        try:
            resp = self.client.get_account_info(address, commitment=Confirmed)
        except (SolanaRpcException, RPCException) as e:
            logger.error(f"Error fetching account {address}: {e}")
            raise TransientLedgerError(f"get_account_info({address}) failed: {e}") from e
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    def fetch_program_accounts(self, owner_program: Pubkey, filters: Sequence[Any]) -> List[Any]:
        try:
            resp = self.client.get_program_accounts(
                owner_program,
                commitment=Confirmed,
                encoding="base64",
                filters=list(filters),
            )
        except (SolanaRpcException, RPCException) as e:
            logger.error(f"Error listing accounts of {owner_program}: {e}")
            raise TransientLedgerError(f"get_program_accounts({owner_program}) failed: {e}") from e
        return list(resp.value)

    def send_instructions(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        max_retries: int = 3,
    ) -> Dict[str, Any]:
        """
        Build, sign, send and confirm a transaction.

        Only a stale blockhash is retried here: the cluster has provably not
        executed such a transaction. Anything else surfaces to the caller.

        Args:
            instructions: Instructions to include, in order
            signers: Keypairs; the first one pays fees
            max_retries: Attempts for blockhash-not-found rejections

        Returns:
            Dict with the transaction signature and confirmation slot
        """
        payer = signers[0].pubkey()

        for attempt in range(max_retries):
            try:
                blockhash = self.client.get_latest_blockhash(commitment=Confirmed).value.blockhash
            except (SolanaRpcException, RPCException) as e:
                raise TransientLedgerError(f"get_latest_blockhash failed: {e}") from e

            message = Message.new_with_blockhash(list(instructions), payer, blockhash)
            tx = Transaction(list(signers), message, blockhash)
            signature = tx.signatures[0]

            try:
                self.client.send_raw_transaction(
                    bytes(tx),
                    opts=TxOpts(skip_confirmation=True, preflight_commitment=Confirmed),
                )
            except RPCException as e:
                payload = e.args[0] if e.args else e
                rejection = LedgerRejection.from_payload(payload, signature=str(signature))
                if "blockhash not found" in str(payload).lower() and attempt < max_retries - 1:
                    logger.warning(
                        f"Stale blockhash, retrying... (attempt {attempt + 2}/{max_retries})"
                    )
                    time.sleep(self.poll_interval)
                    continue
                logger.error(f"Transaction rejected: {rejection.message} (code={rejection.code})")
                raise rejection from e
            except SolanaRpcException as e:
                # The request may have reached the cluster before the connection dropped.
                logger.error(f"Transport error while sending {signature}: {e}")
                raise LedgerOutcomeUnknown(str(signature), f"Send of {signature} interrupted: {e}") from e

            logger.info(f"Transaction sent: {signature}")
            slot = self.wait_for_confirmation(signature)
            logger.info(f"Transaction {signature} confirmed in slot {slot}")
            return {"signature": str(signature), "slot": slot}

        raise TransientLedgerError("Transaction failed after maximum retries")

    def wait_for_confirmation(self, signature: Signature) -> int:
        """
        Poll signature status until confirmed, rejected, or the timeout elapses.
        Returns the slot; raises LedgerRejection or LedgerOutcomeUnknown.
        """
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            try:
                resp = self.client.get_signature_statuses([signature])
                status = resp.value[0]
            except (SolanaRpcException, RPCException) as e:
                logger.warning(f"Status poll for {signature} failed: {e}")
                status = None

            if status is not None:
                if status.err is not None:
                    raise LedgerRejection.from_payload(status.err, signature=str(signature))
                if status.confirmation_status in _CONFIRMED_STATUSES:
                    return status.slot

            if time.monotonic() >= deadline:
                raise LedgerOutcomeUnknown(str(signature))
            time.sleep(self.poll_interval)

    def get_transaction_status(self, signature: str) -> Dict[str, Any]:
        """
        Look up a signature in history.
        Returns {'status': 'confirmed' | 'pending' | 'failed' | 'not_found', ...}.
        """
        sig = Signature.from_string(signature)
        try:
            resp = self.client.get_signature_statuses([sig], search_transaction_history=True)
        except (SolanaRpcException, RPCException) as e:
            raise TransientLedgerError(f"get_signature_statuses({signature}) failed: {e}") from e

        status = resp.value[0]
        if status is None:
            return {"status": "not_found", "slot": None, "error": None}
        if status.err is not None:
            return {"status": "failed", "slot": status.slot, "error": str(status.err)}
        if status.confirmation_status in _CONFIRMED_STATUSES:
            return {"status": "confirmed", "slot": status.slot, "error": None}
        return {"status": "pending", "slot": status.slot, "error": None}
