"""
Ledger error taxonomy.

TransientLedgerError   RPC / network failure; retry on the next tick.
LedgerOutcomeUnknown   submitted but not confirmed in time; re-check state first.
LedgerRejection        the program or token program refused the instruction.
AccountNotFound        the account does not exist (yet).
AccountDecodeError     bytes do not match the expected layout.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

# Anchor custom errors start at 6000, in declaration order of the program's error enum.
PROGRAM_ERRORS = {
    6016: "InsufficientBalance",
    6022: "InvalidAmount",
    6023: "Unauthorized",
    6024: "UnauthorizedDelegate",
    6025: "DepositsDisabled",
    6026: "WithdrawalsDisabled",
    6027: "ExceedsMaxStake",
    6028: "InvalidVault",
    6029: "InvalidMint",
    6030: "InvalidOwner",
    6031: "Overflow",
    6032: "DivisionByZero",
}

_ERROR_NUMBER_RE = re.compile(r"Error Number: (\d+)")
_CUSTOM_RE = re.compile(r"[Cc]ustom\((\d+)\)")
_CUSTOM_HEX_RE = re.compile(r"custom program error: (0x[0-9a-fA-F]+)")


class LedgerError(Exception):
    """Base class for everything raised while talking to the ledger."""


class TransientLedgerError(LedgerError):
    pass


class AccountNotFound(LedgerError):
    def __init__(self, kind: str, address: str):
        super().__init__(f"{kind} account {address} not found")
        self.kind = kind
        self.address = address


class AccountDecodeError(LedgerError):
    def __init__(
        self,
        layout: str,
        reason: str,
        address: Optional[str] = None,
        data_len: Optional[int] = None,
    ):
        where = f" at {address}" if address else ""
        super().__init__(f"Cannot decode {layout}{where}: {reason}")
        self.layout = layout
        self.reason = reason
        self.address = address
        self.data_len = data_len


class LedgerOutcomeUnknown(LedgerError):
    """The transaction was sent but its confirmation was not observed in time."""

    def __init__(self, signature: str, message: str = ""):
        super().__init__(message or f"Confirmation of {signature} timed out; outcome unknown")
        self.signature = signature


class LedgerRejection(LedgerError):
    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        logs: Optional[List[str]] = None,
        signature: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.logs = logs or []
        self.signature = signature

    @property
    def name(self) -> Optional[str]:
        if self.code is None:
            return None
        return PROGRAM_ERRORS.get(self.code, f"Custom({self.code})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "name": self.name,
            "logs": self.logs,
            "signature": self.signature,
        }

    @classmethod
    def from_payload(cls, payload: Any, signature: Optional[str] = None) -> "LedgerRejection":
        """
        Build a rejection from whatever the RPC layer handed back: a preflight
        failure message, a transaction error, or a plain string.
        """
        logs: List[str] = []
        data = getattr(payload, "data", None)
        raw_logs = getattr(data, "logs", None) if data is not None else None
        if raw_logs:
            logs = [str(line) for line in raw_logs]

        message = getattr(payload, "message", None) or str(payload)
        code = _extract_error_code(" ".join(logs) + " " + str(payload))
        return cls(str(message), code=code, logs=logs, signature=signature)


def _extract_error_code(text: str) -> Optional[int]:
    for pattern in (_ERROR_NUMBER_RE, _CUSTOM_RE):
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    match = _CUSTOM_HEX_RE.search(text)
    if match:
        return int(match.group(1), 16)
    return None
