from solders.pubkey import Pubkey
from solders.signature import Signature

U64_MAX = 2**64 - 1


def is_pubkey(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        Pubkey.from_string(value)
    except ValueError:
        return False
    return True


def is_signature(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        Signature.from_string(value)
    except ValueError:
        return False
    return True


def parse_amount(value, default=None, maximum: int = U64_MAX) -> int:
    """Integer in [0, maximum] from a JSON number or numeric string; ValueError otherwise."""
    if value is None and default is not None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"not an amount: {value!r}")
    amount = int(value)
    if not 0 <= amount <= maximum:
        raise ValueError(f"amount out of range: {amount}")
    return amount
