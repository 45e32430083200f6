"""
Fixed-layout account codec.

Every ledger account the backend reads is described by an explicit offset
table: an ordered list of fields, each with a name, a kind and a byte width.
Offsets are derived from the declared order, so a schema change on the
program side shows up as a single edit here.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from solders.pubkey import Pubkey

from .errors import AccountDecodeError

DISCRIMINATOR_SIZE = 8

# kind -> (width, struct format or None)
_SCALARS = {
    "u8": (1, "<B"),
    "bool": (1, "<?"),
    "u16": (2, "<H"),
    "u32": (4, "<I"),
    "u64": (8, "<Q"),
    "i64": (8, "<q"),
}


def account_discriminator(name: str) -> bytes:
    """Anchor account discriminator: first 8 bytes of sha256("account:<Name>")."""
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


@dataclass(frozen=True)
class Field:
    name: str
    kind: str
    width: int

    @classmethod
    def scalar(cls, name: str, kind: str) -> "Field":
        return cls(name, kind, _SCALARS[kind][0])

    @classmethod
    def pubkey(cls, name: str) -> "Field":
        return cls(name, "pubkey", 32)

    @classmethod
    def u128(cls, name: str) -> "Field":
        return cls(name, "u128", 16)

    @classmethod
    def raw(cls, name: str, width: int) -> "Field":
        return cls(name, "bytes", width)

    @classmethod
    def option_pubkey(cls, name: str) -> "Field":
        # SPL COption: u32 tag + 32 byte payload
        return cls(name, "option_pubkey", 36)

    @classmethod
    def option_u64(cls, name: str) -> "Field":
        return cls(name, "option_u64", 12)


class AccountLayout:
    """Ordered offset table for one account type."""

    def __init__(self, name: str, fields: Sequence[Field], discriminator: Optional[bytes] = None):
        self.name = name
        self.fields: List[Field] = list(fields)
        self.discriminator = discriminator
        self.offsets: Dict[str, int] = {}

        offset = len(discriminator) if discriminator else 0
        for field in self.fields:
            if field.name in self.offsets:
                raise ValueError(f"Duplicate field {field.name} in layout {name}")
            self.offsets[field.name] = offset
            offset += field.width
        self.size = offset

    def offset_of(self, field_name: str) -> int:
        return self.offsets[field_name]

    def decode(self, data: bytes, address: Optional[str] = None) -> Dict[str, Any]:
        """
        Decode raw account bytes into a dict keyed by field name.

        Trailing bytes beyond the layout size are ignored (accounts may be
        allocated larger than their current schema). Short buffers and
        discriminator mismatches raise AccountDecodeError.
        """
        data = bytes(data)
        if len(data) < self.size:
            raise AccountDecodeError(
                self.name,
                f"expected at least {self.size} bytes, got {len(data)}",
                address=address,
                data_len=len(data),
            )

        if self.discriminator is not None:
            actual = data[:DISCRIMINATOR_SIZE]
            if actual != self.discriminator:
                raise AccountDecodeError(
                    self.name,
                    f"discriminator mismatch: expected {self.discriminator.hex()}, got {actual.hex()}",
                    address=address,
                    data_len=len(data),
                )

        values: Dict[str, Any] = {}
        for field in self.fields:
            start = self.offsets[field.name]
            chunk = data[start : start + field.width]
            values[field.name] = self._decode_field(field, chunk, address)
        return values

    def encode(self, values: Dict[str, Any]) -> bytes:
        """Inverse of decode. Missing `bytes` fields are zero-filled."""
        out = bytearray(self.discriminator or b"")
        for field in self.fields:
            if field.kind == "bytes" and field.name not in values:
                out += bytes(field.width)
                continue
            out += self._encode_field(field, values[field.name])
        return bytes(out)

    def _decode_field(self, field: Field, chunk: bytes, address: Optional[str]) -> Any:
        kind = field.kind
        if kind in _SCALARS:
            if kind == "bool" and chunk[0] > 1:
                raise AccountDecodeError(
                    self.name, f"invalid bool byte {chunk[0]} in field {field.name}", address=address
                )
            return struct.unpack(_SCALARS[kind][1], chunk)[0]
        if kind == "u128":
            return int.from_bytes(chunk, "little", signed=False)
        if kind == "pubkey":
            return Pubkey.from_bytes(chunk)
        if kind == "bytes":
            return chunk
        if kind == "option_pubkey":
            tag = struct.unpack("<I", chunk[:4])[0]
            if tag not in (0, 1):
                raise AccountDecodeError(
                    self.name, f"invalid option tag {tag} in field {field.name}", address=address
                )
            return Pubkey.from_bytes(chunk[4:]) if tag == 1 else None
        if kind == "option_u64":
            tag = struct.unpack("<I", chunk[:4])[0]
            if tag not in (0, 1):
                raise AccountDecodeError(
                    self.name, f"invalid option tag {tag} in field {field.name}", address=address
                )
            return struct.unpack("<Q", chunk[4:])[0] if tag == 1 else None
        raise AccountDecodeError(self.name, f"unknown field kind {kind}", address=address)

    def _encode_field(self, field: Field, value: Any) -> bytes:
        kind = field.kind
        if kind in _SCALARS:
            return struct.pack(_SCALARS[kind][1], value)
        if kind == "u128":
            return int(value).to_bytes(16, "little", signed=False)
        if kind == "pubkey":
            return bytes(value)
        if kind == "bytes":
            raw = bytes(value)
            if len(raw) != field.width:
                raise ValueError(f"{field.name} must be {field.width} bytes")
            return raw
        if kind == "option_pubkey":
            if value is None:
                return struct.pack("<I", 0) + bytes(32)
            return struct.pack("<I", 1) + bytes(value)
        if kind == "option_u64":
            if value is None:
                return struct.pack("<I", 0) + bytes(8)
            return struct.pack("<I", 1) + struct.pack("<Q", value)
        raise ValueError(f"unknown field kind {kind}")
