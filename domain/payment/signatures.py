"""
Signature verification for payment gateway callbacks.

Pure functions with no I/O. Every verifier returns a definite bool: malformed
input, missing fields and missing key material all mean "not verified" and
never raise to the caller.

Two schemes are supported:

- HMAC-SHA256 over either a canonical ``orderReference|paymentReference``
  string or the raw webhook body.
- SHA-512 hash chain over an ordered list of named slots joined by ``|``.
  The slot order is a contract with the gateway, so it is expressed as a
  ``HashChainLayout`` built from configuration tokens rather than a template
  string.
"""
from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Union


SHA256_HEX_LENGTH = 64
SHA512_HEX_LENGTH = 128

_HEX_RE = re.compile(r"[0-9a-fA-F]+")

BytesLike = Union[str, bytes, bytearray]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value).encode("utf-8")


def _decode_hex(value: Any, expected_length: int) -> Optional[bytes]:
    """Decode a hex digest, or None when it is not exactly `expected_length` hex chars."""
    if not isinstance(value, str):
        return None
    if len(value) != expected_length or not _HEX_RE.fullmatch(value):
        return None
    return bytes.fromhex(value)


# ---------- HMAC scheme ----------

def compute_hmac_sha256(secret: BytesLike, message: BytesLike) -> str:
    return hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).hexdigest()


def verify_hmac_signature(secret: Optional[BytesLike], message: BytesLike, signature: Any) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature.

    A length or alphabet mismatch returns False before any comparison.
    """
    if not secret:
        return False
    supplied = _decode_hex(signature, SHA256_HEX_LENGTH)
    if supplied is None:
        return False
    expected = hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).digest()
    return hmac.compare_digest(expected, supplied)


def reference_canonical_string(order_reference: str, payment_reference: str) -> str:
    return f"{order_reference}|{payment_reference}"


def verify_reference_signature(
    secret: Optional[BytesLike],
    order_reference: Optional[str],
    payment_reference: Optional[str],
    signature: Any,
) -> bool:
    if not order_reference or not payment_reference:
        return False
    return verify_hmac_signature(
        secret,
        reference_canonical_string(order_reference, payment_reference),
        signature,
    )


# ---------- Hash-chain scheme ----------

class MissingHashField(KeyError):
    """A required payload field or key material is absent."""


@dataclass(frozen=True)
class HashChainSlot:
    source: str  # "payload" | "config" | "blank"
    name: str = ""

    @classmethod
    def parse(cls, token: str) -> "HashChainSlot":
        raw = (token or "").strip()
        if raw in ("", "blank"):
            return cls(source="blank")
        source, sep, name = raw.partition(":")
        if not sep or source not in ("payload", "config") or not name:
            raise ValueError(f"Invalid hash-chain slot token: {token!r}")
        return cls(source=source, name=name)

    def token(self) -> str:
        return "blank" if self.source == "blank" else f"{self.source}:{self.name}"


@dataclass(frozen=True)
class HashChainLayout:
    slots: tuple[HashChainSlot, ...]
    required: frozenset[str] = frozenset()

    @classmethod
    def from_tokens(cls, tokens: Sequence[str], required: Iterable[str] = ()) -> "HashChainLayout":
        slots = tuple(HashChainSlot.parse(t) for t in tokens)
        if not slots:
            raise ValueError("Hash-chain layout must contain at least one slot")
        return cls(slots=slots, required=frozenset(required))

    @property
    def payload_fields(self) -> list[str]:
        return [s.name for s in self.slots if s.source == "payload"]

    def canonical_string(self, payload: Mapping[str, Any], secrets: Mapping[str, Optional[str]]) -> str:
        parts: list[str] = []
        for slot in self.slots:
            if slot.source == "blank":
                parts.append("")
            elif slot.source == "config":
                value = secrets.get(slot.name)
                if not value:
                    raise MissingHashField(slot.name)
                parts.append(str(value))
            else:
                value = payload.get(slot.name)
                if value is None or value == "":
                    if slot.name in self.required:
                        raise MissingHashField(slot.name)
                    parts.append("")
                else:
                    parts.append(str(value))
        return "|".join(parts)


def compute_hash_chain(
    layout: HashChainLayout,
    payload: Mapping[str, Any],
    secrets: Mapping[str, Optional[str]],
) -> str:
    """SHA-512 hex of the layout's canonical string. Raises MissingHashField."""
    return hashlib.sha512(layout.canonical_string(payload, secrets).encode("utf-8")).hexdigest()


def verify_hash_chain(
    layout: HashChainLayout,
    payload: Mapping[str, Any],
    secrets: Mapping[str, Optional[str]],
    supplied_hash: Any,
) -> bool:
    supplied = _decode_hex(supplied_hash, SHA512_HEX_LENGTH)
    if supplied is None:
        return False
    try:
        canonical = layout.canonical_string(payload, secrets)
    except MissingHashField:
        return False
    expected = hashlib.sha512(canonical.encode("utf-8")).digest()
    return hmac.compare_digest(expected, supplied)


# Default layouts of the hash-chain gateway. `key` is the merchant API key and
# `salt` the response key. Request and response directions differ: the
# response walks the user-defined fields backwards and starts with the salt.
# Both carry exactly ten slots between the head fields and the tail fields.
DEFAULT_REQUEST_HASH_LAYOUT: tuple[str, ...] = (
    "config:key",
    "payload:txnid",
    "payload:amount",
    "payload:productinfo",
    "payload:firstname",
    "payload:email",
    "payload:udf1",
    "payload:udf2",
    "payload:udf3",
    "payload:udf4",
    "payload:udf5",
    "blank",
    "blank",
    "blank",
    "blank",
    "blank",
    "config:salt",
)

DEFAULT_RESPONSE_HASH_LAYOUT: tuple[str, ...] = (
    "config:salt",
    "payload:status",
    "blank",
    "blank",
    "blank",
    "blank",
    "blank",
    "payload:udf5",
    "payload:udf4",
    "payload:udf3",
    "payload:udf2",
    "payload:udf1",
    "payload:email",
    "payload:firstname",
    "payload:productinfo",
    "payload:amount",
    "payload:txnid",
    "config:key",
)

REQUEST_REQUIRED_FIELDS: tuple[str, ...] = ("txnid", "amount", "firstname", "email")
RESPONSE_REQUIRED_FIELDS: tuple[str, ...] = ("status", "txnid", "amount")
