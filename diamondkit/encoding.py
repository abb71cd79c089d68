"""Call payload encoding.

An encoded call is the 4-byte fingerprint of the target function followed by
the canonical JSON encoding of its argument list. Payloads are opaque to
everything except the contract that finally dispatches them, so the format
only has to be deterministic: the same call always encodes to the same bytes,
which makes the payload hash usable as a deferred-call key.

Canonical JSON properties:
- Keys sorted lexicographically
- No whitespace
- UTF-8 encoded
- Floats rejected (use strings/ints for amounts)
- bytes rendered as `0x`-prefixed lowercase hex
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, List, Sequence, Tuple

from diamondkit.fingerprint import FINGERPRINT_BYTES, SignatureLike, as_signature, keccak256
from diamondkit.hardening import ValidationError


def to_jsonable(value: Any) -> Any:
    """Convert call arguments into plain JSON-compatible values."""
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "to_dict"):
        return to_jsonable(value.to_dict())
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes."""
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def encode_call(signature: SignatureLike, args: Sequence[Any] = ()) -> bytes:
    """Encode a call to `signature` with positional `args`."""
    fingerprint = as_signature(signature).fingerprint
    payload = canonical_json_bytes(to_jsonable(list(args)))
    return bytes.fromhex(fingerprint[2:]) + payload


def decode_call(data: bytes) -> Tuple[str, List[Any]]:
    """Split an encoded call into (fingerprint, args)."""
    if isinstance(data, str):
        data = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if len(data) < FINGERPRINT_BYTES:
        raise ValidationError("encoded_call", "Shorter than a fingerprint", data)

    fingerprint = "0x" + data[:FINGERPRINT_BYTES].hex()
    body = data[FINGERPRINT_BYTES:]
    if not body:
        return fingerprint, []
    try:
        args = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("encoded_call", f"Undecodable arguments: {e}", data) from e
    if not isinstance(args, list):
        raise ValidationError("encoded_call", "Arguments must encode a list", data)
    return fingerprint, args


def encoded_call_hash(encoded_call: bytes) -> str:
    """Keccak-256 of an encoded call, used to key pending deferred calls."""
    return "0x" + keccak256(encoded_call).hex()
