"""
DIAMONDKIT Function Fingerprints

Canonical function signatures, their 4-byte fingerprints, and the immutable
fingerprint index derived from a set of capability descriptors (interfaces).

Fingerprint Derivation:

    canonical signature      transfer(address,uint256)
            │
            ▼  keccak256
    digest                   a9059cbb2ab09eb219583f4a59a5d0623ade346d962bcd4e46b11da047c9049b
            │
            ▼  first 4 bytes
    fingerprint              0xa9059cbb

The canonical form is the function name followed by the comma-joined list of
parameter types with no whitespace and no parameter names. Type aliases
(`uint`, `int`, `byte`, `fixed`, `ufixed`) are expanded, unknown type names
are rejected, and tuple components are written inline as `(t1,t2)`, matching
the Ethereum ABI selector convention.

The index is a pure value: building it has no side effects and the result
cannot be mutated, so it can be threaded through deployer, builder and
verifier calls without hidden shared state.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from Crypto.Hash import keccak

from diamondkit.hardening import (
    DuplicateSignatureError,
    SelectorCollisionError,
    SignatureFormatError,
    Validators,
    require_fingerprint,
)


FINGERPRINT_BYTES = 4

_SIGNATURE_PATTERN = re.compile(r'^([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*)\)$', re.DOTALL)
_TYPE_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "fixed": "fixed128x18",
    "ufixed": "ufixed128x18",
}

_FIXED_PATTERN = re.compile(r'^u?fixed([0-9]+)x([0-9]+)$')
_SIZED_PATTERN = re.compile(r'^(u?int|bytes)([0-9]+)$')
_PLAIN_TYPES = frozenset({"address", "bool", "string", "bytes", "function"})


def _is_elementary(base: str) -> bool:
    """True for ABI elementary type names (aliases included)."""
    if base in _PLAIN_TYPES or base in _TYPE_ALIASES:
        return True
    sized = _SIZED_PATTERN.match(base)
    if sized:
        kind, bits = sized.group(1), sized.group(2)
        if bits.startswith("0"):
            return False
        if kind == "bytes":
            return 1 <= int(bits) <= 32
        return 8 <= int(bits) <= 256 and int(bits) % 8 == 0
    fixed = _FIXED_PATTERN.match(base)
    if fixed:
        m, n = int(fixed.group(1)), int(fixed.group(2))
        return 8 <= m <= 256 and m % 8 == 0 and 0 < n <= 80
    return False


# =============================================================================
# HASHING
# =============================================================================

def keccak256(data: bytes) -> bytes:
    """Compute the Keccak-256 digest used for Ethereum selectors."""
    return keccak.new(digest_bits=256, data=data).digest()


def function_fingerprint(signature: Union[str, "FunctionSignature"]) -> str:
    """
    Compute the fingerprint of a function signature.

    Accepts either a FunctionSignature or signature text; text is parsed and
    canonicalized first, so `transfer(address, uint)` and
    `transfer(address,uint256)` produce the same fingerprint.
    """
    if not isinstance(signature, FunctionSignature):
        signature = FunctionSignature.parse(signature)
    digest = keccak256(signature.canonical.encode("utf-8"))
    return "0x" + digest[:FINGERPRINT_BYTES].hex()


# =============================================================================
# SIGNATURE PARSING
# =============================================================================

def _split_top_level(text: str, original: str) -> List[str]:
    """Split on commas that are not nested inside tuple parentheses."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise SignatureFormatError(original, "Unbalanced parentheses")
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise SignatureFormatError(original, "Unbalanced parentheses")
    parts.append("".join(current))
    return parts


def _canonical_type(text: str, original: str) -> str:
    """Validate a single parameter type and return its canonical spelling."""
    t = text.strip()
    if not t:
        raise SignatureFormatError(original, "Empty parameter type")
    if any(ch.isspace() for ch in t):
        raise SignatureFormatError(original, f"Parameter type contains whitespace: {t!r}")

    if t.startswith("("):
        depth = 0
        close = -1
        for i, ch in enumerate(t):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    close = i
                    break
        if close < 0:
            raise SignatureFormatError(original, "Unbalanced parentheses")
        inner, suffix = t[1:close], t[close + 1:]
        if not Validators.ARRAY_SUFFIX_PATTERN.match(suffix):
            raise SignatureFormatError(original, f"Invalid tuple suffix: {suffix!r}")
        if not inner:
            raise SignatureFormatError(original, "Empty tuple type")
        components = [_canonical_type(c, original) for c in _split_top_level(inner, original)]
        return "(" + ",".join(components) + ")" + suffix

    if not Validators.ELEMENTARY_TYPE_PATTERN.match(t):
        raise SignatureFormatError(original, f"Invalid parameter type: {t!r}")
    bracket = t.find("[")
    base, suffix = (t, "") if bracket < 0 else (t[:bracket], t[bracket:])
    if not _is_elementary(base):
        raise SignatureFormatError(original, f"Unknown parameter type: {base!r}")
    return _TYPE_ALIASES.get(base, base) + suffix


def _abi_type(param: Dict[str, Any]) -> str:
    """Render an ABI input entry as signature text (tuples written inline)."""
    t = param.get("type")
    if not isinstance(t, str):
        raise SignatureFormatError(param, "ABI parameter without type")
    if t.startswith("tuple"):
        components = param.get("components") or []
        return "(" + ",".join(_abi_type(c) for c in components) + ")" + t[len("tuple"):]
    return t


@dataclass(frozen=True)
class FunctionSignature:
    """A function name plus its ordered canonical parameter types."""
    name: str
    param_types: Tuple[str, ...] = ()

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(self.param_types)})"

    @property
    def fingerprint(self) -> str:
        return function_fingerprint(self)

    def __str__(self) -> str:
        return self.canonical

    @classmethod
    def parse(cls, text: Any) -> "FunctionSignature":
        """
        Parse signature text such as `diamondCut((address,uint8,bytes4[])[],address,bytes)`.

        Whitespace around parameter types is tolerated; parameter names,
        unknown punctuation and unbalanced tuples are rejected eagerly with
        SignatureFormatError.
        """
        if not isinstance(text, str):
            raise SignatureFormatError(text, f"Expected string, got {type(text).__name__}")
        stripped = text.strip()
        if len(stripped) > Validators.MAX_SIGNATURE_LENGTH:
            raise SignatureFormatError(text, "Signature too long")
        match = _SIGNATURE_PATTERN.match(stripped)
        if not match:
            raise SignatureFormatError(text)

        name, params = match.group(1), match.group(2)
        if not params.strip():
            return cls(name=name, param_types=())
        types = tuple(_canonical_type(p, text) for p in _split_top_level(params, text))
        return cls(name=name, param_types=types)

    @classmethod
    def from_abi(cls, item: Dict[str, Any]) -> "FunctionSignature":
        """Build a signature from a JSON ABI function entry."""
        name = item.get("name")
        if not isinstance(name, str) or not Validators.IDENTIFIER_PATTERN.match(name):
            raise SignatureFormatError(item, "ABI function without a valid name")
        inputs = item.get("inputs") or []
        return cls.parse(f"{name}({','.join(_abi_type(p) for p in inputs)})")


SignatureLike = Union[str, FunctionSignature]


def as_signature(value: SignatureLike) -> FunctionSignature:
    if isinstance(value, FunctionSignature):
        return value
    return FunctionSignature.parse(value)


# =============================================================================
# CAPABILITY DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class CapabilityDescriptor:
    """A named interface: an ordered list of function signatures."""
    name: str
    functions: Tuple[FunctionSignature, ...]

    @classmethod
    def of(cls, name: str, signatures: Iterable[SignatureLike]) -> "CapabilityDescriptor":
        return cls(name=name, functions=tuple(as_signature(s) for s in signatures))

    @classmethod
    def from_abi(cls, name: str, abi: Sequence[Dict[str, Any]]) -> "CapabilityDescriptor":
        """Build a descriptor from the function entries of a JSON ABI."""
        functions = tuple(
            FunctionSignature.from_abi(item)
            for item in abi
            if item.get("type", "function") == "function"
        )
        return cls(name=name, functions=functions)

    def fingerprints(self) -> Tuple[str, ...]:
        return tuple(f.fingerprint for f in self.functions)


# =============================================================================
# SELECTOR INDEX
# =============================================================================

@dataclass(frozen=True)
class IndexEntry:
    """Index value: the signature behind a fingerprint and where it came from."""
    fingerprint: str
    signature: FunctionSignature
    origin: str

    @property
    def name(self) -> str:
        return self.signature.name


class SelectorIndex(Mapping):
    """
    Immutable mapping fingerprint -> IndexEntry.

    Doubles as the "required fingerprints" membership test handed to the
    module deployer, since `fp in index` is an O(1) lookup.
    """

    def __init__(self, entries: Optional[Dict[str, IndexEntry]] = None):
        self._entries = MappingProxyType(dict(entries or {}))

    def __getitem__(self, fingerprint: str) -> IndexEntry:
        return self._entries[fingerprint]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SelectorIndex({len(self)} fingerprints)"

    @property
    def fingerprints(self) -> FrozenSet[str]:
        return frozenset(self._entries)

    def name_of(self, fingerprint: str) -> Optional[str]:
        entry = self._entries.get(fingerprint)
        return entry.name if entry else None

    def origin_of(self, fingerprint: str) -> Optional[str]:
        entry = self._entries.get(fingerprint)
        return entry.origin if entry else None

    def names(self, fingerprints: Iterable[str]) -> List[str]:
        """Resolve fingerprints to function names; unknown ones stay as hex."""
        return [self.name_of(fp) or fp for fp in fingerprints]

    def merge(self, other: "SelectorIndex", strict: bool = False) -> "SelectorIndex":
        """Return a new index holding both sets of entries (self wins on duplicates)."""
        entries = dict(self._entries)
        for entry in other.values():
            _insert(entries, entry, strict)
        return SelectorIndex(entries)


def _insert(entries: Dict[str, IndexEntry], entry: IndexEntry, strict: bool) -> None:
    existing = entries.get(entry.fingerprint)
    if existing is None:
        entries[entry.fingerprint] = entry
        return
    if existing.signature.canonical != entry.signature.canonical:
        raise SelectorCollisionError(
            entry.fingerprint, existing.signature.canonical, entry.signature.canonical
        )
    if strict and existing.origin != entry.origin:
        raise DuplicateSignatureError(entry.signature.canonical, existing.origin, entry.origin)


def index_interfaces(
    descriptors: Iterable[CapabilityDescriptor],
    strict: bool = False,
) -> SelectorIndex:
    """
    Compute the fingerprint of every function in every descriptor.

    Later descriptors never overwrite an earlier identical signature, so the
    first declaring interface is recorded as the origin. With `strict=True` a
    signature declared by two different interfaces is rejected instead.
    Distinct signatures sharing a fingerprint always raise
    SelectorCollisionError.
    """
    entries: Dict[str, IndexEntry] = {}
    for descriptor in descriptors:
        for signature in descriptor.functions:
            entry = IndexEntry(
                fingerprint=signature.fingerprint,
                signature=signature,
                origin=descriptor.name,
            )
            _insert(entries, entry, strict)
    return SelectorIndex(entries)


# =============================================================================
# SELECTOR SETS
# =============================================================================

class SelectorSet:
    """
    Ordered set of fingerprints taken from a contract's ABI.

    Used to hand-build cuts, e.g. every function of a module except
    `supportsInterface(bytes4)`.
    """

    def __init__(self, signatures: Iterable[SignatureLike] = ()):
        self._signatures: Dict[str, FunctionSignature] = {}
        for s in signatures:
            sig = as_signature(s)
            self._signatures.setdefault(sig.fingerprint, sig)

    @classmethod
    def from_abi(cls, abi: Iterable[SignatureLike]) -> "SelectorSet":
        return cls(abi)

    @property
    def selectors(self) -> Tuple[str, ...]:
        return tuple(self._signatures)

    def add(self, signatures: Iterable[SignatureLike]) -> "SelectorSet":
        return SelectorSet(list(self._signatures.values()) + [as_signature(s) for s in signatures])

    def remove(self, signatures: Iterable[SignatureLike]) -> "SelectorSet":
        removed = {as_signature(s).fingerprint for s in signatures}
        return SelectorSet(s for fp, s in self._signatures.items() if fp not in removed)

    def restrict(self, membership: Callable[[str], bool]) -> "SelectorSet":
        return SelectorSet(s for fp, s in self._signatures.items() if membership(fp))

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._signatures

    def __iter__(self) -> Iterator[str]:
        return iter(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)


def describe_signatures(signatures: Iterable[SignatureLike], owner: str = "") -> List[Dict[str, str]]:
    """Rows of (fingerprint, owner, name, signature) for printing."""
    rows = []
    for s in signatures:
        sig = as_signature(s)
        rows.append({
            "fingerprint": sig.fingerprint,
            "contract": owner,
            "name": sig.name,
            "signature": sig.canonical,
        })
    return rows


def normalize_fingerprint(value: Any) -> str:
    """Accept `0x`-hex or raw 4-byte fingerprints and return lowercase `0x` hex."""
    return require_fingerprint(value)
