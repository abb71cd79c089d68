"""
DIAMONDKIT Validation and Hardening Module

Error taxonomy and input validation shared by every diamondkit layer:

1. Input validation with sanitization (addresses, fingerprints, signatures)
2. Assembly failures (empty contributions, coverage gaps, invalid cuts)
3. Timelock failures (premature execution, unknown deferred calls)
4. Authorization failures (authority and executor identity mismatches)

Failure Model:
    - All inputs are untrusted until validated
    - Nothing in this package is retried automatically
    - Every failure is either a structural misconfiguration or a caller
      identity violation, and both require corrective action

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(Exception):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class SignatureFormatError(ValidationError):
    """A function signature is not in canonical `name(type,...)` form."""

    def __init__(self, signature: Any, message: str = "Malformed function signature"):
        super().__init__("signature", message, signature)


class SecurityViolation(Exception):
    """Security constraint violated."""
    pass


class InvariantViolation(Exception):
    """State machine invariant violated."""
    pass


# =============================================================================
# DIAMOND ERRORS
# =============================================================================

class DiamondError(Exception):
    """Base exception for assembly and timelock failures."""
    pass


class SelectorCollisionError(DiamondError):
    """Two distinct canonical signatures produced the same fingerprint."""

    def __init__(self, fingerprint: str, existing: str, incoming: str):
        self.fingerprint = fingerprint
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Fingerprint collision on {fingerprint}: {existing} vs {incoming}"
        )


class DuplicateSignatureError(DiamondError):
    """The same signature is declared by more than one required interface."""

    def __init__(self, signature: str, first_origin: str, second_origin: str):
        self.signature = signature
        self.first_origin = first_origin
        self.second_origin = second_origin
        super().__init__(
            f"Signature {signature} declared by both {first_origin} and {second_origin}"
        )


class AssemblyError(DiamondError):
    """Composite assembly failed; the instance must be treated as unusable."""
    pass


class EmptyContributionError(AssemblyError):
    """A module exposes none of the required fingerprints."""

    def __init__(self, module_name: str):
        self.module_name = module_name
        super().__init__(f"No exposed methods in {module_name}")


class CoverageGapError(AssemblyError):
    """Required fingerprints are not implemented by any assembled module."""

    def __init__(self, missing: Sequence[str], missing_fingerprints: Sequence[str] = ()):
        self.missing = list(missing)
        self.missing_fingerprints = list(missing_fingerprints)
        super().__init__(f"Deployed modules are missing methods {', '.join(self.missing)}")


class CutError(AssemblyError):
    """A module cut cannot be applied to the composite instance."""
    pass


class FunctionNotFoundError(DiamondError):
    """No function is registered for the called fingerprint."""

    def __init__(self, fingerprint: str, contract: str = ""):
        self.fingerprint = fingerprint
        self.contract = contract
        target = f" on {contract}" if contract else ""
        super().__init__(f"Function does not exist: {fingerprint}{target}")


class ContractRevert(DiamondError):
    """Module code rejected a call; the transaction is rolled back."""
    pass


class TimelockError(DiamondError):
    """Base exception for deferred governance call failures."""
    pass


class PrematureExecutionError(TimelockError):
    """A deferred call was executed before its time bound passed."""

    def __init__(self, allowed_after: int, now: int):
        self.allowed_after = allowed_after
        self.now = now
        super().__init__(
            f"Timelock not allowed yet: now={now}, allowed after {allowed_after}"
        )


class UnknownDeferredCallError(TimelockError):
    """The encoded call is not pending (never proposed, executed or canceled)."""

    def __init__(self, encoded_call_hash: str):
        self.encoded_call_hash = encoded_call_hash
        super().__init__(f"Timelock invalid selector: no pending call {encoded_call_hash}")


class UnauthorizedAuthorityError(SecurityViolation):
    """Caller is not the governance authority for a gated operation."""

    def __init__(self, caller: Optional[str], required: Optional[str] = None):
        self.caller = caller
        self.required = required
        super().__init__(f"Only governance: caller {caller} is not {required}")


class UnauthorizedExecutorError(SecurityViolation):
    """Caller is not a designated executor of deferred calls."""

    def __init__(self, caller: Optional[str]):
        self.caller = caller
        super().__init__(f"Only executor: {caller} cannot execute governance calls")


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    # Patterns
    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')
    FINGERPRINT_PATTERN = re.compile(r'^0x[a-f0-9]{8}$')
    IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*$')
    ELEMENTARY_TYPE_PATTERN = re.compile(r'^[a-z][a-z0-9]*(\[[0-9]*\])*$')
    ARRAY_SUFFIX_PATTERN = re.compile(r'^(\[[0-9]*\])*$')

    # Limits
    MAX_STRING_LENGTH = 4096
    MAX_SIGNATURE_LENGTH = 1024
    MAX_PAYLOAD_BYTES = 1024 * 1024

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = None,
        pattern: Optional[re.Pattern] = None,
    ) -> ValidationResult:
        """Validate a string value."""
        max_length = max_length or cls.MAX_STRING_LENGTH
        errors = []

        if not isinstance(value, str):
            errors.append(ValidationError(field_name, f"Expected string, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        # Sanitize: strip whitespace and null bytes
        sanitized = value.strip().replace('\x00', '')

        if len(sanitized) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} chars)", value))

        if len(sanitized) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))
            sanitized = sanitized[:max_length]

        if pattern and not pattern.match(sanitized):
            errors.append(ValidationError(field_name, "Does not match required pattern", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(sanitized)

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate an Ethereum-style address, normalizing to lowercase."""
        result = cls.validate_string(value, field_name, min_length=42, max_length=42)
        if not result.is_valid:
            return result

        lower = result.sanitized_value.lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be valid address (0x + 40 hex)", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_fingerprint(cls, value: Any, field_name: str = "fingerprint") -> ValidationResult:
        """Validate a 4-byte function fingerprint given as hex or raw bytes."""
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 4:
                return ValidationResult.failure([
                    ValidationError(field_name, "Must be exactly 4 bytes", value)
                ])
            return ValidationResult.success("0x" + bytes(value).hex())

        result = cls.validate_string(value, field_name, min_length=8, max_length=10)
        if not result.is_valid:
            return result

        lower = result.sanitized_value.lower()
        if not lower.startswith("0x"):
            lower = "0x" + lower
        if not cls.FINGERPRINT_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be 0x + 8 hex characters", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: int = None,
    ) -> ValidationResult:
        """Validate bytes, accepting `0x`-prefixed or bare hex strings."""
        max_length = max_length or cls.MAX_PAYLOAD_BYTES
        errors = []

        if isinstance(value, str):
            text = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(text)
            except ValueError:
                errors.append(ValidationError(field_name, "Invalid hex string", value))
                return ValidationResult.failure(errors)

        if isinstance(value, bytearray):
            value = bytes(value)

        if not isinstance(value, bytes):
            errors.append(ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        if len(value) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} bytes)", value))

        if len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} bytes)", value))

        if errors:
            return ValidationResult.failure(errors)

        return ValidationResult.success(value)


def require_address(value: Any, field_name: str = "address") -> str:
    """Validate an address or raise ValidationErrors."""
    result = Validators.validate_address(value, field_name)
    result.raise_if_invalid()
    return result.sanitized_value


def require_fingerprint(value: Any, field_name: str = "fingerprint") -> str:
    """Validate a fingerprint or raise ValidationErrors."""
    result = Validators.validate_fingerprint(value, field_name)
    result.raise_if_invalid()
    return result.sanitized_value


def require_bytes(value: Any, field_name: str = "payload") -> bytes:
    """Validate a byte payload or raise ValidationErrors."""
    result = Validators.validate_bytes(value, field_name)
    result.raise_if_invalid()
    return result.sanitized_value
