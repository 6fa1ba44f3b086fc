"""
Tyron Validation and Hardening Module

Error taxonomy, input validation and defensive utilities shared by every
account component. It addresses:

1. Typed failures for every rejected account operation
2. Input validation for identities, digests and signatures
3. Constant-time comparisons
4. State machine invariant enforcement

Security Model:
    - All inputs are untrusted until validated
    - All cryptographic comparisons are constant-time
    - All state mutations are atomic (see tyron.account)

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set


# =============================================================================
# ERROR TYPES
# =============================================================================

class AccountError(Exception):
    """Base exception for every failed account operation."""
    pass


class ValidationError(AccountError):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class DuplicateGuardian(ValidationError):
    def __init__(self, guardian_id: Any):
        super().__init__("guardian", "A guardian cannot be repeated", guardian_id)


class NullGuardian(ValidationError):
    def __init__(self, value: Any = None):
        super().__init__("guardian", "A guardian cannot be null", value)


class SelfGuardian(ValidationError):
    def __init__(self, value: Any = None):
        super().__init__("guardian", "A guardian cannot be the account owner", value)


class UnregisteredGuardian(ValidationError):
    def __init__(self, guardian_id: Any):
        super().__init__("guardian", "Not a registered guardian", guardian_id)


class ArrayLengthMismatch(ValidationError):
    def __init__(self, guardians: int, signatures: int):
        super().__init__(
            "signatures",
            f"Expected one signature per guardian ({guardians} guardians, {signatures} signatures)",
            (guardians, signatures),
        )


class MalformedInput(ValidationError):
    """Input could not be decoded into the expected type."""
    pass


class AuthorizationError(AccountError):
    """Caller is not allowed to perform the operation."""
    pass


class NotOwner(AuthorizationError):
    pass


class NotPendingOwner(AuthorizationError):
    pass


class NotExecutionEnvironment(AuthorizationError):
    pass


class RecoveryError(AccountError):
    """Guardian recovery could not be completed."""
    pass


class RecoveryFailed(RecoveryError):
    def __init__(self, votes: int, threshold: int):
        self.votes = votes
        self.threshold = threshold
        super().__init__(f"Recovery quorum not reached: {votes} valid votes, threshold {threshold}")


class OwnershipError(AccountError):
    """Ownership state machine rejected a transition."""
    pass


class InvalidOwner(OwnershipError):
    pass


class ProposalExpired(OwnershipError):
    pass


class SecurityViolation(AccountError):
    """Security constraint violated."""
    pass


class ReentrantCall(SecurityViolation):
    pass


class InvariantViolation(Exception):
    """State machine invariant violated."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first error if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

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

    IDENTITY_LENGTH = 32
    DIGEST_LENGTH = 32
    SIGNATURE_LENGTH = 64

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: int = 65536,
    ) -> ValidationResult:
        """Validate bytes, accepting hex strings with or without 0x."""
        if isinstance(value, str):
            text = value.strip()
            if text[:2].lower() == "0x":
                text = text[2:]
            try:
                value = bytes.fromhex(text)
            except ValueError:
                return ValidationResult.failure([
                    MalformedInput(field_name, "Invalid hex string", value)
                ])

        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)

        if not isinstance(value, bytes):
            return ValidationResult.failure([
                MalformedInput(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])

        errors: List[ValidationError] = []
        if len(value) < min_length:
            errors.append(MalformedInput(field_name, f"Too short (min {min_length} bytes)", value))
        if len(value) > max_length:
            errors.append(MalformedInput(field_name, f"Too long (max {max_length} bytes)", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)

    @classmethod
    def validate_digest(cls, value: Any, field_name: str = "digest") -> ValidationResult:
        """Validate a 32-byte message digest."""
        return cls.validate_bytes(value, field_name, cls.DIGEST_LENGTH, cls.DIGEST_LENGTH)

    @classmethod
    def validate_identity_bytes(cls, value: Any, field_name: str = "identity") -> ValidationResult:
        """Validate the raw form of an identity."""
        return cls.validate_bytes(value, field_name, cls.IDENTITY_LENGTH, cls.IDENTITY_LENGTH)

    @classmethod
    def validate_signature(cls, value: Any, field_name: str = "signature") -> ValidationResult:
        """Validate an Ed25519 signature (64 bytes)."""
        return cls.validate_bytes(value, field_name, cls.SIGNATURE_LENGTH, cls.SIGNATURE_LENGTH)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare(a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(a, b)


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.value} -> {target_state.value}. "
                f"Valid targets: {[s.value for s in valid_targets]}"
            )

    @staticmethod
    def check_monotonic_increase(
        field_name: str,
        old_value: int,
        new_value: int,
    ) -> None:
        """Ensure value only increases."""
        if new_value < old_value:
            raise InvariantViolation(
                f"{field_name} must be monotonically increasing: "
                f"cannot go from {old_value} to {new_value}"
            )

    @staticmethod
    def check_count_matches(field_name: str, count: int, actual: int) -> None:
        """Ensure a cached count equals the size of the collection it tracks."""
        if count != actual:
            raise InvariantViolation(
                f"{field_name} out of sync: recorded {count}, actual {actual}"
            )

    @staticmethod
    def check_non_negative(field_name: str, value: int) -> None:
        """Ensure value is non-negative."""
        if value < 0:
            raise InvariantViolation(f"{field_name} cannot be negative: {value}")


