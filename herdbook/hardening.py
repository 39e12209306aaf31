"""
HERDBOOK Validation and Hardening Module

Input validation, invariant enforcement and locking helpers shared by the
registry engine. It addresses:

1. Type and length validation of caller-supplied fields
2. Registry invariant enforcement (index/record consistency, caps)
3. Serialized access to shared registry state

Security Model:
    - All inputs are untrusted until validated
    - All state mutations are atomic
    - Validation never mutates its input

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar


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


class InvariantViolation(Exception):
    """Registry invariant violated."""
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

    @property
    def first_error(self) -> Optional[ValidationError]:
        return self.errors[0] if self.errors else None

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
    """Collection of input validators.

    Lengths are counted in Unicode code points. Values are never stripped or
    otherwise rewritten: a registry key must round-trip exactly.
    """

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Validate a string value against length bounds."""
        errors = []

        if not isinstance(value, str):
            errors.append(ValidationError(field_name, f"Expected string, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        if len(value) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} chars)", value))

        if max_length is not None and len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)

    @classmethod
    def validate_block_height(
        cls,
        value: Any,
        field_name: str = "block_height",
        max_height: Optional[int] = None,
    ) -> ValidationResult:
        """Validate a block height, optionally bounded above by the chain tip."""
        # bool is an int subclass; a flag is never a height
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])

        if value < 0:
            return ValidationResult.failure([
                ValidationError(field_name, "Cannot be negative", value)
            ])

        if max_height is not None and value > max_height:
            return ValidationResult.failure([
                ValidationError(field_name, f"Is in the future (current height {max_height})", value)
            ])

        return ValidationResult.success(value)

    @classmethod
    def validate_principal(cls, value: Any, field_name: str = "principal") -> ValidationResult:
        """Validate an opaque principal identifier."""
        return cls.validate_string(value, field_name, min_length=1)


# =============================================================================
# REGISTRY INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces registry invariants."""

    @staticmethod
    def check_upper_bound(field_name: str, value: int, limit: int) -> None:
        """Ensure value does not exceed limit."""
        if value > limit:
            raise InvariantViolation(f"{field_name} exceeds limit: {value} > {limit}")

    @staticmethod
    def check_index_consistency(
        owners: Mapping[str, str],
        index: Mapping[str, Sequence[str]],
    ) -> None:
        """
        Verify a key -> owner map against an owner -> keys index.

        Every key must appear exactly once, in the index entry of the owner
        the map names, and the index must not reference unknown keys.
        """
        seen: Dict[str, str] = {}
        for owner, keys in index.items():
            for key in keys:
                if key in seen:
                    raise InvariantViolation(
                        f"{key} indexed under both {seen[key]} and {owner}"
                    )
                seen[key] = owner

        for key, owner in owners.items():
            indexed_owner = seen.pop(key, None)
            if indexed_owner is None:
                raise InvariantViolation(f"{key} is not present in any owner index")
            if indexed_owner != owner:
                raise InvariantViolation(
                    f"{key} owned by {owner} but indexed under {indexed_owner}"
                )

        if seen:
            raise InvariantViolation(f"owner index references unknown keys: {sorted(seen)}")


# =============================================================================
# DECORATOR UTILITIES
# =============================================================================

F = TypeVar("F", bound=Callable[..., Any])


def synchronized(method: F) -> F:
    """Run a method while holding the instance's ``_lock``."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]
