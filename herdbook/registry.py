"""
HERDBOOK Livestock Registry Engine

Authority-gated registry of livestock identity records. Each record is keyed
by an opaque content hash computed by the caller, carries its owner, and can
be frozen (inactive) or handed to a new owner.

State Model:

    RegistryState
    ├── counter        next record id; equals the number of records
    ├── authority      set-once principal gating registration
    ├── records        hash -> LivestockRecord
    └── owner_index    principal -> [hash, ...] in acquisition order

Transaction Semantics:

    Every mutating operation validates completely before touching state,
    then applies all of its effects under the registry lock. A rejected
    operation raises RegistryError and leaves state exactly as it was.
    Readers take the same lock, so no torn state is ever observed.

    Callers supply a CallContext (acting principal, current block height)
    with each operation; the registry never stores it.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional

from herdbook.config import BURN_PRINCIPAL, get_config
from herdbook.hardening import (
    InvariantChecker,
    InvariantViolation,
    ValidationResult,
    Validators,
    synchronized,
)
from herdbook.observability import (
    AuditEvent,
    AuditLogger,
    HerdbookLayer,
    get_logger,
)

logger = get_logger("engine", HerdbookLayer.REGISTRY)


# =============================================================================
# ERRORS
# =============================================================================

class ErrorCode(IntEnum):
    """Stable rejection codes. Callers branch on these, never on messages."""
    HASH_EXISTS = 100
    INVALID_HASH = 101
    UNAUTHORIZED = 102
    INVALID_BREED = 103
    INVALID_DATE = 104
    INACTIVE = 105
    AUTHORITY_NOT_SET = 106
    MAX_EXCEEDED = 107
    INVALID_DESCRIPTION = 108
    NOT_FOUND = 109
    AUTHORITY_ALREADY_SET = 110


class RegistryError(Exception):
    """A registry operation was rejected. Final; retrying cannot succeed."""

    def __init__(self, code: ErrorCode, message: str, hash: Optional[str] = None):
        self.code = code
        self.message = message
        self.hash = hash
        super().__init__(f"{code.name}: {message}")


# =============================================================================
# DATA MODEL
# =============================================================================

@dataclass(frozen=True)
class LivestockRecord:
    """Identity record for one registered animal."""
    breed: str
    birth_date: int  # block height
    description: str
    owner: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CallContext:
    """Execution context supplied by the driving transaction layer."""
    caller: str
    block_height: int

    def __post_init__(self):
        result = Validators.validate_principal(self.caller, "caller")
        if not result.is_valid:
            raise ValueError(str(result.first_error))
        result = Validators.validate_block_height(self.block_height)
        if not result.is_valid:
            raise ValueError(str(result.first_error))


@dataclass(frozen=True)
class RegistryLimits:
    """Capacity and field bounds enforced by the engine."""
    max_records: int = 10000
    max_per_owner: int = 100
    max_breed_length: int = 50
    max_description_length: int = 200
    burn_principal: str = BURN_PRINCIPAL

    @classmethod
    def from_config(cls) -> "RegistryLimits":
        """
        Limits from the active configuration.

        Raises:
            ConfigValidationError: a configured value fails validation.
        """
        cfg = get_config().registry
        return cls(
            max_records=cfg.max_records.get_valid(),
            max_per_owner=cfg.max_per_owner.get_valid(),
            max_breed_length=cfg.max_breed_length.get_valid(),
            max_description_length=cfg.max_description_length.get_valid(),
            burn_principal=cfg.burn_principal.get_valid(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegistryState:
    """All mutable registry state. Owned by exactly one LivestockRegistry."""
    counter: int = 0
    authority: Optional[str] = None
    records: Dict[str, LivestockRecord] = field(default_factory=dict)
    owner_index: Dict[str, List[str]] = field(default_factory=dict)


def _check(result: ValidationResult, code: ErrorCode, hash: Optional[str]) -> None:
    if not result.is_valid:
        raise RegistryError(code, str(result.first_error), hash)


# =============================================================================
# ENGINE
# =============================================================================

class LivestockRegistry:
    """
    The registry engine.

    One instance holds one RegistryState for its whole lifetime. All public
    methods are serialized on a single reentrant lock.
    """

    def __init__(
        self,
        limits: Optional[RegistryLimits] = None,
        audit_enabled: Optional[bool] = None,
    ):
        self.limits = limits or RegistryLimits.from_config()
        self._state = RegistryState()
        self._lock = threading.RLock()

        if audit_enabled is None:
            audit_enabled = get_config().observability.audit_enabled.get()
        self._audit: Optional[AuditLogger] = (
            AuditLogger(get_logger("audit", HerdbookLayer.AUDIT)) if audit_enabled else None
        )

    # -------------------------------------------------------------------------
    # Audit plumbing
    # -------------------------------------------------------------------------

    def _accepted(
        self,
        action: str,
        actor: str,
        resource_id: str,
        block_height: Optional[int] = None,
        **details: Any,
    ) -> None:
        logger.info(f"{action} accepted", operation=action, hash=resource_id, actor=actor, **details)
        if self._audit:
            self._audit.log(actor, action, resource_id, "success", block_height, **details)

    def _rejected(
        self,
        action: str,
        actor: str,
        error: RegistryError,
        block_height: Optional[int] = None,
    ) -> None:
        resource_id = error.hash if isinstance(error.hash, str) else ""
        logger.info(
            f"{action} rejected: {error.message}",
            operation=action,
            error_code=error.code.name,
            hash=resource_id,
            actor=actor,
        )
        if self._audit:
            self._audit.log(
                actor, action, resource_id, "denied", block_height,
                error_code=error.code.name,
            )

    # -------------------------------------------------------------------------
    # Authority
    # -------------------------------------------------------------------------

    @synchronized
    def set_authority(self, principal: str) -> bool:
        """
        Configure the authority principal. Callable once.

        Raises:
            RegistryError(UNAUTHORIZED): principal is the burn sentinel.
            RegistryError(AUTHORITY_ALREADY_SET): an authority is configured.
        """
        try:
            if principal == self.limits.burn_principal:
                raise RegistryError(ErrorCode.UNAUTHORIZED, "burn principal cannot be the authority")
            if self._state.authority is not None:
                raise RegistryError(ErrorCode.AUTHORITY_ALREADY_SET, "authority is already set")
            _check(Validators.validate_principal(principal, "authority"), ErrorCode.UNAUTHORIZED, None)
        except RegistryError as e:
            self._rejected("set_authority", str(principal), e)
            raise

        self._state.authority = principal
        self._accepted("set_authority", principal, "", principal=principal)
        return True

    @property
    def authority(self) -> Optional[str]:
        with self._lock:
            return self._state.authority

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @synchronized
    def register(
        self,
        hash: str,
        breed: str,
        birth_date: int,
        description: str,
        ctx: CallContext,
    ) -> int:
        """
        Register a new record owned by ``ctx.caller``.

        Checks run in a fixed order and the first failure wins: record cap,
        hash, breed, birth date, description, duplicate hash, authority,
        then the caller's per-owner cap. Nothing is written until every
        check has passed.

        Returns:
            The record id, i.e. the record count before this registration.
        """
        state = self._state
        limits = self.limits
        try:
            if state.counter >= limits.max_records:
                raise RegistryError(
                    ErrorCode.MAX_EXCEEDED,
                    f"registry is full ({limits.max_records} records)",
                    hash,
                )
            _check(Validators.validate_string(hash, "hash", min_length=1), ErrorCode.INVALID_HASH, hash)
            _check(
                Validators.validate_string(breed, "breed", min_length=1, max_length=limits.max_breed_length),
                ErrorCode.INVALID_BREED, hash,
            )
            _check(
                Validators.validate_block_height(birth_date, "birth_date", max_height=ctx.block_height),
                ErrorCode.INVALID_DATE, hash,
            )
            _check(
                Validators.validate_string(description, "description", max_length=limits.max_description_length),
                ErrorCode.INVALID_DESCRIPTION, hash,
            )
            if hash in state.records:
                raise RegistryError(ErrorCode.HASH_EXISTS, "hash is already registered", hash)
            if state.authority is None:
                raise RegistryError(ErrorCode.AUTHORITY_NOT_SET, "no authority configured", hash)
            owned = state.owner_index.get(ctx.caller, [])
            if len(owned) >= limits.max_per_owner:
                raise RegistryError(
                    ErrorCode.MAX_EXCEEDED,
                    f"{ctx.caller} already holds {limits.max_per_owner} records",
                    hash,
                )
        except RegistryError as e:
            self._rejected("register", ctx.caller, e, ctx.block_height)
            raise

        record_id = state.counter
        state.records[hash] = LivestockRecord(
            breed=breed,
            birth_date=birth_date,
            description=description,
            owner=ctx.caller,
            is_active=True,
        )
        state.owner_index[ctx.caller] = owned + [hash]
        state.counter = record_id + 1

        self._accepted("register", ctx.caller, hash, ctx.block_height, record_id=record_id, breed=breed)
        return record_id

    @synchronized
    def update_status(self, hash: str, is_active: bool, ctx: CallContext) -> bool:
        """Set a record's active flag. Only the owner may do this."""
        if not isinstance(is_active, bool):
            raise TypeError(f"is_active must be bool, got {type(is_active).__name__}")

        try:
            record = self._owned_record(hash, ctx)
        except RegistryError as e:
            self._rejected("update_status", ctx.caller, e, ctx.block_height)
            raise

        self._state.records[hash] = replace(record, is_active=is_active)
        self._accepted("update_status", ctx.caller, hash, ctx.block_height, is_active=is_active)
        return True

    @synchronized
    def transfer(self, hash: str, new_owner: str, ctx: CallContext) -> bool:
        """
        Hand a record from its owner (the caller) to ``new_owner``.

        Inactive records are frozen and cannot change hands. The hash
        leaves the caller's index (remaining order preserved) and is
        appended to the new owner's. A transfer to oneself is subject to
        the same checks and moves the hash to the end of the caller's index.
        """
        state = self._state
        try:
            record = self._owned_record(hash, ctx)
            if not record.is_active:
                raise RegistryError(ErrorCode.INACTIVE, "record is inactive", hash)
            if new_owner == self.limits.burn_principal:
                raise RegistryError(ErrorCode.UNAUTHORIZED, "cannot transfer to the burn principal", hash)
            _check(Validators.validate_principal(new_owner, "new_owner"), ErrorCode.UNAUTHORIZED, hash)
            receiving = state.owner_index.get(new_owner, [])
            if len(receiving) >= self.limits.max_per_owner:
                raise RegistryError(
                    ErrorCode.MAX_EXCEEDED,
                    f"{new_owner} already holds {self.limits.max_per_owner} records",
                    hash,
                )
        except RegistryError as e:
            self._rejected("transfer", ctx.caller, e, ctx.block_height)
            raise

        # Remove before appending so a transfer to oneself moves the hash to the end
        state.owner_index[ctx.caller] = [h for h in state.owner_index[ctx.caller] if h != hash]
        state.owner_index[new_owner] = state.owner_index.get(new_owner, []) + [hash]
        state.records[hash] = replace(record, owner=new_owner)

        self._accepted(
            "transfer", ctx.caller, hash, ctx.block_height,
            previous_owner=ctx.caller, new_owner=new_owner,
        )
        return True

    def _owned_record(self, hash: str, ctx: CallContext) -> LivestockRecord:
        record = self._state.records.get(hash) if isinstance(hash, str) else None
        if record is None:
            raise RegistryError(ErrorCode.NOT_FOUND, "no record for hash", hash)
        if record.owner != ctx.caller:
            raise RegistryError(ErrorCode.UNAUTHORIZED, f"{ctx.caller} does not own this record", hash)
        return record

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @synchronized
    def get_record(self, hash: str) -> Optional[LivestockRecord]:
        if not isinstance(hash, str):
            return None
        return self._state.records.get(hash)

    @synchronized
    def get_by_owner(self, principal: str) -> List[str]:
        """Hashes currently owned by ``principal``, oldest acquisition first."""
        return list(self._state.owner_index.get(principal, []))

    @synchronized
    def get_count(self) -> int:
        return self._state.counter

    @synchronized
    def is_registered(self, hash: str) -> bool:
        return isinstance(hash, str) and hash in self._state.records

    def __len__(self) -> int:
        return self.get_count()

    def __contains__(self, hash: object) -> bool:
        return self.is_registered(hash)  # type: ignore[arg-type]

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @synchronized
    def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts over the current state."""
        state = self._state
        active = sum(1 for r in state.records.values() if r.is_active)
        return {
            "total_records": state.counter,
            "active_records": active,
            "inactive_records": state.counter - active,
            "owners": sum(1 for hashes in state.owner_index.values() if hashes),
            "authority_set": state.authority is not None,
            "capacity_remaining": self.limits.max_records - state.counter,
        }

    @synchronized
    def export_registry(self) -> Dict[str, Any]:
        """JSON-serializable copy of the full registry state."""
        state = self._state
        return {
            "counter": state.counter,
            "authority": state.authority,
            "limits": self.limits.to_dict(),
            "records": {h: r.to_dict() for h, r in state.records.items()},
            "owner_index": {o: list(hs) for o, hs in state.owner_index.items() if hs},
        }

    @synchronized
    def verify_invariants(self) -> None:
        """
        Check every registry invariant against the live state.

        Raises:
            InvariantViolation: on the first breach found.
        """
        state = self._state
        limits = self.limits

        InvariantChecker.check_upper_bound("counter", state.counter, limits.max_records)
        if state.counter != len(state.records):
            raise InvariantViolation(
                f"counter {state.counter} does not match {len(state.records)} records"
            )
        for owner, hashes in state.owner_index.items():
            InvariantChecker.check_upper_bound(f"owner index of {owner}", len(hashes), limits.max_per_owner)
        InvariantChecker.check_index_consistency(
            {h: r.owner for h, r in state.records.items()},
            state.owner_index,
        )
        if state.authority == limits.burn_principal:
            raise InvariantViolation("burn principal configured as authority")

    def audit_trail(self) -> List[AuditEvent]:
        """Recorded mutation attempts, oldest first (empty when auditing is off)."""
        return self._audit.events() if self._audit else []

    def verify_audit_chain(self) -> bool:
        return self._audit.verify_chain() if self._audit else True
