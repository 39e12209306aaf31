"""
HERDBOOK: Livestock Identity Registry

An authority-gated registry of livestock identity records. Each animal is
registered once under an opaque content hash, belongs to exactly one owner,
and can be frozen or handed to a new owner.

Architecture
────────────

    registry.py       Registry engine: validation, ownership, transfers
    hardening.py      Validators, invariant checks, locking
    config.py         YAML / environment configuration
    observability.py  Structured logging and hash-chained audit trail
    batch.py          Transaction batch validation and replay
    cli.py            Command-line driver

Core Concepts
─────────────

    Record: breed, birth height, description, owner and active flag, keyed
    by a hash the caller computed. Hashes are never reused.

    Authority: a principal configured exactly once. Until it is set no
    record can be registered.

    Owner Index: per-owner list of held hashes, capped (100 by default).
    A record's owner and the index always agree.

    Burn Principal: a reserved identity meaning "no one". It can be
    neither the authority nor a transfer target.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy import HERDBOOK modules on first access."""

    if name in ("LivestockRegistry", "LivestockRecord", "RegistryState", "RegistryLimits",
                "CallContext", "ErrorCode", "RegistryError"):
        from herdbook import registry
        return getattr(registry, name)

    if name in ("TransactionResult", "BatchError", "load_batch", "validate_batch",
                "replay_batch"):
        from herdbook import batch
        return getattr(batch, name)

    if name in ("BURN_PRINCIPAL", "get_config", "get_config_manager"):
        from herdbook import config
        return getattr(config, name)

    raise AttributeError(f"module 'herdbook' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Registry
    "LivestockRegistry",
    "LivestockRecord",
    "RegistryState",
    "RegistryLimits",
    "CallContext",
    "ErrorCode",
    "RegistryError",
    # Batch
    "TransactionResult",
    "BatchError",
    "load_batch",
    "validate_batch",
    "replay_batch",
    # Config
    "BURN_PRINCIPAL",
    "get_config",
    "get_config_manager",
]
