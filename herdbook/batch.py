"""Transaction batch loading, validation and replay.

A batch is a YAML (or JSON) document listing registry operations in the
order a transaction layer would submit them::

    limits:
      max_per_owner: 2
    transactions:
      - op: set_authority
        args: {principal: AUTH}
      - op: register
        caller: A
        block_height: 100
        args: {hash: h1, breed: Angus, birth_date: 50, description: Healthy cow}

Batches are checked against ``schemas/batch.schema.json`` before anything
runs. Rejected operations are reported per transaction and do not stop the
batch.
"""

from __future__ import annotations

import json
import pathlib
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from herdbook.observability import (
    HerdbookLayer,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
    timed_operation,
)
from herdbook.registry import (
    CallContext,
    LivestockRecord,
    LivestockRegistry,
    RegistryError,
    RegistryLimits,
)

SCHEMA_PATH = pathlib.Path(__file__).resolve().parent / "schemas" / "batch.schema.json"

logger = get_logger("replay", HerdbookLayer.BATCH)


class BatchError(Exception):
    """The batch document itself is unusable."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


@dataclass
class TransactionResult:
    """Outcome of one replayed transaction."""
    index: int
    op: str
    ok: bool
    value: Any = None
    error_code: Optional[str] = None
    code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@lru_cache(maxsize=1)
def batch_validator() -> Draft202012Validator:
    schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    return Draft202012Validator(schema)


def validate_batch(batch: Any) -> List[str]:
    """Return schema errors for a batch document (empty if valid)."""
    return [
        f"{error.json_path}: {error.message}"
        for error in batch_validator().iter_errors(batch)
    ]


def load_batch(path: pathlib.Path) -> Dict[str, Any]:
    """Load and validate a batch file."""
    path = pathlib.Path(path)
    if not path.exists():
        raise BatchError(f"batch file not found: {path}")
    try:
        batch = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as ex:
        raise BatchError(f"batch file is not valid YAML/JSON: {path}: {ex}") from ex

    errors = validate_batch(batch)
    if errors:
        raise BatchError(f"invalid batch: {path}: {errors[0]}", errors)
    return batch


def registry_for_batch(batch: Dict[str, Any]) -> LivestockRegistry:
    """Fresh registry using configured limits overridden by the batch's own."""
    limits = RegistryLimits.from_config().to_dict()
    limits.update(batch.get("limits") or {})
    return LivestockRegistry(RegistryLimits(**limits))


def _serialize(value: Any) -> Any:
    if isinstance(value, LivestockRecord):
        return value.to_dict()
    return value


def _apply(registry: LivestockRegistry, tx: Dict[str, Any]) -> Any:
    op = tx["op"]
    args = tx.get("args") or {}

    if op == "set_authority":
        return registry.set_authority(args["principal"])
    if op == "get_record":
        return registry.get_record(args["hash"])
    if op == "get_by_owner":
        return registry.get_by_owner(args["principal"])
    if op == "get_count":
        return registry.get_count()
    if op == "is_registered":
        return registry.is_registered(args["hash"])

    ctx = CallContext(caller=tx["caller"], block_height=tx.get("block_height", 0))
    if op == "register":
        return registry.register(
            args["hash"], args["breed"], args["birth_date"], args["description"], ctx
        )
    if op == "update_status":
        return registry.update_status(args["hash"], args["is_active"], ctx)
    if op == "transfer":
        return registry.transfer(args["hash"], args["new_owner"], ctx)

    raise BatchError(f"unsupported op: {op}")


@timed_operation(logger, "replay_batch")
def replay_batch(
    batch: Dict[str, Any],
    registry: Optional[LivestockRegistry] = None,
) -> List[TransactionResult]:
    """
    Run every transaction of ``batch`` in order against one registry.

    When ``registry`` is omitted a fresh one is built from the batch limits.
    """
    errors = validate_batch(batch)
    if errors:
        raise BatchError(f"invalid batch: {errors[0]}", errors)

    if registry is None:
        registry = registry_for_batch(batch)

    set_correlation_id(generate_correlation_id())
    results: List[TransactionResult] = []
    for index, tx in enumerate(batch["transactions"]):
        op = tx["op"]
        try:
            value = _apply(registry, tx)
        except RegistryError as e:
            results.append(TransactionResult(
                index=index,
                op=op,
                ok=False,
                error_code=e.code.name,
                code=int(e.code),
                error=e.message,
            ))
            continue
        results.append(TransactionResult(index=index, op=op, ok=True, value=_serialize(value)))

    rejected = sum(1 for r in results if not r.ok)
    logger.info(
        f"Replayed {len(results)} transactions ({rejected} rejected)",
        operation="replay_batch",
        total=len(results),
        rejected=rejected,
    )
    return results
