"""
HERDBOOK Registry Engine Test Suite

Tests for the livestock registry state machine:
- Authority configuration (set-once, burn principal)
- Registration validation order and effects
- Status updates (owner-only)
- Transfers (owner-only, frozen when inactive, index maintenance)
- Read-only queries

Run with: pytest tests/test_registry.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from herdbook.config import BURN_PRINCIPAL
from herdbook.registry import (
    CallContext,
    ErrorCode,
    LivestockRecord,
    LivestockRegistry,
    RegistryError,
    RegistryLimits,
)


def _register(registry, ctx, hash="h1", breed="Angus", birth_date=50, description="Healthy cow", caller="A"):
    return registry.register(hash, breed, birth_date, description, ctx(caller))


# =============================================================================
# AUTHORITY
# =============================================================================

class TestSetAuthority:
    """Tests for one-time authority configuration."""

    def test_set_authority_succeeds_once(self, registry):
        assert registry.authority is None
        assert registry.set_authority("AUTH") is True
        assert registry.authority == "AUTH"

    def test_second_call_fails_regardless_of_argument(self, registry):
        registry.set_authority("AUTH")

        for principal in ("AUTH", "OTHER", "", 7):
            with pytest.raises(RegistryError) as exc:
                registry.set_authority(principal)
            assert exc.value.code == ErrorCode.AUTHORITY_ALREADY_SET

        assert registry.authority == "AUTH"

    def test_burn_principal_rejected(self, registry):
        with pytest.raises(RegistryError) as exc:
            registry.set_authority(BURN_PRINCIPAL)
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert registry.authority is None

    def test_burn_principal_checked_before_already_set(self, authorized):
        with pytest.raises(RegistryError) as exc:
            authorized.set_authority(BURN_PRINCIPAL)
        assert exc.value.code == ErrorCode.UNAUTHORIZED

    def test_configured_burn_principal_honoured(self):
        registry = LivestockRegistry(RegistryLimits(burn_principal="NOBODY"))
        with pytest.raises(RegistryError) as exc:
            registry.set_authority("NOBODY")
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert registry.set_authority(BURN_PRINCIPAL) is True


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegister:
    """Tests for record registration."""

    def test_register_scenario(self, authorized, ctx):
        record_id = authorized.register("h1", "Angus", 50, "Healthy cow", ctx("A", 100))

        assert record_id == 0
        assert authorized.get_record("h1") == LivestockRecord(
            breed="Angus",
            birth_date=50,
            description="Healthy cow",
            owner="A",
            is_active=True,
        )
        assert authorized.get_record("h1").to_dict() == {
            "breed": "Angus",
            "birth_date": 50,
            "description": "Healthy cow",
            "owner": "A",
            "is_active": True,
        }
        assert authorized.get_by_owner("A") == ["h1"]
        assert authorized.get_count() == 1

    def test_ids_follow_counter(self, authorized, ctx):
        assert _register(authorized, ctx, hash="h1") == 0
        assert _register(authorized, ctx, hash="h2", caller="B") == 1
        assert _register(authorized, ctx, hash="h3") == 2
        assert authorized.get_count() == 3
        assert authorized.get_by_owner("A") == ["h1", "h3"]

    def test_duplicate_hash_leaves_state_unchanged(self, authorized, ctx):
        _register(authorized, ctx)
        before = authorized.export_registry()

        with pytest.raises(RegistryError) as exc:
            authorized.register("h1", "Holstein", 60, "Another cow", ctx("B"))
        assert exc.value.code == ErrorCode.HASH_EXISTS
        assert authorized.export_registry() == before

    def test_register_before_authority(self, registry, ctx):
        with pytest.raises(RegistryError) as exc:
            _register(registry, ctx)
        assert exc.value.code == ErrorCode.AUTHORITY_NOT_SET
        assert registry.get_count() == 0
        assert not registry.is_registered("h1")

        registry.set_authority("AUTH")
        assert _register(registry, ctx) == 0

    def test_empty_hash(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, hash="")
        assert exc.value.code == ErrorCode.INVALID_HASH

    def test_non_string_hash(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, hash=None)
        assert exc.value.code == ErrorCode.INVALID_HASH

    @pytest.mark.parametrize("breed", ["", "x" * 51])
    def test_invalid_breed(self, authorized, ctx, breed):
        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, breed=breed)
        assert exc.value.code == ErrorCode.INVALID_BREED

    def test_breed_at_limit(self, authorized, ctx):
        _register(authorized, ctx, breed="x" * 50)
        assert authorized.get_record("h1").breed == "x" * 50

    def test_lengths_count_code_points(self, authorized, ctx):
        # 50 two-byte characters fit; the bound is on characters, not bytes
        breed = "é" * 50
        _register(authorized, ctx, breed=breed)
        assert authorized.get_record("h1").breed == breed

        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, hash="h2", breed="é" * 51)
        assert exc.value.code == ErrorCode.INVALID_BREED

    def test_future_birth_date(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            authorized.register("h1", "Angus", 200, "Healthy cow", ctx("A", 100))
        assert exc.value.code == ErrorCode.INVALID_DATE

    def test_birth_date_equal_to_height(self, authorized, ctx):
        authorized.register("h1", "Angus", 100, "Healthy cow", ctx("A", 100))
        assert authorized.get_record("h1").birth_date == 100

    @pytest.mark.parametrize("birth_date", ["50", 5.0, True])
    def test_non_integer_birth_date(self, authorized, ctx, birth_date):
        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, birth_date=birth_date)
        assert exc.value.code == ErrorCode.INVALID_DATE

    def test_description_too_long(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            _register(authorized, ctx, description="a" * 201)
        assert exc.value.code == ErrorCode.INVALID_DESCRIPTION

    def test_description_bounds(self, authorized, ctx):
        _register(authorized, ctx, hash="h1", description="")
        _register(authorized, ctx, hash="h2", description="a" * 200)
        assert authorized.get_record("h1").description == ""
        assert authorized.get_record("h2").description == "a" * 200

    def test_validation_order(self, registry, ctx):
        """First failing check wins: hash, breed, date, description, duplicate, authority."""
        with pytest.raises(RegistryError) as exc:
            registry.register("", "", 200, "a" * 201, ctx("A", 100))
        assert exc.value.code == ErrorCode.INVALID_HASH

        with pytest.raises(RegistryError) as exc:
            registry.register("h1", "", 200, "a" * 201, ctx("A", 100))
        assert exc.value.code == ErrorCode.INVALID_BREED

        with pytest.raises(RegistryError) as exc:
            registry.register("h1", "Angus", 200, "a" * 201, ctx("A", 100))
        assert exc.value.code == ErrorCode.INVALID_DATE

        with pytest.raises(RegistryError) as exc:
            registry.register("h1", "Angus", 50, "a" * 201, ctx("A", 100))
        assert exc.value.code == ErrorCode.INVALID_DESCRIPTION

        # Invalid input is reported even before an authority exists
        with pytest.raises(RegistryError) as exc:
            registry.register("h1", "Angus", 50, "ok", ctx("A", 100))
        assert exc.value.code == ErrorCode.AUTHORITY_NOT_SET

    def test_registry_full_checked_first(self, ctx):
        registry = LivestockRegistry(RegistryLimits(max_records=1))
        registry.set_authority("AUTH")
        _register(registry, ctx)

        with pytest.raises(RegistryError) as exc:
            registry.register("", "", 200, "", ctx("B"))
        assert exc.value.code == ErrorCode.MAX_EXCEEDED


# =============================================================================
# STATUS UPDATES
# =============================================================================

class TestUpdateStatus:
    """Tests for owner-only status updates."""

    def test_deactivate_and_reactivate(self, authorized, ctx):
        _register(authorized, ctx)

        assert authorized.update_status("h1", False, ctx("A")) is True
        record = authorized.get_record("h1")
        assert record.is_active is False
        assert (record.breed, record.birth_date, record.description, record.owner) == (
            "Angus", 50, "Healthy cow", "A",
        )

        assert authorized.update_status("h1", True, ctx("A")) is True
        assert authorized.get_record("h1").is_active is True
        assert authorized.get_count() == 1

    def test_unknown_hash(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            authorized.update_status("missing", False, ctx("A"))
        assert exc.value.code == ErrorCode.NOT_FOUND

    def test_non_owner_rejected(self, authorized, ctx):
        _register(authorized, ctx)
        before = authorized.get_record("h1")

        with pytest.raises(RegistryError) as exc:
            authorized.update_status("h1", False, ctx("FAKE"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert authorized.get_record("h1") == before

    def test_authority_is_not_owner(self, authorized, ctx):
        _register(authorized, ctx)
        with pytest.raises(RegistryError) as exc:
            authorized.update_status("h1", False, ctx("AUTH"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED

    def test_non_bool_flag(self, authorized, ctx):
        _register(authorized, ctx)
        with pytest.raises(TypeError):
            authorized.update_status("h1", 0, ctx("A"))
        assert authorized.get_record("h1").is_active is True


# =============================================================================
# TRANSFERS
# =============================================================================

class TestTransfer:
    """Tests for ownership transfer."""

    def test_transfer_moves_record_and_index(self, authorized, ctx):
        _register(authorized, ctx)

        assert authorized.transfer("h1", "B", ctx("A")) is True
        assert authorized.get_record("h1").owner == "B"
        assert "h1" not in authorized.get_by_owner("A")
        assert authorized.get_by_owner("B") == ["h1"]
        assert authorized.get_count() == 1

    def test_transfer_preserves_remaining_order(self, authorized, ctx):
        for h in ("h1", "h2", "h3", "h4"):
            _register(authorized, ctx, hash=h)
        _register(authorized, ctx, hash="b1", caller="B")

        authorized.transfer("h2", "B", ctx("A"))

        assert authorized.get_by_owner("A") == ["h1", "h3", "h4"]
        assert authorized.get_by_owner("B") == ["b1", "h2"]

    def test_new_owner_can_transfer_back(self, authorized, ctx):
        _register(authorized, ctx)
        authorized.transfer("h1", "B", ctx("A"))

        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", "C", ctx("A"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED

        authorized.transfer("h1", "A", ctx("B"))
        assert authorized.get_by_owner("A") == ["h1"]
        assert authorized.get_by_owner("B") == []

    def test_unknown_hash(self, authorized, ctx):
        with pytest.raises(RegistryError) as exc:
            authorized.transfer("missing", "B", ctx("A"))
        assert exc.value.code == ErrorCode.NOT_FOUND

    def test_non_owner_rejected(self, authorized, ctx):
        _register(authorized, ctx)
        before = authorized.export_registry()

        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", "C", ctx("FAKE"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert authorized.export_registry() == before

    def test_transfer_to_burn_principal(self, authorized, ctx):
        _register(authorized, ctx)
        before = authorized.export_registry()

        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", BURN_PRINCIPAL, ctx("A"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert authorized.export_registry() == before

    def test_inactive_record_is_frozen(self, authorized, ctx):
        _register(authorized, ctx)
        authorized.update_status("h1", False, ctx("A"))

        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", "B", ctx("A"))
        assert exc.value.code == ErrorCode.INACTIVE
        assert authorized.get_record("h1").owner == "A"
        assert authorized.get_by_owner("A") == ["h1"]
        assert authorized.get_by_owner("B") == []

    @pytest.mark.parametrize("target", [BURN_PRINCIPAL, ""])
    def test_inactive_reported_before_bad_target(self, authorized, ctx, target):
        _register(authorized, ctx)
        authorized.update_status("h1", False, ctx("A"))
        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", target, ctx("A"))
        assert exc.value.code == ErrorCode.INACTIVE

    def test_transfer_to_self_moves_hash_to_end(self, authorized, ctx):
        _register(authorized, ctx, hash="h1")
        _register(authorized, ctx, hash="h2")

        assert authorized.transfer("h1", "A", ctx("A")) is True
        assert authorized.get_by_owner("A") == ["h2", "h1"]
        assert authorized.get_record("h1").owner == "A"
        assert authorized.get_count() == 2
        authorized.verify_invariants()

    def test_empty_new_owner(self, authorized, ctx):
        _register(authorized, ctx)
        with pytest.raises(RegistryError) as exc:
            authorized.transfer("h1", "", ctx("A"))
        assert exc.value.code == ErrorCode.UNAUTHORIZED
        assert authorized.get_record("h1").owner == "A"


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:
    """Tests for read-only queries."""

    def test_absent_values(self, registry):
        assert registry.get_record("nope") is None
        assert registry.get_by_owner("nobody") == []
        assert registry.get_count() == 0
        assert registry.is_registered("nope") is False

    def test_is_registered(self, authorized, ctx):
        _register(authorized, ctx)
        assert authorized.is_registered("h1") is True
        assert authorized.is_registered("h2") is False
        assert "h1" in authorized
        assert len(authorized) == 1

    def test_get_by_owner_returns_copy(self, authorized, ctx):
        _register(authorized, ctx)
        owned = authorized.get_by_owner("A")
        owned.append("forged")
        assert authorized.get_by_owner("A") == ["h1"]

    def test_records_are_immutable(self, authorized, ctx):
        _register(authorized, ctx)
        record = authorized.get_record("h1")
        with pytest.raises(AttributeError):
            record.owner = "B"

    def test_statistics(self, authorized, ctx):
        _register(authorized, ctx, hash="h1")
        _register(authorized, ctx, hash="h2", caller="B")
        authorized.update_status("h2", False, ctx("B"))

        stats = authorized.get_statistics()
        assert stats == {
            "total_records": 2,
            "active_records": 1,
            "inactive_records": 1,
            "owners": 2,
            "authority_set": True,
            "capacity_remaining": 9998,
        }

    def test_export_registry(self, authorized, ctx):
        _register(authorized, ctx)
        authorized.transfer("h1", "B", ctx("A"))

        exported = authorized.export_registry()
        assert exported["counter"] == 1
        assert exported["authority"] == "AUTH"
        assert exported["records"]["h1"]["owner"] == "B"
        # Owners left with nothing are omitted
        assert exported["owner_index"] == {"B": ["h1"]}
        assert exported["limits"]["max_per_owner"] == 100


class TestCallContext:
    """Tests for execution context validation."""

    def test_valid_context(self):
        ctx = CallContext(caller="A", block_height=0)
        assert ctx.caller == "A"

    @pytest.mark.parametrize("caller,height", [("", 1), (None, 1), ("A", -1), ("A", "1"), ("A", True)])
    def test_invalid_context(self, caller, height):
        with pytest.raises(ValueError):
            CallContext(caller=caller, block_height=height)
