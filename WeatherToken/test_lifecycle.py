"""Tests for the lifecycle gate, role table and token registry."""
import pytest
from lifecycle import AccessControl, LifecycleGate, Role
from oracle_provider import SupplyExhausted, SystemPaused, TokenNotFound, Unauthorized
from token_registry import TokenRegistry
from weather_data import ImageBucket, RefreshTarget


class TestAccessControl:

    def test_owner_implied_capabilities(self):
        access = AccessControl("owner")
        for role in (Role.OWNER, Role.MINTER, Role.REFRESH_ADMIN, Role.FEE_ADMIN):
            assert access.has_role("owner", role)
        assert not access.has_role("owner", Role.SCHEDULER)
        assert not access.has_role("owner", Role.ORACLE)

    def test_grant_and_revoke(self):
        access = AccessControl("owner")
        access.grant("minter", Role.MINTER)
        access.require("minter", Role.MINTER)
        with pytest.raises(Unauthorized):
            access.require("minter", Role.FEE_ADMIN)

        access.revoke("minter", Role.MINTER)
        with pytest.raises(Unauthorized):
            access.require("minter", Role.MINTER)

    def test_exclusive_roles_move(self):
        access = AccessControl("owner")
        access.grant("keeper-1", Role.SCHEDULER)
        access.grant("keeper-2", Role.SCHEDULER)
        assert access.holder_of(Role.SCHEDULER) == "keeper-2"
        assert not access.has_role("keeper-1", Role.SCHEDULER)

    def test_owner_cannot_be_revoked(self):
        with pytest.raises(ValueError):
            AccessControl("owner").revoke("owner", Role.OWNER)


class TestLifecycleGate:

    def test_starts_paused(self):
        gate = LifecycleGate()
        with pytest.raises(SystemPaused):
            gate.require_unpaused("refresh")
        gate.unpause()
        gate.require_unpaused("refresh")

    def test_minting_flag(self):
        gate = LifecycleGate(minting_enabled=False)
        with pytest.raises(SystemPaused):
            gate.require_minting()

    def test_active_transitions_idempotent(self):
        target = RefreshTarget(
            location_name="Denver",
            latitude="39.74",
            longitude="-104.99",
            images={b: b.value for b in ImageBucket},
            last_update=0,
        )
        assert LifecycleGate.set_active(target, 0, False) is True
        assert LifecycleGate.set_active(target, 0, False) is False
        assert target.active is False
        assert LifecycleGate.set_active(target, 0, True) is True
        assert LifecycleGate.set_active(target, 0, True) is False
        assert target.active is True


class TestTokenRegistry:

    def test_sequential_ids_and_cap(self):
        registry = TokenRegistry(LifecycleGate(), max_supply=2)
        assert registry.register("alice") == 0
        assert registry.register("bob") == 1
        with pytest.raises(SupplyExhausted):
            registry.register("carol")
        assert registry.total_supply == 2
        assert registry.tokens_of("alice") == [0]

    def test_max_supply_not_below_current(self):
        registry = TokenRegistry(LifecycleGate())
        registry.register("alice")
        registry.register("alice")
        with pytest.raises(ValueError):
            registry.set_max_supply(1)
        registry.set_max_supply(2)
        with pytest.raises(SupplyExhausted):
            registry.register("alice")

    def test_transfer_gated_by_pause_and_owner(self):
        gate = LifecycleGate()
        registry = TokenRegistry(gate)
        token_id = registry.register("alice")

        with pytest.raises(SystemPaused):
            registry.transfer("alice", "bob", token_id)

        gate.unpause()
        with pytest.raises(Unauthorized):
            registry.transfer("bob", "carol", token_id)
        registry.transfer("alice", "bob", token_id)
        assert registry.owner_of(token_id) == "bob"

        with pytest.raises(TokenNotFound):
            registry.owner_of(7)
