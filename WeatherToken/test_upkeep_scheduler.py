"""Tests for the staleness scanner and upkeep batches."""
from unittest.mock import patch

import pytest
from oracle_provider import InsufficientBudget, PayloadDecodeError, SystemPaused, Unauthorized
from payload_codec import decode_token_ids, encode_token_ids

DAY = 86400


class TestScan:
    """Which tokens are reported stale."""

    def test_cooldown_boundary(self, service, clock, mint, answer):
        """A token minted at t=0 becomes due at exactly t=86400."""
        token_a = mint(service)
        answer(service, "req-0001")

        clock.now = DAY - 1
        assert service.scan() == []
        clock.now = DAY
        assert service.scan() == [token_a]

    def test_deactivated_never_reported(self, service, clock, mint):
        token_a = mint(service)
        token_b = mint(service)
        service.deactivate("owner", token_b)

        clock.now = 100 * DAY
        assert service.scan() == [token_a]

        service.activate("owner", token_b)
        assert service.scan() == [token_a, token_b]

    @pytest.mark.parametrize("minted_at,now,expected", [
        (0, DAY - 1, False),
        (0, DAY, True),
        (500, DAY + 499, False),
        (500, DAY + 500, True),
        (500, 10 * DAY, True),
    ])
    def test_stale_iff_cooldown_elapsed(self, service, clock, mint, minted_at, now, expected):
        clock.now = minted_at
        token_id = mint(service)
        clock.now = now
        assert (token_id in service.scan()) is expected

    def test_cooldown_change_applies_immediately(self, service, clock, mint):
        token_id = mint(service)
        clock.now = 60
        assert service.scan() == []
        service.set_cooldown("owner", 60)
        assert service.scan() == [token_id]


class TestCheckUpkeep:

    def test_nothing_due(self, service, mint):
        mint(service)
        needed, payload = service.check_upkeep()
        assert needed is False
        assert decode_token_ids(payload) == []

    def test_due_tokens_encoded(self, service, clock, mint):
        ids = [mint(service) for _ in range(3)]
        clock.now = DAY
        needed, payload = service.check_upkeep()
        assert needed is True
        assert decode_token_ids(payload) == ids

    def test_paused(self, service):
        service.pause("owner")
        with pytest.raises(SystemPaused):
            service.check_upkeep()


class TestPerformUpkeep:

    def test_refreshes_and_stamps(self, service, clock, mint, answer):
        token_id = mint(service)
        answer(service, "req-0001", temperature=10)
        clock.now = DAY + 5
        _, payload = service.check_upkeep()

        result = service.perform_upkeep("keeper", payload)

        assert result.ok
        assert result.refreshed == [token_id]
        assert result.request_ids == {token_id: "req-0002"}
        assert service.target(token_id).last_update == DAY + 5
        assert service.scan() == []

        answer(service, "req-0002", temperature=20)
        assert service.snapshot(token_id).temperature == 20

    def test_legacy_mode_reads_previous_answer(self, legacy_service, clock, mint, answer):
        """Legacy refresh materializes immediately from the newest answer on hand."""
        token_id = mint(legacy_service)
        answer(legacy_service, "req-0001", temperature=10)
        clock.now = DAY
        _, payload = legacy_service.check_upkeep()

        legacy_service.perform_upkeep("keeper", payload)

        assert legacy_service.snapshot(token_id).temperature == 10
        assert legacy_service.tokens[token_id].awaiting_request == "req-0002"

    def test_only_scheduler_may_execute(self, service, clock, mint):
        mint(service)
        clock.now = DAY
        _, payload = service.check_upkeep()
        for caller in ("owner", "alice", "oracle"):
            with pytest.raises(Unauthorized):
                service.perform_upkeep(caller, payload)
        assert service.scan() == [0]

    def test_scheduler_can_be_replaced(self, service, clock, mint):
        mint(service)
        clock.now = DAY
        service.set_scheduler("owner", "new-keeper")
        _, payload = service.check_upkeep()
        with pytest.raises(Unauthorized):
            service.perform_upkeep("keeper", payload)
        assert service.perform_upkeep("new-keeper", payload).refreshed == [0]

    def test_paused(self, service, clock, mint):
        mint(service)
        clock.now = DAY
        _, payload = service.check_upkeep()
        service.pause("owner")
        with pytest.raises(SystemPaused):
            service.perform_upkeep("keeper", payload)

    def test_revalidates_each_entry(self, service, clock, mint):
        """Stale payloads skip tokens that are no longer due or do not exist."""
        token_a = mint(service)
        token_b = mint(service)
        clock.now = DAY
        _, payload = service.check_upkeep()
        service.deactivate("owner", token_b)

        result = service.perform_upkeep("keeper", payload)
        assert result.refreshed == [token_a]
        assert result.skipped == [token_b]

        # Replaying the same payload refreshes nothing
        replay = service.perform_upkeep("keeper", payload)
        assert replay.refreshed == []
        assert replay.skipped == [token_a, token_b]

        unknown = service.perform_upkeep("keeper", encode_token_ids([42]))
        assert unknown.skipped == [42]

    def test_partial_failure_isolated(self, service, clock, mint):
        """B's failed reissue leaves A and C refreshed and B reported."""
        token_a, token_b, token_c = mint(service), mint(service), mint(service)
        clock.now = DAY
        _, payload = service.check_upkeep()
        original_issue = service.issuer.issue

        def issue(location, lat, lon, units, budget, token_id=None):
            if token_id == token_b:
                raise InsufficientBudget("Balance 0 cannot cover budget 10")
            return original_issue(location, lat, lon, units, budget, token_id=token_id)

        with patch.object(service.issuer, "issue", side_effect=issue):
            result = service.perform_upkeep("keeper", payload)

        assert result.refreshed == [token_a, token_c]
        assert list(result.failed) == [token_b]
        assert isinstance(result.failed[token_b], InsufficientBudget)
        assert not result.ok
        assert service.target(token_a).last_update == DAY
        assert service.target(token_c).last_update == DAY
        assert service.target(token_b).last_update == 0
        assert service.scan() == [token_b]

    def test_funds_run_out_mid_batch(self, service, clock, mint):
        """Tokens after the ledger empties fail, earlier ones keep their refresh."""
        ids = [mint(service) for _ in range(3)]
        service.withdraw_funds("owner", service.ledger.balance - 10)
        clock.now = DAY
        _, payload = service.check_upkeep()

        result = service.perform_upkeep("keeper", payload)

        assert result.refreshed == [ids[0]]
        assert list(result.failed) == ids[1:]
        assert service.ledger.balance == 0

    def test_malformed_payload(self, service):
        with pytest.raises(PayloadDecodeError):
            service.perform_upkeep("keeper", b"\x01\x00")
