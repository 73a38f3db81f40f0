"""
Tests for the deduplication gate
"""
from datetime import timedelta

import pytest

from elasticops.models.schemas import Collections
from elasticops.services.deduplication import DeduplicationGate, SimilarTicket


@pytest.fixture
def gate(store):
    return DeduplicationGate(store, incident_window=timedelta(minutes=10), similarity_threshold=0.95)


class TestSimilarityThreshold:

    def test_above_threshold_is_duplicate(self, gate):
        check = gate.evaluate_similarity([SimilarTicket(id="T-1", score=0.951)])
        assert check.is_duplicate is True
        assert check.match_id == "T-1"
        assert check.top_score == 0.951

    def test_below_threshold_is_not_duplicate(self, gate):
        check = gate.evaluate_similarity([SimilarTicket(id="T-1", score=0.949)])
        assert check.is_duplicate is False
        assert check.match_id is None

    def test_threshold_is_strict(self, gate):
        assert gate.evaluate_similarity([SimilarTicket(id="T-1", score=0.95)]).is_duplicate is False

    def test_decision_uses_highest_score(self, gate):
        check = gate.evaluate_similarity([
            SimilarTicket(id="T-1", score=0.90),
            SimilarTicket(id="T-2", score=0.97),
        ])
        assert check.match_id == "T-2"
        assert len(check.similar_tickets) == 2

    def test_no_candidates(self, gate):
        check = gate.evaluate_similarity([])
        assert check.is_duplicate is False
        assert check.top_score is None


class TestTicketSimilaritySearch:

    @pytest.mark.asyncio
    async def test_identical_open_ticket_is_duplicate(self, gate, seed, embedder):
        seed.ticket("T-OLD", "Cannot login", "Password reset loop", category="authentication")
        seed.ticket("T-NEW", "Cannot login", "Password reset loop", category="authentication")

        check = await gate.check_ticket(
            embedder.embed("Cannot login Password reset loop"),
            "authentication",
            exclude_id="T-NEW",
        )

        assert check.is_duplicate is True
        assert check.match_id == "T-OLD"

    @pytest.mark.asyncio
    async def test_excludes_self_closed_and_other_categories(self, gate, seed, embedder):
        seed.ticket("T-SELF", "Cannot login", "Password reset loop", category="authentication")
        seed.ticket("T-CLOSED", "Cannot login", "Password reset loop", category="authentication", status="closed")
        seed.ticket("T-BILLING", "Cannot login", "Password reset loop", category="billing")

        candidates = await gate.similar_open_tickets(
            embedder.embed("Cannot login Password reset loop"),
            "authentication",
            exclude_id="T-SELF",
        )

        assert candidates == []


class TestIncidentWindow:

    @pytest.mark.asyncio
    async def test_recent_open_incident_found(self, gate, seed):
        seed.incident("INC-1", "api-gateway", "production", age=timedelta(minutes=3))
        existing = await gate.find_open_incident("api-gateway", "production")
        assert existing.id == "INC-1"

    @pytest.mark.asyncio
    async def test_investigating_counts_as_active(self, gate, seed):
        seed.incident("INC-1", "api-gateway", "production", status="investigating")
        assert await gate.find_open_incident("api-gateway", "production") is not None

    @pytest.mark.asyncio
    async def test_incident_outside_window_ignored(self, gate, seed):
        seed.incident("INC-1", "api-gateway", "production", age=timedelta(minutes=11))
        assert await gate.find_open_incident("api-gateway", "production") is None

    @pytest.mark.asyncio
    async def test_resolved_incident_ignored(self, gate, seed):
        seed.incident("INC-1", "api-gateway", "production", status="resolved")
        assert await gate.find_open_incident("api-gateway", "production") is None

    @pytest.mark.asyncio
    async def test_other_environment_ignored(self, gate, seed, store):
        seed.incident("INC-1", "api-gateway", "staging")
        assert await gate.find_open_incident("api-gateway", "production") is None
        assert "INC-1" in store.docs(Collections.INCIDENTS)

    @pytest.mark.asyncio
    async def test_incident_with_env_field_matches(self, gate, seed, store):
        seed.incident("INC-LEGACY", "api-gateway", "production")
        legacy = store.docs(Collections.INCIDENTS)["INC-LEGACY"]
        legacy["env"] = legacy.pop("environment")

        existing = await gate.find_open_incident("api-gateway", "production")

        assert existing.id == "INC-LEGACY"
