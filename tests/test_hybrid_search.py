"""
Unit tests for HybridSearchService

Tests:
- RRF fusion formula and ordering
- Tie-breaking
- Search pipeline over a mocked store
- Search statistics
"""
import asyncio

import pytest
from unittest.mock import MagicMock, AsyncMock

from elasticops.exceptions import UpstreamUnavailableError
from elasticops.models.queries import LexicalQuery, SearchHit, SearchResponse, VectorQuery
from elasticops.services.hybrid_search import HybridSearchService


def hits(*ids):
    return [SearchHit(id=doc_id, score=10.0 - index) for index, doc_id in enumerate(ids)]


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.search = AsyncMock(return_value=SearchResponse())
    return store


@pytest.fixture
def hybrid_service(mock_store):
    return HybridSearchService(mock_store, rrf_k=60)


class TestRRFFusion:

    def test_document_in_both_lists_ranks_first(self, hybrid_service):
        """L=[A,B,C], V=[B,D,A] → B, A, D, C"""
        fused = hybrid_service._rrf_fusion(hits("A", "B", "C"), hits("B", "D", "A"), top_k=10)

        assert [hit.id for hit in fused] == ["B", "A", "D", "C"]
        assert fused[0].score == pytest.approx(1 / 62 + 1 / 61)
        assert fused[1].score == pytest.approx(1 / 61 + 1 / 63)
        assert fused[2].score == pytest.approx(1 / 62)
        assert fused[3].score == pytest.approx(1 / 63)

    def test_missing_list_contributes_nothing(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A"), [], top_k=10)
        assert fused[0].score == pytest.approx(1 / 61)
        assert fused[0].vector is None
        assert fused[0].lexical.rank == 1

    def test_ranks_and_native_scores_kept(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A", "B"), hits("B"), top_k=10)
        b = next(hit for hit in fused if hit.id == "B")
        assert b.lexical.rank == 2
        assert b.lexical.score == 9.0
        assert b.vector.rank == 1
        assert b.vector.score == 10.0

    def test_top_k_truncates(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A", "B", "C"), hits("D", "E"), top_k=2)
        assert len(fused) == 2

    def test_tie_broken_by_lexical_rank(self, hybrid_service):
        """A is lexical #1, B is vector #1: same fused score, lexical wins"""
        fused = hybrid_service._rrf_fusion(hits("A"), hits("B"), top_k=10)
        assert fused[0].score == fused[1].score
        assert [hit.id for hit in fused] == ["A", "B"]

    def test_custom_k_override(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A"), [], top_k=10, rrf_k=10)
        assert fused[0].score == pytest.approx(1 / 11)

    def test_empty_inputs(self, hybrid_service):
        assert hybrid_service._rrf_fusion([], [], top_k=5) == []

    def test_duplicate_within_one_list_counted_once(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A", "A"), [], top_k=10)
        assert len(fused) == 1
        assert fused[0].score == pytest.approx(1 / 61)


class TestSearchPipeline:

    @pytest.mark.asyncio
    async def test_runs_both_retrievals(self, hybrid_service, mock_store):
        async def search(collection, query):
            if isinstance(query, LexicalQuery):
                return SearchResponse(hits=hits("A", "B"), total=2)
            return SearchResponse(hits=hits("B", "C"), total=2)

        mock_store.search.side_effect = search
        result = await hybrid_service.search_detailed(
            "kb-articles", "login", [0.1] * 4, {"title": 2.0, "content": 1.0}, top_k=5
        )

        assert [hit.id for hit in result.hits] == ["B", "A", "C"]
        assert result.total_candidates == 3
        assert mock_store.search.await_count == 2

    @pytest.mark.asyncio
    async def test_candidate_pool_is_twice_top_k(self, hybrid_service, mock_store):
        await hybrid_service.search("kb-articles", "q", [0.1], {"title": 1.0}, top_k=5)

        queries = [call.args[1] for call in mock_store.search.await_args_list]
        lexical = next(q for q in queries if isinstance(q, LexicalQuery))
        vector = next(q for q in queries if isinstance(q, VectorQuery))
        assert lexical.size == 10
        assert lexical.fuzziness == "AUTO"
        assert vector.k == 10

    @pytest.mark.asyncio
    async def test_retrieval_failure_propagates(self, hybrid_service, mock_store):
        mock_store.search.side_effect = UpstreamUnavailableError("search kb-articles", "timed out")

        with pytest.raises(UpstreamUnavailableError):
            await hybrid_service.search("kb-articles", "q", [0.1], {"title": 1.0})

    @pytest.mark.asyncio
    async def test_failed_retrieval_cancels_the_other(self, hybrid_service, mock_store):
        vector_started = asyncio.Event()
        cancelled = []

        async def search(collection, query):
            if isinstance(query, VectorQuery):
                vector_started.set()
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.append("vector")
                    raise
            await vector_started.wait()
            raise UpstreamUnavailableError("search kb-articles", "HTTP 500")

        mock_store.search.side_effect = search

        with pytest.raises(UpstreamUnavailableError):
            await asyncio.wait_for(
                hybrid_service.search("kb-articles", "q", [0.1], {"title": 1.0}),
                timeout=5,
            )

        assert cancelled == ["vector"]


class TestSearchStats:

    def test_stats_empty(self, hybrid_service):
        stats = hybrid_service.get_search_stats([])
        assert stats["total_results"] == 0
        assert stats["avg_rrf_score"] == 0.0

    def test_stats_counts_sources(self, hybrid_service):
        fused = hybrid_service._rrf_fusion(hits("A", "B"), hits("B", "C"), top_k=10)
        stats = hybrid_service.get_search_stats(fused)

        assert stats["total_results"] == 3
        assert stats["both"] == 1
        assert stats["lexical_only"] == 1
        assert stats["vector_only"] == 1
