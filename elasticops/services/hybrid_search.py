"""
Hybrid Search Service combining lexical and vector retrieval

Features:
- BM25 multi_match search (field boosts, fuzziness)
- kNN vector search over the embedding field
- RRF (Reciprocal Rank Fusion) for score combination
- Per-list rank/score kept on every result for explainability
"""
from typing import List, Dict, Any, Optional, Tuple
import asyncio
import math

from pydantic import BaseModel, Field

from elasticops.models.queries import Filter, SearchHit
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import build_lexical_query, build_vector_query
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RRF_K = 60


class RankedScore(BaseModel):
    """Position and native score of a document in one source list"""
    rank: int
    score: float


class FusedHit(BaseModel):
    """Search result after RRF fusion"""
    id: str
    score: float
    source: Dict[str, Any] = Field(default_factory=dict)
    highlights: Dict[str, List[str]] = Field(default_factory=dict)
    lexical: Optional[RankedScore] = None
    vector: Optional[RankedScore] = None

    def first_highlight(self, *fields: str) -> Optional[str]:
        for field in fields:
            fragments = self.highlights.get(field)
            if fragments:
                return fragments[0]
        return None


class HybridSearchResult(BaseModel):
    """Fused hits plus the number of distinct candidates seen by either retrieval"""
    hits: List[FusedHit] = Field(default_factory=list)
    total_candidates: int = 0


class HybridSearchService:
    """
    Hybrid search combining lexical (BM25) and vector (kNN) retrieval

    Search pipeline:
    1. Lexical search (multi_match with boosts) - up to 2k candidates
    2. Vector search (kNN) - up to 2k candidates
    3. RRF fusion: score(d) = sum(1 / (k + rank_i(d)))
    4. Top-k by fused score, ties broken by lexical rank
    """

    def __init__(self, store: DocumentStore, rrf_k: int = DEFAULT_RRF_K):
        """
        Initialize hybrid search service

        Args:
            store: Document store used for both retrievals
            rrf_k: RRF constant (default: 60)
        """
        self.store = store
        self.rrf_k = rrf_k

        logger.info(f"HybridSearchService initialized (RRF k={rrf_k})")

    async def search_detailed(
        self,
        collection_name: str,
        query: str,
        query_vector: List[float],
        text_fields: Dict[str, float],
        top_k: int = 10,
        num_candidates: int = 50,
        fuzziness: Optional[str] = "AUTO",
        filters: Optional[List[Filter]] = None,
        rrf_k: Optional[int] = None
    ) -> HybridSearchResult:
        """
        Hybrid search combining lexical and vector rankings

        Args:
            collection_name: Collection to search
            query: Query text for the lexical retrieval
            query_vector: Query embedding for the vector retrieval
            text_fields: Lexical fields with boosts
            top_k: Final number of results to return
            num_candidates: kNN candidate pool size
            fuzziness: Lexical fuzziness (None disables it)
            filters: Optional filters applied to both retrievals
            rrf_k: Per-call override of the RRF constant

        Returns:
            HybridSearchResult with fused hits, best first
        """
        candidate_k = top_k * 2

        lexical_task = asyncio.ensure_future(self._lexical_search(
            collection_name, query, text_fields, candidate_k, fuzziness, filters
        ))
        vector_task = asyncio.ensure_future(self._vector_search(
            collection_name, query_vector, candidate_k, num_candidates, filters
        ))

        # Both retrievals are required; a failure in either cancels the other
        try:
            lexical_hits, vector_hits = await asyncio.gather(lexical_task, vector_task)
        except BaseException:
            for task in (lexical_task, vector_task):
                task.cancel()
            await asyncio.gather(lexical_task, vector_task, return_exceptions=True)
            raise

        logger.info(f"Lexical search returned {len(lexical_hits)} results")
        logger.info(f"Vector search returned {len(vector_hits)} results")

        fused = self._rrf_fusion(lexical_hits, vector_hits, top_k, rrf_k=rrf_k)
        logger.info(f"RRF fusion produced {len(fused)} results")

        candidate_ids = {hit.id for hit in lexical_hits} | {hit.id for hit in vector_hits}
        return HybridSearchResult(hits=fused, total_candidates=len(candidate_ids))

    async def search(
        self,
        collection_name: str,
        query: str,
        query_vector: List[float],
        text_fields: Dict[str, float],
        top_k: int = 10,
        **kwargs
    ) -> List[FusedHit]:
        """Fused hits only (see search_detailed)"""
        result = await self.search_detailed(
            collection_name, query, query_vector, text_fields, top_k=top_k, **kwargs
        )
        return result.hits

    async def _lexical_search(
        self,
        collection_name: str,
        query: str,
        text_fields: Dict[str, float],
        size: int,
        fuzziness: Optional[str],
        filters: Optional[List[Filter]]
    ) -> List[SearchHit]:
        """Run BM25 multi_match search"""
        lexical_query = build_lexical_query(query, text_fields, size, fuzziness, filters)
        response = await self.store.search(collection_name, lexical_query)
        return response.hits[:size]

    async def _vector_search(
        self,
        collection_name: str,
        query_vector: List[float],
        size: int,
        num_candidates: int,
        filters: Optional[List[Filter]]
    ) -> List[SearchHit]:
        """Run kNN vector search"""
        vector_query = build_vector_query(query_vector, size, num_candidates, filters)
        response = await self.store.search(collection_name, vector_query)
        return response.hits[:size]

    def _rrf_fusion(
        self,
        lexical_results: List[SearchHit],
        vector_results: List[SearchHit],
        top_k: int,
        rrf_k: Optional[int] = None
    ) -> List[FusedHit]:
        """
        Apply Reciprocal Rank Fusion (RRF) to combine lexical and vector results

        RRF formula: score(d) = Σ(1 / (k + rank_i(d)))

        A document missing from a list contributes nothing for that list.

        Args:
            lexical_results: Results from lexical search, best first
            vector_results: Results from vector search, best first
            top_k: Number of results to return
            rrf_k: RRF constant override

        Returns:
            Fused results sorted by RRF score
        """
        k = self.rrf_k if rrf_k is None else rrf_k
        fused: Dict[str, FusedHit] = {}

        for rank, hit in enumerate(lexical_results, start=1):
            entry = fused.get(hit.id)
            if entry is None:
                entry = FusedHit(id=hit.id, score=0.0, source=hit.source, highlights=hit.highlights)
                fused[hit.id] = entry
            if entry.lexical is not None:
                continue
            entry.lexical = RankedScore(rank=rank, score=hit.score)
            entry.score += 1.0 / (k + rank)

        for rank, hit in enumerate(vector_results, start=1):
            entry = fused.get(hit.id)
            if entry is None:
                entry = FusedHit(id=hit.id, score=0.0, source=hit.source, highlights=hit.highlights)
                fused[hit.id] = entry
            if entry.vector is not None:
                continue
            entry.vector = RankedScore(rank=rank, score=hit.score)
            entry.score += 1.0 / (k + rank)

        ranked = sorted(fused.values(), key=_fusion_sort_key)
        return ranked[:top_k]

    def get_search_stats(self, results: List[FusedHit]) -> Dict[str, Any]:
        """
        Get statistics about search results

        Args:
            results: Fused search results

        Returns:
            Statistics dictionary
        """
        if not results:
            return {
                'total_results': 0,
                'avg_rrf_score': 0.0,
                'lexical_only': 0,
                'vector_only': 0,
                'both': 0
            }

        lexical_only = sum(1 for r in results if r.lexical and not r.vector)
        vector_only = sum(1 for r in results if r.vector and not r.lexical)
        both = sum(1 for r in results if r.lexical and r.vector)
        avg_rrf = sum(r.score for r in results) / len(results)

        return {
            'total_results': len(results),
            'avg_rrf_score': avg_rrf,
            'lexical_only': lexical_only,
            'vector_only': vector_only,
            'both': both
        }


def _fusion_sort_key(hit: FusedHit) -> Tuple[float, float, float, str]:
    lexical_rank = hit.lexical.rank if hit.lexical else math.inf
    vector_rank = hit.vector.rank if hit.vector else math.inf
    return (-hit.score, lexical_rank, vector_rank, hit.id)
