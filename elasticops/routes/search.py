"""
Hybrid search route

RRF fusion of a BM25 multi_match and a kNN search over the knowledge base or
the ticket corpus. Each hit carries an explain block with its per-list rank
and native score.
"""
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from elasticops.dependencies import get_orchestrator
from elasticops.services.hybrid_search import RankedScore
from elasticops.services.orchestrator import WorkflowOrchestrator
from elasticops.services.search_templates import SEARCH_MODES
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])

VECTOR_CANDIDATES = 100


# ============================================================================
# Pydantic Models
# ============================================================================

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Search text")
    mode: Literal["kb", "tickets"] = Field("kb", description="Corpus to search")
    k: int = Field(10, ge=1, le=100, description="Number of fused results")
    rrf_k: Optional[int] = Field(None, ge=1, description="RRF constant override")


class SearchExplain(BaseModel):
    bm25: Optional[RankedScore] = None
    vector: Optional[RankedScore] = None
    rrf: Dict[str, int]


class SearchResultHit(BaseModel):
    id: str
    score: float
    source: Dict[str, Any]
    highlights: Dict[str, List[str]] = Field(default_factory=dict)
    explain: SearchExplain


class SearchResponseBody(BaseModel):
    query: str
    mode: str
    hits: List[SearchResultHit]
    total: int = Field(..., description="Distinct candidates across both retrievals")
    algorithm: str = "rrf"
    rrf_k: int


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("", response_model=SearchResponseBody)
async def hybrid_search(
    request: SearchRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
):
    """
    Hybrid search with per-hit explanation

    Args:
        request: Query text, corpus mode, result count and optional RRF constant

    Returns:
        Fused hits, best first
    """
    collection, fields = SEARCH_MODES[request.mode]
    rrf_k = request.rrf_k or orchestrator.hybrid_search.rrf_k

    result = await orchestrator.hybrid_search.search_detailed(
        collection,
        request.query,
        orchestrator.embedder.embed(request.query),
        fields,
        top_k=request.k,
        num_candidates=VECTOR_CANDIDATES,
        rrf_k=rrf_k,
    )

    hits = [
        SearchResultHit(
            id=hit.id,
            score=hit.score,
            source={key: value for key, value in hit.source.items() if key != "embedding"},
            highlights=hit.highlights,
            explain=SearchExplain(bm25=hit.lexical, vector=hit.vector, rrf={"k": rrf_k}),
        )
        for hit in result.hits
    ]
    stats = orchestrator.hybrid_search.get_search_stats(result.hits)
    logger.info(
        f"Search '{request.query}' ({request.mode}) returned {len(hits)} hits "
        f"(both={stats['both']}, lexical_only={stats['lexical_only']}, vector_only={stats['vector_only']})"
    )

    return SearchResponseBody(
        query=request.query,
        mode=request.mode,
        hits=hits,
        total=result.total_candidates,
        rrf_k=rrf_k,
    )
