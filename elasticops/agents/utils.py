"""
Shared utilities for the LangGraph workflows
"""
import time
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from elasticops.models.queries import SearchHit
from elasticops.models.schemas import Citation, Collections
from elasticops.models.steps import GateSummary
from elasticops.services.citation_gate import GateDecision
from elasticops.services.hybrid_search import FusedHit
from elasticops.services.side_effects import SideEffectResult


def new_document_id(prefix: str) -> str:
    """Business id such as ``INC-1760770000000-3F2A``"""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid4().hex[:4].upper()}"


def add_tag(tags: Optional[Sequence[str]], tag: str) -> List[str]:
    merged = list(tags or [])
    if tag not in merged:
        merged.append(tag)
    return merged


def gate_summary(decision: GateDecision) -> GateSummary:
    return GateSummary(
        permitted=decision.permitted,
        confidence=decision.confidence,
        citation_count=decision.citation_count,
        reason=decision.reason,
    )


def kb_citations(hits: List[FusedHit], limit: int = 2) -> List[Citation]:
    return [
        Citation(
            source_collection=Collections.KB_ARTICLES,
            document_id=hit.id,
            highlight=hit.first_highlight("content", "title") or hit.source.get("title"),
        )
        for hit in hits[:limit]
    ]


def resolution_citations(hits: List[SearchHit], limit: int = 2) -> List[Citation]:
    return [
        Citation(
            source_collection=Collections.RESOLUTIONS,
            document_id=hit.id,
            highlight=hit.source.get("title"),
        )
        for hit in hits[:limit]
    ]


def ticket_citations(hits: List[SearchHit], limit: int = 2) -> List[Citation]:
    return [
        Citation(
            source_collection=Collections.TICKETS,
            document_id=hit.id,
            highlight=hit.source.get("subject"),
        )
        for hit in hits[:limit]
    ]


def hit_summary(hit, *fields: str) -> dict:
    """Small audit-friendly view of a search hit"""
    summary = {"id": hit.id, "score": hit.score}
    for field in fields:
        summary[field] = hit.source.get(field)
    return summary


def split_metric_results(results: Iterable[SideEffectResult]) -> Tuple[List[str], List[str]]:
    """(written, failed) metric names from ``metric:<name>`` side-effect results"""
    written, failed = [], []
    for result in results:
        name = result.label.split(":", 1)[-1]
        (written if result.ok else failed).append(name)
    return written, failed
