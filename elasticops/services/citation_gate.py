"""
Citation Gate

No automated write without at least ``min_citations`` distinct evidence
pointers. A rejected action is not an error: the caller gets a low-confidence
decision with a reason and must take the human-review fallback.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from elasticops.models.schemas import Citation, Confidence
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

MIN_CITATIONS = 2


class GateDecision(BaseModel):
    """Result of evaluating one candidate action"""
    action: str
    permitted: bool
    confidence: Confidence
    citations: List[Citation] = Field(default_factory=list)
    reason: Optional[str] = None
    breakdown: Dict[str, int] = Field(
        default_factory=dict,
        description="Citation count per source collection (informational)"
    )

    @property
    def citation_count(self) -> int:
        return len(self.citations)


def dedupe_citations(citations: Iterable[Citation]) -> List[Citation]:
    """Drop repeated (collection, document_id) pointers, keeping first-seen order"""
    seen = set()
    unique = []
    for citation in citations:
        if citation.key in seen:
            continue
        seen.add(citation.key)
        unique.append(citation)
    return unique


class CitationGate:
    """Minimum-evidence policy in front of every automated write"""

    def __init__(self, min_citations: int = MIN_CITATIONS):
        if min_citations < 1:
            raise ValueError("min_citations must be at least 1")
        self.min_citations = min_citations

    def evaluate(self, action: str, citations: Iterable[Citation]) -> GateDecision:
        unique = dedupe_citations(citations)
        breakdown = dict(Counter(citation.source_collection for citation in unique))

        if len(unique) >= self.min_citations:
            logger.info(f"Citation gate passed for {action} ({len(unique)} citations)")
            return GateDecision(
                action=action,
                permitted=True,
                confidence="high",
                citations=unique,
                breakdown=breakdown,
            )

        reason = (
            f"Insufficient evidence for {action}: {len(unique)} citation(s), "
            f"at least {self.min_citations} required"
        )
        logger.info(f"Citation gate withheld {action}: {reason}")
        return GateDecision(
            action=action,
            permitted=False,
            confidence="low",
            citations=unique,
            reason=reason,
            breakdown=breakdown,
        )
