"""
Deduplication Gate

Two independent policies:
- Incident level: an active incident for the same (service, environment)
  detected inside the dedup window suppresses creation.
- Ticket level: the single most similar open ticket of the same category
  marks a duplicate when its score is strictly above the threshold.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from elasticops.models.queries import SearchHit
from elasticops.models.schemas import Collections, utcnow
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import (
    build_open_incident_search,
    build_ticket_dedupe_search,
)
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

INCIDENT_DEDUP_WINDOW = timedelta(minutes=10)
DUPLICATE_SIMILARITY_THRESHOLD = 0.95


class SimilarTicket(BaseModel):
    id: str
    score: float
    subject: Optional[str] = None
    status: Optional[str] = None


class DuplicateCheck(BaseModel):
    """Outcome of the ticket-level similarity check"""
    is_duplicate: bool
    top_score: Optional[float] = None
    match_id: Optional[str] = None
    similar_tickets: List[SimilarTicket] = Field(default_factory=list)


class DeduplicationGate:
    """Prevents duplicate incidents and flags duplicate tickets"""

    def __init__(
        self,
        store: DocumentStore,
        incident_window: timedelta = INCIDENT_DEDUP_WINDOW,
        similarity_threshold: float = DUPLICATE_SIMILARITY_THRESHOLD
    ):
        self.store = store
        self.incident_window = incident_window
        self.similarity_threshold = similarity_threshold

    async def find_open_incident(
        self,
        service: str,
        environment: str,
        now: Optional[datetime] = None
    ) -> Optional[SearchHit]:
        """
        Look up an active incident for (service, environment) inside the window

        Returns:
            The most recent matching incident hit, or None
        """
        since = (now or utcnow()) - self.incident_window
        query = build_open_incident_search(service, environment, since)
        response = await self.store.search(Collections.INCIDENTS, query)

        if response.hits:
            existing = response.hits[0]
            logger.info(f"Active incident {existing.id} already covers {service}/{environment}")
            return existing
        return None

    async def similar_open_tickets(
        self,
        embedding: List[float],
        category: Optional[str],
        exclude_id: Optional[str] = None,
        k: int = 5
    ) -> List[SimilarTicket]:
        """Top-k open tickets of the same category by vector similarity"""
        query = build_ticket_dedupe_search(embedding, category, exclude_id, k)
        response = await self.store.search(Collections.TICKETS, query)
        return [
            SimilarTicket(
                id=hit.id,
                score=hit.score,
                subject=hit.source.get("subject"),
                status=hit.source.get("status"),
            )
            for hit in response.hits
            if hit.id != exclude_id
        ]

    def evaluate_similarity(self, candidates: List[SimilarTicket]) -> DuplicateCheck:
        """Decide from the single highest-scoring candidate"""
        if not candidates:
            return DuplicateCheck(is_duplicate=False)

        top = max(candidates, key=lambda candidate: candidate.score)
        is_duplicate = top.score > self.similarity_threshold
        return DuplicateCheck(
            is_duplicate=is_duplicate,
            top_score=top.score,
            match_id=top.id if is_duplicate else None,
            similar_tickets=candidates,
        )

    async def check_ticket(
        self,
        embedding: List[float],
        category: Optional[str],
        exclude_id: Optional[str] = None,
        k: int = 5
    ) -> DuplicateCheck:
        candidates = await self.similar_open_tickets(embedding, category, exclude_id, k)
        check = self.evaluate_similarity(candidates)
        logger.info(
            f"Ticket dedupe: {len(candidates)} candidate(s), top_score={check.top_score}, "
            f"duplicate={check.is_duplicate}"
        )
        return check
