"""
Document store port

Workflows depend on this interface only; the concrete client is constructed
once and injected (see ``elasticops.dependencies``), so tests can pass an
in-memory double.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List

from elasticops.models.queries import (
    Visibility,
    Query,
    SearchResponse,
    RateAggregation,
    GroupCount,
    StatsAggregation,
    BucketStats,
)


class DocumentStore(ABC):
    """Indexed read/write/search against named collections"""

    @abstractmethod
    async def write(
        self,
        collection: str,
        body: Dict[str, Any],
        doc_id: Optional[str] = None,
        visibility: Visibility = Visibility.DEFAULT,
        create_only: bool = False
    ) -> str:
        """
        Index a document and return its effective id.

        With ``create_only`` the write fails instead of overwriting an
        existing ``doc_id``, which makes a retried write idempotent.
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        visibility: Visibility = Visibility.DEFAULT
    ) -> None:
        """Partially update a document. Raises NotFoundError if absent."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document body, or None when it does not exist."""

    @abstractmethod
    async def search(self, collection: str, query: Query) -> SearchResponse:
        """Run a filter, lexical or vector query and return ranked hits."""

    @abstractmethod
    async def aggregate(
        self,
        collection: str,
        aggregation: RateAggregation
    ) -> List[GroupCount]:
        """Run a windowed group-by count."""

    @abstractmethod
    async def summarize(
        self,
        collection: str,
        aggregation: StatsAggregation
    ) -> Dict[str, List[BucketStats]]:
        """Run named terms/sum/avg groupings; returns buckets per group name."""
