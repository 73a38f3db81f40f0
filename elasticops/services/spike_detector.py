"""
Spike Detector

Counts ERROR events per (service, env) in the trailing window of the
``logs-app`` collection and reports groups at or above the threshold.
"""
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

from elasticops.models.queries import SearchHit
from elasticops.models.schemas import Collections, utcnow
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import (
    build_spike_aggregation,
    build_spike_evidence_search,
)
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

SPIKE_WINDOW = timedelta(minutes=5)
SPIKE_ERROR_THRESHOLD = 40


class Spike(NamedTuple):
    """Error-rate anomaly for one (service, environment)"""
    count: int
    service: str
    environment: str


class SpikeDetector:
    """Windowed error-rate aggregation over the application log collection"""

    def __init__(
        self,
        store: DocumentStore,
        window: timedelta = SPIKE_WINDOW,
        threshold: int = SPIKE_ERROR_THRESHOLD,
        collection: str = Collections.LOGS
    ):
        self.store = store
        self.window = window
        self.threshold = threshold
        self.collection = collection

    async def detect(self) -> List[Spike]:
        """
        Detect error spikes in the trailing window

        Returns:
            Spikes sorted by error count, highest first
        """
        aggregation = build_spike_aggregation(self.window, self.threshold)
        groups = await self.store.aggregate(self.collection, aggregation)

        spikes = [
            Spike(int(group.count), str(group.keys["service"]), str(group.keys["env"]))
            for group in groups
            if group.count >= self.threshold
        ]
        spikes.sort(key=lambda spike: spike.count, reverse=True)

        logger.info(
            f"Spike scan over {int(self.window.total_seconds())}s window found "
            f"{len(spikes)} spike(s) (threshold={self.threshold})"
        )
        return spikes

    async def sample_events(
        self,
        spike: Spike,
        size: int = 5,
        now: Optional[datetime] = None
    ) -> List[SearchHit]:
        """Most recent error events behind a spike, used as evidence"""
        since = (now or utcnow()) - self.window
        query = build_spike_evidence_search(spike.service, spike.environment, since, size)
        response = await self.store.search(self.collection, query)
        return response.hits
