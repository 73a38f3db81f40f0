"""
Metrics Recorder - fire-and-forget counters/gauges in ``ops-metrics``

Writes never fail a caller; ``summary`` reads totals and averages back per
metric name and per category over a trailing number of days.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from elasticops.models.queries import RangeFilter, StatsAggregation, TermsStats
from elasticops.models.schemas import Collections, Metric, to_iso, utcnow
from elasticops.services.document_store import DocumentStore
from elasticops.services.side_effects import SideEffectResult, run_non_critical


SUMMARY_METRIC_BUCKETS = 50
SUMMARY_CATEGORY_BUCKETS = 20


class MetricStats(BaseModel):
    total: float
    avg: Optional[float] = None
    count: int


class MetricsPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    days: int
    start: datetime = Field(..., alias="from")
    end: datetime = Field(..., alias="to")


class MetricsSummary(BaseModel):
    period: MetricsPeriod
    metrics: Dict[str, MetricStats] = Field(default_factory=dict)
    categories: Dict[str, float] = Field(default_factory=dict, description="Summed value per category")


def new_metric_id() -> str:
    return f"metric_{uuid4().hex}"


def metric_unit(metric_name: str) -> str:
    """Unit derived from the metric name suffix"""
    if "seconds" in metric_name:
        return "seconds"
    if "minutes" in metric_name:
        return "minutes"
    return "count"


class MetricsRecorder:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def write(
        self,
        metric_name: str,
        value: float,
        category: Optional[str] = None,
        ref_id: Optional[str] = None,
        ref_type: Optional[str] = None,
        metric_type: str = "operations",
        tags: Optional[List[str]] = None
    ) -> SideEffectResult:
        metric = Metric(
            metric_name=metric_name,
            value=value,
            unit=metric_unit(metric_name),
            metric_type=metric_type,
            category=category or "general",
            ref_id=ref_id,
            ref_type=ref_type,
            tags=tags or ["automated"],
        )
        return await run_non_critical(
            f"metric:{metric_name}",
            self.store.write(
                Collections.OPS_METRICS,
                metric.model_dump(mode="json"),
                doc_id=new_metric_id(),
                create_only=True,
            ),
        )

    async def summary(self, days: int = 7) -> MetricsSummary:
        """
        Totals over the trailing ``days``

        Raises:
            UpstreamUnavailableError: The aggregation failed; unlike writes,
                reads are not swallowed
        """
        end = utcnow()
        start = end - timedelta(days=days)
        aggregation = StatsAggregation(
            filters=[RangeFilter(field="timestamp", gte=to_iso(start), lte=to_iso(end))],
            groups={
                "by_metric_name": TermsStats(field="metric_name", size=SUMMARY_METRIC_BUCKETS),
                "by_category": TermsStats(field="category", size=SUMMARY_CATEGORY_BUCKETS),
            },
        )
        buckets = await self.store.summarize(Collections.OPS_METRICS, aggregation)

        return MetricsSummary(
            period=MetricsPeriod(days=days, start=start, end=end),
            metrics={
                str(bucket.key): MetricStats(total=bucket.total, avg=bucket.avg, count=bucket.count)
                for bucket in buckets.get("by_metric_name", [])
            },
            categories={str(bucket.key): bucket.total for bucket in buckets.get("by_category", [])},
        )
