"""
Operational metrics summary route
"""
from fastapi import APIRouter, Depends, Query

from elasticops.dependencies import get_orchestrator
from elasticops.services.metrics import MetricsSummary
from elasticops.services.orchestrator import WorkflowOrchestrator
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("", response_model=MetricsSummary)
async def get_metrics(
    days: int = Query(7, ge=1, le=365),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
):
    """Per-metric totals and averages, plus per-category totals, over the last ``days``"""
    summary = await orchestrator.metrics.summary(days)
    logger.info(f"Metrics summary over {days}d: {len(summary.metrics)} metric names")
    return summary
