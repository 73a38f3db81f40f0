"""
Run timeline route
"""
from fastapi import APIRouter, Depends, HTTPException, status

from elasticops.dependencies import get_orchestrator
from elasticops.models.schemas import OpsRun
from elasticops.services.orchestrator import WorkflowOrchestrator

router = APIRouter(prefix="/api/timeline", tags=["timeline"])


@router.get("/{ref_id}", response_model=OpsRun)
async def get_timeline(
    ref_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
):
    """Latest OpsRun recorded for an incident or ticket"""
    run = await orchestrator.get_timeline(ref_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Timeline not found for this ID"
        )
    return run
