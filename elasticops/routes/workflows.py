"""
Workflow trigger routes

Every response body is a WorkflowOutcome. A failed run answers 500 with the
outcome (``ok=False``, ``run_id``, ``error``); a missing ticket answers 404.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from elasticops.dependencies import get_orchestrator
from elasticops.exceptions import NotFoundError
from elasticops.models.schemas import WorkflowOutcome
from elasticops.services.orchestrator import WorkflowOrchestrator
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/run", tags=["workflows"])


class CreateTicketRequest(BaseModel):
    """Evidence-gated ticket intake request"""
    subject: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


def _respond(outcome: WorkflowOutcome):
    if not outcome.ok:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=outcome.model_dump(mode="json"),
        )
    return outcome


@router.post("/incident/detect", response_model=WorkflowOutcome)
async def detect_incident(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """Run one incident detection cycle"""
    return _respond(await orchestrator.detect_incidents())


# Registered before /ticket/{ticket_id} so "create" is not taken as an id
@router.post("/ticket/create", response_model=WorkflowOutcome)
async def create_ticket(
    request: CreateTicketRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
):
    """Create a ticket only when enough evidence backs it"""
    return _respond(
        await orchestrator.create_ticket_with_evidence(request.subject, request.description)
    )


@router.post("/ticket/{ticket_id}", response_model=WorkflowOutcome)
async def triage_ticket(
    ticket_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
):
    """
    Triage a ticket

    Args:
        ticket_id: Ticket document id

    Returns:
        WorkflowOutcome of the triage run
    """
    try:
        outcome = await orchestrator.triage_ticket(ticket_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return _respond(outcome)
