"""
Agent tool routes

``create_or_update_ticket`` refuses to write without at least two distinct
citations (400), independent of any workflow-side gate.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from elasticops.dependencies import get_ticket_tools
from elasticops.exceptions import NotFoundError
from elasticops.services.ticket_tools import TicketToolRequest, TicketToolResult, TicketToolService

router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.post("/create_or_update_ticket", response_model=TicketToolResult)
async def create_or_update_ticket(
    request: TicketToolRequest,
    tools: TicketToolService = Depends(get_ticket_tools)
):
    try:
        result = await tools.create_or_update(request)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.gate.reason)
    return result
