"""
Ticket read routes
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from elasticops.dependencies import get_document_store
from elasticops.models.schemas import Collections
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import build_ticket_search

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


class TicketListResponse(BaseModel):
    tickets: List[Dict[str, Any]]
    total: int
    offset: int
    size: int


def split_csv(value: Optional[str]) -> Optional[List[str]]:
    """'open,in_progress' -> ['open', 'in_progress']"""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def without_embedding(doc_id: str, source: Dict[str, Any]) -> Dict[str, Any]:
    body = {key: value for key, value in source.items() if key != "embedding"}
    return {"id": doc_id, **body}


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = None,
    severity: Optional[str] = None,
    priority: Optional[str] = None,
    offset: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=500),
    store: DocumentStore = Depends(get_document_store)
):
    """List tickets, newest first. Filters take comma-separated values."""
    query = build_ticket_search(
        status=split_csv(status_filter),
        category=split_csv(category),
        severity=split_csv(severity),
        priority=split_csv(priority),
        offset=offset,
        size=size,
    )
    response = await store.search(Collections.TICKETS, query)
    return TicketListResponse(
        tickets=[without_embedding(hit.id, hit.source) for hit in response.hits],
        total=response.total,
        offset=offset,
        size=size,
    )


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: str, store: DocumentStore = Depends(get_document_store)):
    source = await store.get(Collections.TICKETS, ticket_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return without_embedding(ticket_id, source)
