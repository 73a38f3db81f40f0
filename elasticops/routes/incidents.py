"""
Incident read routes
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from elasticops.dependencies import get_document_store
from elasticops.models.schemas import Collections
from elasticops.routes.tickets import split_csv, without_embedding
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import build_incident_search

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


class IncidentListResponse(BaseModel):
    incidents: List[Dict[str, Any]]
    total: int
    offset: int
    size: int


@router.get("", response_model=IncidentListResponse)
async def list_incidents(
    status_filter: Optional[str] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=500),
    store: DocumentStore = Depends(get_document_store)
):
    """List incidents, newest first; defaults to open and investigating"""
    query = build_incident_search(status=split_csv(status_filter), offset=offset, size=size)
    response = await store.search(Collections.INCIDENTS, query)
    return IncidentListResponse(
        incidents=[without_embedding(hit.id, hit.source) for hit in response.hits],
        total=response.total,
        offset=offset,
        size=size,
    )


@router.get("/{incident_id}")
async def get_incident(incident_id: str, store: DocumentStore = Depends(get_document_store)):
    source = await store.get(Collections.INCIDENTS, incident_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Incident not found")
    return without_embedding(incident_id, source)
