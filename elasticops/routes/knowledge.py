"""
Knowledge read routes

Citation links resolve here: ``/kb/{id}`` and ``/resolution/{id}`` in the UI
load these documents.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from elasticops.dependencies import get_document_store
from elasticops.models.schemas import Collections, KBArticle, Resolution
from elasticops.routes.tickets import without_embedding
from elasticops.services.document_store import DocumentStore

router = APIRouter(prefix="/api", tags=["knowledge"])


@router.get("/resolutions/{resolution_id}")
async def get_resolution(
    resolution_id: str,
    store: DocumentStore = Depends(get_document_store)
) -> Dict[str, Any]:
    source = await store.get(Collections.RESOLUTIONS, resolution_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resolution not found")
    resolution = Resolution.model_validate(source)
    return without_embedding(resolution_id, resolution.model_dump(exclude_none=True))


@router.get("/kb/{article_id}")
async def get_kb_article(
    article_id: str,
    store: DocumentStore = Depends(get_document_store)
) -> Dict[str, Any]:
    source = await store.get(Collections.KB_ARTICLES, article_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="KB article not found")
    article = KBArticle.model_validate(source)
    return without_embedding(article_id, article.model_dump(exclude_none=True))
