"""
FastAPI dependency providers

One store and one orchestrator per process. Tests replace them through
``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import Depends

from elasticops.config import get_settings
from elasticops.services.document_store import DocumentStore
from elasticops.services.elastic_store import ElasticsearchDocumentStore
from elasticops.services.orchestrator import WorkflowOrchestrator
from elasticops.services.ticket_tools import TicketToolService


@lru_cache()
def get_document_store() -> DocumentStore:
    return ElasticsearchDocumentStore(get_settings())


@lru_cache()
def get_orchestrator() -> WorkflowOrchestrator:
    return WorkflowOrchestrator(get_document_store(), settings=get_settings())


def get_ticket_tools(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TicketToolService:
    return TicketToolService(
        orchestrator.store,
        orchestrator.embedder,
        orchestrator.citation_gate,
        orchestrator.metrics,
    )
