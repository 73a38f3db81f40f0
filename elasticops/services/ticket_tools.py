"""
Citation-gated ticket tool

Create-or-update entry point for external agents. Every call must carry at
least ``min_citations`` distinct citations; the gate is checked before any
write happens.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from elasticops.agents.utils import new_document_id
from elasticops.models.queries import Visibility
from elasticops.models.schemas import (
    Citation,
    Collections,
    Ticket,
    TicketStatus,
    to_iso,
    utcnow,
)
from elasticops.services.citation_gate import CitationGate, GateDecision
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import Embedder
from elasticops.services.metrics import MetricsRecorder
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

# Fields an update may set; anything left as None is not touched
UPDATABLE_FIELDS = (
    "subject",
    "description",
    "category",
    "severity",
    "priority",
    "status",
    "channel",
    "customer_id",
    "assigned_to",
    "customer_message",
    "internal_notes",
    "incident_ref",
    "tags",
)
CLOSING_STATUSES = {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}


class TicketToolRequest(BaseModel):
    """Create when ``id`` is absent, otherwise partial update of ``id``"""
    id: Optional[str] = Field(None, description="Document id of the ticket to update")
    ticket_id: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[TicketStatus] = None
    channel: Optional[str] = None
    customer_id: Optional[str] = None
    assigned_to: Optional[str] = None
    customer_message: Optional[str] = None
    internal_notes: Optional[str] = None
    incident_ref: Optional[str] = None
    tags: Optional[List[str]] = None
    citations: List[Citation] = Field(default_factory=list)


class TicketToolResult(BaseModel):
    success: bool
    action: str
    id: Optional[str] = None
    ticket_id: Optional[str] = None
    gate: GateDecision


class TicketToolService:

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        citation_gate: CitationGate,
        metrics: MetricsRecorder
    ):
        self.store = store
        self.embedder = embedder
        self.citation_gate = citation_gate
        self.metrics = metrics

    def _embedding_for(self, request: TicketToolRequest) -> Optional[List[float]]:
        text = f"{request.subject or ''} {request.description or ''}".strip()
        return self.embedder.embed(text) if text else None

    async def create_or_update(self, request: TicketToolRequest) -> TicketToolResult:
        """
        Apply the request when the citation gate permits it

        Returns:
            TicketToolResult; ``success`` is False and nothing is written when
            the gate withholds the action

        Raises:
            NotFoundError: Update target does not exist
        """
        action = "update_ticket" if request.id else "create_ticket"
        decision = self.citation_gate.evaluate(action, request.citations)
        if not decision.permitted:
            return TicketToolResult(success=False, action="rejected", id=request.id, gate=decision)

        if request.id:
            return await self._update(request, decision)
        return await self._create(request, decision)

    async def _update(self, request: TicketToolRequest, decision: GateDecision) -> TicketToolResult:
        now = to_iso(utcnow())
        fields: Dict[str, Any] = {"updated_at": now}
        for name in UPDATABLE_FIELDS:
            value = getattr(request, name)
            if value is not None:
                fields[name] = value.value if isinstance(value, TicketStatus) else value

        embedding = self._embedding_for(request)
        if embedding is not None:
            fields["embedding"] = embedding
        if fields.get("status") in CLOSING_STATUSES:
            fields["resolved_at"] = now

        await self.store.update(
            Collections.TICKETS,
            request.id,
            fields,
            visibility=Visibility.IMMEDIATE,
        )
        await self.metrics.write(
            "ticket_updated",
            1,
            category=request.category or "unknown",
            ref_id=request.id,
            ref_type="ticket",
        )
        logger.info(f"Tool updated ticket {request.id} ({decision.citation_count} citations)")
        return TicketToolResult(success=True, action="updated", id=request.id, gate=decision)

    async def _create(self, request: TicketToolRequest, decision: GateDecision) -> TicketToolResult:
        ticket = Ticket(
            ticket_id=request.ticket_id or new_document_id("TKT"),
            subject=request.subject or "Untitled Ticket",
            description=request.description or "",
            category=request.category or "general",
            severity=request.severity or "medium",
            priority=request.priority or "p3",
            status=request.status or TicketStatus.OPEN,
            channel=request.channel or "system",
            customer_id=request.customer_id or "SYSTEM",
            assigned_to=request.assigned_to,
            customer_message=request.customer_message,
            internal_notes=request.internal_notes,
            incident_ref=request.incident_ref,
            tags=request.tags or [],
            embedding=self._embedding_for(request),
        )
        doc_id = await self.store.write(
            Collections.TICKETS,
            ticket.model_dump(mode="json", exclude_none=True),
            doc_id=ticket.ticket_id,
            visibility=Visibility.IMMEDIATE,
        )
        await self.metrics.write(
            "ticket_created",
            1,
            category=request.category or "unknown",
            ref_id=doc_id,
            ref_type="ticket",
        )
        logger.info(f"Tool created ticket {doc_id} ({decision.citation_count} citations)")
        return TicketToolResult(
            success=True,
            action="created",
            id=doc_id,
            ticket_id=ticket.ticket_id,
            gate=decision,
        )
