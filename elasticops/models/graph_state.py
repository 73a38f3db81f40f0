"""
LangGraph State Schemas

Nodes return partial updates containing only the keys they own, so the two
parallel retrieval branches of the triage graph never write the same key.
``run`` is the per-run RunContext; nodes append step records to it directly so
the completed step history survives a failing node.
"""
from typing import TypedDict, Optional, List, Any

from elasticops.models.queries import SearchHit
from elasticops.models.schemas import Citation, Classification, Ticket
from elasticops.services.citation_gate import GateDecision
from elasticops.services.deduplication import DuplicateCheck
from elasticops.services.hybrid_search import FusedHit
from elasticops.services.spike_detector import Spike
from elasticops.agents.drafting import Draft


class IncidentDetectionState(TypedDict, total=False):
    """
    Incident detection workflow state.

    State Lifecycle:
        1. detect_spike → spike, evidence
        2. check_existing → existing_incident_id
        3. create_incident → incident_id, incident, incident_gate
        4. retrieve_resolutions → resolution_hits
        5. create_ticket → created_ticket_id, ticket_gate
        6. write_metrics → metrics_written
    """
    run: Any
    spike: Optional[Spike]
    spikes_found: int
    evidence: List[Citation]
    existing_incident_id: Optional[str]
    incident_id: Optional[str]
    incident: Optional[dict]
    incident_gate: Optional[GateDecision]
    resolution_hits: List[SearchHit]
    created_ticket_id: Optional[str]
    ticket_gate: Optional[GateDecision]
    metrics_written: List[str]


class TicketTriageState(TypedDict, total=False):
    """
    Ticket triage workflow state.

    State Lifecycle:
        1. fetch_ticket → ticket
        2. embed → embedding
        3. classify → classification
        4. dedupe → duplicate_check
        5. retrieve_kb ∥ retrieve_resolutions → kb_hits, resolution_hits
        6. draft → draft_result, citations, gate_decision
        7. act → action
        8. write_metrics → metrics_written
    """
    run: Any
    ticket_id: str
    ticket: Optional[Ticket]
    embedding: List[float]
    classification: Optional[Classification]
    duplicate_check: Optional[DuplicateCheck]
    kb_hits: List[FusedHit]
    resolution_hits: List[SearchHit]
    draft_result: Optional[Draft]
    citations: List[Citation]
    gate_decision: Optional[GateDecision]
    action: Optional[str]
    metrics_written: List[str]


class TicketIntakeState(TypedDict, total=False):
    """
    Evidence-gated ticket creation state.

    State Lifecycle:
        1. embed → embedding
        2. retrieve_kb → kb_hits
        3. search_tickets → similar_ticket_hits
        4. collect_citations → citations, gate_decision
        5. create_ticket (gate passed only) → classification, created_ticket_id
        6. write_metrics → metrics_written
    """
    run: Any
    subject: str
    description: str
    embedding: List[float]
    classification: Optional[Classification]
    kb_hits: List[FusedHit]
    similar_ticket_hits: List[SearchHit]
    citations: List[Citation]
    gate_decision: Optional[GateDecision]
    created_ticket_id: Optional[str]
    metrics_written: List[str]
