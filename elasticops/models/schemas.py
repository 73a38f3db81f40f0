"""
Pydantic models for the ElasticOps triage engine

This module contains the document schemas stored in Elasticsearch plus the
workflow-facing result types. Stored documents are serialized with
``model_dump(mode="json")`` so timestamps land as ISO-8601 strings.

Collections:
- tickets, incidents: written by workflows (immediate visibility)
- kb-articles, resolutions: read-only reference corpora
- logs-app: application error events scanned for spikes
- ops-runs, ops-metrics: audit trail and metrics, append-only
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Literal

from pydantic import BaseModel, Field, ConfigDict


class Collections:
    """Elasticsearch index names"""
    TICKETS = "tickets"
    INCIDENTS = "incidents"
    KB_ARTICLES = "kb-articles"
    RESOLUTIONS = "resolutions"
    LOGS = "logs-app"
    OPS_RUNS = "ops-runs"
    OPS_METRICS = "ops-metrics"


def utcnow() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """ISO-8601 string used in range filters"""
    return value.astimezone(timezone.utc).isoformat()


# ============================================================================
# Enums
# ============================================================================

class TicketStatus(str, Enum):
    """Valid ticket statuses"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class IncidentStatus(str, Enum):
    """Valid incident statuses"""
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class IncidentSeverity(str, Enum):
    """Incidents are only raised at high or critical"""
    HIGH = "high"
    CRITICAL = "critical"


class RunStatus(str, Enum):
    """OpsRun terminal status"""
    COMPLETED = "completed"
    FAILED = "failed"


Confidence = Literal["low", "high"]


# ============================================================================
# Stored documents
# ============================================================================

class Ticket(BaseModel):
    """
    Support ticket document (``tickets`` collection).

    Created by intake (UI, copilot, tool call or incident detection).
    Mutated only by the triage workflow or the create/update tool.
    """
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    ticket_id: str = Field(..., description="Business ticket identifier")
    subject: str = ""
    description: str = ""
    category: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    channel: str = "system"
    customer_id: str = "SYSTEM"
    assigned_to: Optional[str] = None
    embedding: Optional[List[float]] = None
    incident_ref: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    customer_message: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, source: Dict[str, Any]) -> "Ticket":
        """Build a ticket from a stored document, defaulting ticket_id to the doc id"""
        data = dict(source)
        data.setdefault("ticket_id", doc_id)
        return cls.model_validate(data)

    @property
    def text(self) -> str:
        """Subject and description joined for embedding and rules"""
        return f"{self.subject or ''} {self.description or ''}".strip()


class Incident(BaseModel):
    """Incident document (``incidents`` collection)"""
    model_config = ConfigDict(use_enum_values=True)

    incident_id: str
    title: str
    summary: str
    service: str
    environment: str
    severity: IncidentSeverity
    status: IncidentStatus = IncidentStatus.OPEN
    error_count: int = Field(..., ge=0)
    detected_at: datetime = Field(default_factory=utcnow)
    embedding: List[float] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class Resolution(BaseModel):
    """Resolution playbook (read-only)"""
    model_config = ConfigDict(extra="allow")

    title: str
    summary: Optional[str] = None
    steps: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    severity: Optional[str] = None
    embedding: Optional[List[float]] = None


class KBArticle(BaseModel):
    """Knowledge base article (read-only)"""
    model_config = ConfigDict(extra="allow")

    title: str
    content: str = ""
    category: Optional[str] = None
    embedding: Optional[List[float]] = None


# ============================================================================
# Evidence
# ============================================================================

_CITATION_ROUTES = {
    Collections.KB_ARTICLES: ("kb", "KB Article"),
    Collections.RESOLUTIONS: ("resolution", "Resolution"),
    Collections.TICKETS: ("ticket", "Ticket"),
    Collections.INCIDENTS: ("incident", "Incident"),
}


class Citation(BaseModel):
    """Pointer to a piece of evidence; never a copy of it"""
    model_config = ConfigDict(frozen=True)

    source_collection: str
    document_id: str
    highlight: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.source_collection, self.document_id)

    @property
    def label(self) -> str:
        """Display label, e.g. 'KB Article: abc123'"""
        route = _CITATION_ROUTES.get(self.source_collection)
        if route is None:
            return f"{self.source_collection}:{self.document_id}"
        return f"{route[1]}: {self.document_id}"

    def path(self, base_url: str = "") -> str:
        """App link for the cited document, optionally prefixed by ``base_url``"""
        route = _CITATION_ROUTES.get(self.source_collection)
        segment = route[0] if route else self.source_collection
        base_url = (base_url or "").rstrip("/")
        return f"{base_url}/{segment}/{self.document_id}"


class Classification(BaseModel):
    """Rule-table classification result"""
    category: str
    severity: str
    priority: str


# ============================================================================
# Audit and metrics
# ============================================================================

class Metric(BaseModel):
    """Counter/gauge written to ``ops-metrics``"""
    metric_name: str
    value: float
    unit: str = "count"
    metric_type: str = "operations"
    category: str = "general"
    ref_id: Optional[str] = None
    ref_type: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=lambda: ["automated"])


class OpsRun(BaseModel):
    """Append-only audit record of one workflow execution"""
    model_config = ConfigDict(use_enum_values=True)

    run_id: str
    workflow: str
    ref_id: Optional[str] = None
    ref_type: Optional[str] = None
    status: RunStatus
    started_at: datetime
    completed_at: datetime
    duration_ms: int = Field(..., ge=0)
    steps: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    error: Optional[str] = None


# ============================================================================
# Workflow results
# ============================================================================

class Entities(BaseModel):
    """Entities a run created or acted on"""
    incident_id: Optional[str] = None
    ticket_id: Optional[str] = None


class WorkflowOutcome(BaseModel):
    """
    Structured result of one workflow run.

    ``ok`` is False only when the run failed; a withheld action because of
    insufficient evidence is a successful run with ``confidence="low"``.
    """
    ok: bool
    run_id: str
    workflow: str
    summary: str
    recommended_action: Optional[str] = None
    entities: Entities = Field(default_factory=Entities)
    citations: List[Citation] = Field(default_factory=list)
    citation_links: List[str] = Field(default_factory=list, description="App links for ``citations``, same order")
    confidence: Confidence = "low"
    duplicate_prevented: bool = False
    outputs: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
