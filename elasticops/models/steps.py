"""
Typed step records

Each workflow stage produces one record. Records are kept as models while the
run is in flight and only turned into the OpsRun ``steps`` map when the audit
record is written.
"""
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from elasticops.models.schemas import Citation, utcnow


class StepRecord(BaseModel):
    """Base step: entry and exit timestamps"""
    name: ClassVar[str] = "step"

    started_at: datetime
    completed_at: datetime = Field(default_factory=utcnow)

    def to_audit(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class GateSummary(BaseModel):
    permitted: bool
    confidence: str
    citation_count: int
    reason: Optional[str] = None


# ----------------------------------------------------------------------------
# Shared stages
# ----------------------------------------------------------------------------

class RetrieveResolutionsStep(StepRecord):
    name: ClassVar[str] = "retrieve_resolutions"
    resolutions_found: int
    top_resolutions: List[Dict[str, Any]] = Field(default_factory=list)


class WriteMetricsStep(StepRecord):
    name: ClassVar[str] = "write_metrics"
    metrics_written: List[str] = Field(default_factory=list)
    metrics_failed: List[str] = Field(default_factory=list)


class EmbedStep(StepRecord):
    name: ClassVar[str] = "embed"
    dims: int


class RetrieveKBStep(StepRecord):
    name: ClassVar[str] = "retrieve_kb"
    articles_found: int
    top_articles: List[Dict[str, Any]] = Field(default_factory=list)


# ----------------------------------------------------------------------------
# Incident detection
# ----------------------------------------------------------------------------

class DetectSpikeStep(StepRecord):
    name: ClassVar[str] = "detect_spike"
    spikes_found: int
    service: Optional[str] = None
    environment: Optional[str] = None
    error_count: Optional[int] = None
    evidence: List[Citation] = Field(default_factory=list)


class CheckExistingStep(StepRecord):
    name: ClassVar[str] = "check_existing"
    window_minutes: int
    duplicate: bool
    existing_incident_id: Optional[str] = None


class CreateIncidentStep(StepRecord):
    name: ClassVar[str] = "create_incident"
    service: str
    environment: str
    error_count: int
    gate: GateSummary
    incident_id: Optional[str] = None
    severity: Optional[str] = None


class CreateTicketStep(StepRecord):
    name: ClassVar[str] = "create_ticket"
    gate: GateSummary
    ticket_id: Optional[str] = None
    citations: List[Citation] = Field(default_factory=list)


# ----------------------------------------------------------------------------
# Ticket triage
# ----------------------------------------------------------------------------

class FetchTicketStep(StepRecord):
    name: ClassVar[str] = "fetch_ticket"
    ticket_id: str
    status: Optional[str] = None


class ClassifyStep(StepRecord):
    name: ClassVar[str] = "classify"
    category: str
    severity: str
    priority: str


class DedupeStep(StepRecord):
    name: ClassVar[str] = "dedupe"
    is_duplicate: bool
    top_score: Optional[float] = None
    similar_tickets: List[Dict[str, Any]] = Field(default_factory=list)


class DraftStep(StepRecord):
    name: ClassVar[str] = "draft"
    customer_message: str
    internal_notes: str
    citations: List[Citation] = Field(default_factory=list)
    confidence: str


class ActStep(StepRecord):
    name: ClassVar[str] = "act"
    action: str
    updated_ticket: Optional[str] = None
    reason: Optional[str] = None


# ----------------------------------------------------------------------------
# Evidence-gated intake
# ----------------------------------------------------------------------------

class SearchTicketsStep(StepRecord):
    name: ClassVar[str] = "search_tickets"
    hits: int


class CollectCitationsStep(StepRecord):
    name: ClassVar[str] = "collect_citations"
    count: int
    gate: GateSummary
