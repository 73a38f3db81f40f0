"""
Incident detection workflow - LangGraph assembly

Flow:
1. START → detect_spike
2. detect_spike → (END | check_existing)
3. check_existing → (END on duplicate | create_incident)
4. create_incident → (END when the gate withholds | retrieve_resolutions)
5. retrieve_resolutions → create_ticket → write_metrics → END
"""
from typing import Literal, Dict, Any, List

from langgraph.graph import StateGraph, END

from elasticops.agents.utils import (
    add_tag,
    gate_summary,
    hit_summary,
    new_document_id,
    resolution_citations,
    split_metric_results,
)
from elasticops.models.graph_state import IncidentDetectionState
from elasticops.models.queries import Visibility
from elasticops.models.schemas import (
    Citation,
    Collections,
    Entities,
    Incident,
    IncidentSeverity,
    Ticket,
    WorkflowOutcome,
    utcnow,
)
from elasticops.models.steps import (
    CheckExistingStep,
    CreateIncidentStep,
    CreateTicketStep,
    DetectSpikeStep,
    RetrieveResolutionsStep,
    WriteMetricsStep,
)
from elasticops.services.citation_gate import CitationGate
from elasticops.services.deduplication import DeduplicationGate
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import Embedder
from elasticops.services.metrics import MetricsRecorder
from elasticops.services.search_templates import build_resolution_search
from elasticops.services.spike_detector import SpikeDetector
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

WORKFLOW_NAME = "incident_detection"
CRITICAL_ERROR_COUNT = 500
AUTO_DETECTION_MTTA_SECONDS = 30


def spike_condition(state: IncidentDetectionState) -> Literal["check_existing", "__end__"]:
    if state.get("spike") is None:
        logger.info("No spike detected, ending workflow")
        return END
    return "check_existing"


def existing_condition(state: IncidentDetectionState) -> Literal["create_incident", "__end__"]:
    if state.get("existing_incident_id"):
        logger.info("Incident already open, duplicate prevented")
        return END
    return "create_incident"


def incident_condition(state: IncidentDetectionState) -> Literal["retrieve_resolutions", "__end__"]:
    if not state.get("incident_id"):
        logger.info("Incident creation withheld, ending workflow")
        return END
    return "retrieve_resolutions"


class IncidentDetectionWorkflow:
    """
    Spike → dedup → incident → resolutions → ticket → metrics

    Incident and ticket writes request immediate visibility so a concurrent
    detection cycle sees them in its dedup check.
    """

    name = WORKFLOW_NAME

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        spike_detector: SpikeDetector,
        dedup_gate: DeduplicationGate,
        citation_gate: CitationGate,
        metrics: MetricsRecorder,
        resolution_k: int = 5,
        evidence_size: int = 5
    ):
        self.store = store
        self.embedder = embedder
        self.spike_detector = spike_detector
        self.dedup_gate = dedup_gate
        self.citation_gate = citation_gate
        self.metrics = metrics
        self.resolution_k = resolution_k
        self.evidence_size = evidence_size

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def detect_spike(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        started_at = utcnow()

        spikes = await self.spike_detector.detect()
        if not spikes:
            run.record(DetectSpikeStep(started_at=started_at, spikes_found=0))
            return {"spike": None, "spikes_found": 0, "evidence": []}

        spike = spikes[0]
        events = await self.spike_detector.sample_events(spike, size=self.evidence_size)
        evidence = [
            Citation(
                source_collection=Collections.LOGS,
                document_id=hit.id,
                highlight=hit.source.get("message"),
            )
            for hit in events
        ]

        run.record(DetectSpikeStep(
            started_at=started_at,
            spikes_found=len(spikes),
            service=spike.service,
            environment=spike.environment,
            error_count=spike.count,
            evidence=evidence,
        ))
        logger.info(f"Spike: {spike.count} errors in {spike.service} ({spike.environment})")
        return {"spike": spike, "spikes_found": len(spikes), "evidence": evidence}

    async def check_existing(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        spike = state["spike"]
        started_at = utcnow()

        existing = await self.dedup_gate.find_open_incident(spike.service, spike.environment)
        existing_id = existing.id if existing else None
        if existing_id:
            run.ref_id = existing_id

        run.record(CheckExistingStep(
            started_at=started_at,
            window_minutes=int(self.dedup_gate.incident_window.total_seconds() // 60),
            duplicate=existing_id is not None,
            existing_incident_id=existing_id,
        ))
        return {"existing_incident_id": existing_id}

    async def create_incident(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        spike = state["spike"]
        started_at = utcnow()

        decision = self.citation_gate.evaluate("create_incident", state.get("evidence", []))
        if not decision.permitted:
            run.record(CreateIncidentStep(
                started_at=started_at,
                service=spike.service,
                environment=spike.environment,
                error_count=spike.count,
                gate=gate_summary(decision),
            ))
            return {"incident_id": None, "incident": None, "incident_gate": decision}

        title = f"Error spike in {spike.service}"
        summary = (
            f"High error rate detected: {spike.count} errors in "
            f"{spike.service} ({spike.environment})"
        )
        severity = (
            IncidentSeverity.CRITICAL if spike.count >= CRITICAL_ERROR_COUNT
            else IncidentSeverity.HIGH
        )
        incident = Incident(
            incident_id=new_document_id("INC"),
            title=title,
            summary=summary,
            service=spike.service,
            environment=spike.environment,
            severity=severity,
            error_count=spike.count,
            embedding=self.embedder.embed(f"{title} {summary}"),
            tags=["auto-detected", spike.service, spike.environment],
        )

        incident_id = await self.store.write(
            Collections.INCIDENTS,
            incident.model_dump(mode="json"),
            doc_id=incident.incident_id,
            visibility=Visibility.IMMEDIATE,
        )
        run.ref_id = incident_id

        run.record(CreateIncidentStep(
            started_at=started_at,
            service=spike.service,
            environment=spike.environment,
            error_count=spike.count,
            gate=gate_summary(decision),
            incident_id=incident_id,
            severity=incident.severity,
        ))
        logger.info(f"Created incident {incident_id} ({incident.severity})")
        return {
            "incident_id": incident_id,
            "incident": incident.model_dump(mode="json"),
            "incident_gate": decision,
        }

    async def retrieve_resolutions(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        incident = state["incident"]
        started_at = utcnow()

        query = build_resolution_search(
            incident["embedding"],
            category="incident",
            severity=incident["severity"],
            k=self.resolution_k,
        )
        response = await self.store.search(Collections.RESOLUTIONS, query)

        run.record(RetrieveResolutionsStep(
            started_at=started_at,
            resolutions_found=len(response.hits),
            top_resolutions=[hit_summary(hit, "title") for hit in response.hits],
        ))
        return {"resolution_hits": response.hits}

    async def create_ticket(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        incident = state["incident"]
        incident_id = state["incident_id"]
        started_at = utcnow()

        citations: List[Citation] = list(state.get("evidence", []))
        citations.append(Citation(
            source_collection=Collections.INCIDENTS,
            document_id=incident_id,
            highlight=incident["title"],
        ))
        citations.extend(resolution_citations(state.get("resolution_hits", [])))

        decision = self.citation_gate.evaluate("create_ticket", citations)
        if not decision.permitted:
            run.record(CreateTicketStep(
                started_at=started_at,
                gate=gate_summary(decision),
                citations=decision.citations,
            ))
            return {"created_ticket_id": None, "ticket_gate": decision}

        subject = f"Incident: {incident['title']}"
        description = (
            f"{incident['summary']}\n\n"
            f"Detected at: {incident['detected_at']}\n"
            f"Service: {incident['service']}\n"
            f"Environment: {incident['environment']}\n"
            f"Error count: {incident['error_count']}"
        )
        severity = incident["severity"]
        ticket = Ticket(
            ticket_id=new_document_id("TKT-INC"),
            subject=subject,
            description=description,
            category="incident",
            severity=severity,
            priority="p1" if severity == IncidentSeverity.CRITICAL.value else "p2",
            channel="system",
            customer_id="SYSTEM",
            tags=add_tag(["incident", "auto-created"], incident["service"]),
            incident_ref=incident_id,
        )
        ticket.embedding = self.embedder.embed(ticket.text)

        ticket_id = await self.store.write(
            Collections.TICKETS,
            ticket.model_dump(mode="json", exclude_none=True),
            doc_id=ticket.ticket_id,
            visibility=Visibility.IMMEDIATE,
        )

        run.record(CreateTicketStep(
            started_at=started_at,
            gate=gate_summary(decision),
            ticket_id=ticket_id,
            citations=decision.citations,
        ))
        logger.info(f"Created ticket {ticket_id} for incident {incident_id}")
        return {"created_ticket_id": ticket_id, "ticket_gate": decision}

    async def write_metrics(self, state: IncidentDetectionState) -> Dict[str, Any]:
        run = state["run"]
        started_at = utcnow()

        result = await self.metrics.write(
            "mtta_seconds",
            AUTO_DETECTION_MTTA_SECONDS,
            category="incident",
            ref_id=state["incident_id"],
            ref_type="incident",
            metric_type="performance",
        )
        written, failed = split_metric_results([result])

        run.record(WriteMetricsStep(
            started_at=started_at,
            metrics_written=written,
            metrics_failed=failed,
        ))
        return {"metrics_written": written}

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def build_graph(self) -> StateGraph:
        graph = StateGraph(IncidentDetectionState)

        graph.add_node("detect_spike", self.detect_spike)
        graph.add_node("check_existing", self.check_existing)
        graph.add_node("create_incident", self.create_incident)
        graph.add_node("retrieve_resolutions", self.retrieve_resolutions)
        graph.add_node("create_ticket", self.create_ticket)
        graph.add_node("write_metrics", self.write_metrics)

        graph.set_entry_point("detect_spike")

        graph.add_conditional_edges(
            "detect_spike",
            spike_condition,
            {"check_existing": "check_existing", END: END}
        )
        graph.add_conditional_edges(
            "check_existing",
            existing_condition,
            {"create_incident": "create_incident", END: END}
        )
        graph.add_conditional_edges(
            "create_incident",
            incident_condition,
            {"retrieve_resolutions": "retrieve_resolutions", END: END}
        )
        graph.add_edge("retrieve_resolutions", "create_ticket")
        graph.add_edge("create_ticket", "write_metrics")
        graph.add_edge("write_metrics", END)

        logger.info("Incident detection graph built")
        return graph

    def compile(self):
        return self.build_graph().compile()

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------

    def build_outcome(self, run, state: IncidentDetectionState) -> WorkflowOutcome:
        spike = state.get("spike")
        window_minutes = int(self.spike_detector.window.total_seconds() // 60)

        if spike is None:
            return WorkflowOutcome(
                ok=True,
                run_id=run.run_id,
                workflow=self.name,
                summary=f"No error spikes detected in the last {window_minutes} minutes",
                confidence="low",
                metrics={"spikes_found": 0},
            )

        outputs = {
            "service": spike.service,
            "environment": spike.environment,
            "error_count": spike.count,
        }
        existing_id = state.get("existing_incident_id")
        if existing_id:
            return WorkflowOutcome(
                ok=True,
                run_id=run.run_id,
                workflow=self.name,
                summary=(
                    f"Duplicate prevented: incident {existing_id} is already open for "
                    f"{spike.service} ({spike.environment})"
                ),
                recommended_action=f"Continue working incident {existing_id}",
                entities=Entities(incident_id=existing_id),
                citations=state.get("evidence", []),
                confidence="high",
                duplicate_prevented=True,
                outputs=outputs,
                metrics={"spikes_found": state.get("spikes_found", 0)},
            )

        incident_id = state.get("incident_id")
        if not incident_id:
            decision = state["incident_gate"]
            return WorkflowOutcome(
                ok=True,
                run_id=run.run_id,
                workflow=self.name,
                summary=(
                    f"Spike in {spike.service} ({spike.environment}) not escalated: "
                    f"{decision.reason}"
                ),
                recommended_action="Manual review required - insufficient evidence to open an incident",
                citations=decision.citations,
                confidence="low",
                outputs=outputs,
                metrics={"spikes_found": state.get("spikes_found", 0)},
            )

        ticket_decision = state["ticket_gate"]
        outputs["severity"] = state["incident"]["severity"]
        ticket_id = state.get("created_ticket_id")
        summary = (
            f"Created incident {incident_id} for {spike.count} errors in "
            f"{spike.service} ({spike.environment})"
        )
        if ticket_id:
            summary += f" and ticket {ticket_id}"
            recommended_action = f"Work ticket {ticket_id} using the cited resolutions"
        else:
            recommended_action = "Manual review required - incident ticket withheld"

        return WorkflowOutcome(
            ok=True,
            run_id=run.run_id,
            workflow=self.name,
            summary=summary,
            recommended_action=recommended_action,
            entities=Entities(incident_id=incident_id, ticket_id=ticket_id),
            citations=ticket_decision.citations,
            confidence=ticket_decision.confidence,
            outputs=outputs,
            metrics={
                "spikes_found": state.get("spikes_found", 0),
                "resolutions_found": len(state.get("resolution_hits", [])),
                "citations_count": ticket_decision.citation_count,
                "metrics_written": state.get("metrics_written", []),
            },
        )
