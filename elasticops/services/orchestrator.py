"""
Workflow Orchestrator Service

Wires the shared components into the three compiled LangGraph workflows and
owns the run lifecycle: one RunContext per trigger, one OpsRun per run,
and a WorkflowOutcome for every run that is not a NotFound.
"""
from datetime import timedelta
from typing import Any, Dict, Optional

from elasticops.agents.incident_detection import IncidentDetectionWorkflow
from elasticops.agents.ticket_intake import TicketIntakeWorkflow
from elasticops.agents.ticket_triage import TicketTriageWorkflow
from elasticops.config import Settings, get_settings
from elasticops.exceptions import NotFoundError
from elasticops.models.schemas import OpsRun, RunStatus, WorkflowOutcome
from elasticops.services.audit import AuditTrailRecorder, RunContext
from elasticops.services.citation_gate import CitationGate
from elasticops.services.deduplication import DeduplicationGate
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import DeterministicEmbedder, Embedder
from elasticops.services.hybrid_search import HybridSearchService
from elasticops.services.metrics import MetricsRecorder
from elasticops.services.spike_detector import SpikeDetector
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowOrchestrator:
    """
    Entry point for the evidence-gated workflows

    Example:
        orchestrator = WorkflowOrchestrator(store)
        outcome = await orchestrator.triage_ticket("TKT-1001")
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Optional[Embedder] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.embedder = embedder or DeterministicEmbedder(self.settings.embed_dims)

        self.hybrid_search = HybridSearchService(store, rrf_k=self.settings.rrf_k)
        self.spike_detector = SpikeDetector(
            store,
            window=timedelta(minutes=self.settings.spike_window_minutes),
            threshold=self.settings.spike_error_threshold,
        )
        self.dedup_gate = DeduplicationGate(
            store,
            incident_window=timedelta(minutes=self.settings.incident_dedup_window_minutes),
            similarity_threshold=self.settings.duplicate_similarity_threshold,
        )
        self.citation_gate = CitationGate(self.settings.min_citations)
        self.metrics = MetricsRecorder(store)
        self.audit = AuditTrailRecorder(store)

        self.incident_detection = IncidentDetectionWorkflow(
            store,
            self.embedder,
            self.spike_detector,
            self.dedup_gate,
            self.citation_gate,
            self.metrics,
        )
        self.ticket_triage = TicketTriageWorkflow(
            store,
            self.embedder,
            self.hybrid_search,
            self.dedup_gate,
            self.citation_gate,
            self.metrics,
        )
        self.ticket_intake = TicketIntakeWorkflow(
            store,
            self.embedder,
            self.hybrid_search,
            self.citation_gate,
            self.metrics,
        )

        self._incident_graph = self.incident_detection.compile()
        self._triage_graph = self.ticket_triage.compile()
        self._intake_graph = self.ticket_intake.compile()

        logger.info("WorkflowOrchestrator initialized")

    async def detect_incidents(self) -> WorkflowOutcome:
        """Scan for error spikes and open an incident plus ticket for the top one"""
        run = RunContext(self.incident_detection.name, ref_type="incident")
        return await self._execute(self.incident_detection, self._incident_graph, run, {})

    async def triage_ticket(self, ticket_id: str) -> WorkflowOutcome:
        """
        Triage one ticket

        Raises:
            NotFoundError: Ticket does not exist (no audit record is written)
        """
        run = RunContext(self.ticket_triage.name, ref_id=ticket_id, ref_type="ticket")
        return await self._execute(
            self.ticket_triage,
            self._triage_graph,
            run,
            {"ticket_id": ticket_id},
        )

    async def create_ticket_with_evidence(self, subject: str, description: str) -> WorkflowOutcome:
        run = RunContext(self.ticket_intake.name, ref_type="ticket")
        return await self._execute(
            self.ticket_intake,
            self._intake_graph,
            run,
            {"subject": subject, "description": description},
        )

    async def get_timeline(self, ref_id: str) -> Optional[OpsRun]:
        """Most recent OpsRun for an incident or ticket id"""
        return await self.audit.latest_for(ref_id)

    async def _execute(
        self,
        workflow: Any,
        graph: Any,
        run: RunContext,
        inputs: Dict[str, Any]
    ) -> WorkflowOutcome:
        logger.info(f"[{run.run_id}] Starting {workflow.name}")
        try:
            state = await graph.ainvoke({"run": run, **inputs})
            outcome = workflow.build_outcome(run, state)
            outcome.citation_links = [
                citation.path(self.settings.app_base_url) for citation in outcome.citations
            ]
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"[{run.run_id}] {workflow.name} failed: {e}", exc_info=True)
            await self.audit.record(run.finish(RunStatus.FAILED, error=str(e)))
            return WorkflowOutcome(
                ok=False,
                run_id=run.run_id,
                workflow=workflow.name,
                summary=f"{workflow.name} failed",
                recommended_action="Check the run timeline and retry",
                error=str(e),
            )

        await self.audit.record(run.finish(RunStatus.COMPLETED))
        logger.info(f"[{run.run_id}] {workflow.name} completed: {outcome.summary}")
        return outcome
