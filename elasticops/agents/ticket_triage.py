"""
Ticket triage workflow - LangGraph assembly

Flow:
1. START → fetch_ticket → embed → classify → dedupe
2. dedupe → retrieve_kb ∥ retrieve_resolutions (fan-out)
3. retrieve_kb + retrieve_resolutions → draft (join)
4. draft → act → write_metrics → END
"""
from typing import Dict, Any, List

from langgraph.graph import StateGraph, END

from elasticops.agents.classifier import classify_text
from elasticops.agents.drafting import draft_response
from elasticops.agents.utils import (
    add_tag,
    hit_summary,
    kb_citations,
    resolution_citations,
    split_metric_results,
)
from elasticops.exceptions import NotFoundError
from elasticops.models.graph_state import TicketTriageState
from elasticops.models.queries import Visibility
from elasticops.models.schemas import (
    Citation,
    Collections,
    Entities,
    Ticket,
    WorkflowOutcome,
    to_iso,
    utcnow,
)
from elasticops.models.steps import (
    ActStep,
    ClassifyStep,
    DedupeStep,
    DraftStep,
    EmbedStep,
    FetchTicketStep,
    RetrieveKBStep,
    RetrieveResolutionsStep,
    WriteMetricsStep,
)
from elasticops.services.citation_gate import CitationGate
from elasticops.services.deduplication import DeduplicationGate
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import Embedder
from elasticops.services.hybrid_search import HybridSearchService
from elasticops.services.metrics import MetricsRecorder
from elasticops.services.search_templates import KB_FIELDS, build_resolution_search
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

WORKFLOW_NAME = "ticket_triage"

ACTION_UPDATED = "updated"
ACTION_TAGGED_DUPLICATE = "tagged_duplicate"
ACTION_FLAGGED = "flagged_for_review"

DUPLICATE_TAG = "potential_duplicate"
REVIEW_TAG = "needs_human_review"
TIME_SAVED_PER_DUPLICATE_MINUTES = 15
TRIAGE_METRIC_TAGS = ["automated", "triage"]


class TicketTriageWorkflow:
    """
    Fetch → embed → classify → dedupe → (KB ∥ resolutions) → draft → act → metrics

    ``act`` picks exactly one branch: tag as duplicate, apply the triage when
    the citation gate passes, or flag for human review.
    """

    name = WORKFLOW_NAME

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        hybrid_search: HybridSearchService,
        dedup_gate: DeduplicationGate,
        citation_gate: CitationGate,
        metrics: MetricsRecorder,
        kb_top_k: int = 5,
        resolution_k: int = 5,
        dedupe_k: int = 5
    ):
        self.store = store
        self.embedder = embedder
        self.hybrid_search = hybrid_search
        self.dedup_gate = dedup_gate
        self.citation_gate = citation_gate
        self.metrics = metrics
        self.kb_top_k = kb_top_k
        self.resolution_k = resolution_k
        self.dedupe_k = dedupe_k

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def fetch_ticket(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        ticket_id = state["ticket_id"]
        started_at = utcnow()

        source = await self.store.get(Collections.TICKETS, ticket_id)
        if source is None:
            raise NotFoundError("ticket", ticket_id)

        ticket = Ticket.from_document(ticket_id, source)
        run.record(FetchTicketStep(started_at=started_at, ticket_id=ticket_id, status=ticket.status))
        return {"ticket": ticket}

    async def embed(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        started_at = utcnow()

        embedding = self.embedder.embed(state["ticket"].text)
        run.record(EmbedStep(started_at=started_at, dims=len(embedding)))
        return {"embedding": embedding}

    async def classify(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        ticket = state["ticket"]
        started_at = utcnow()

        classification = classify_text(
            ticket.subject,
            ticket.description,
            current_category=ticket.category,
            current_severity=ticket.severity,
            current_priority=ticket.priority,
        )
        run.record(ClassifyStep(started_at=started_at, **classification.model_dump()))
        return {"classification": classification}

    async def dedupe(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        started_at = utcnow()

        check = await self.dedup_gate.check_ticket(
            state["embedding"],
            state["classification"].category,
            exclude_id=state["ticket_id"],
            k=self.dedupe_k,
        )
        run.record(DedupeStep(
            started_at=started_at,
            is_duplicate=check.is_duplicate,
            top_score=check.top_score,
            similar_tickets=[ticket.model_dump() for ticket in check.similar_tickets],
        ))
        return {"duplicate_check": check}

    async def retrieve_kb(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        started_at = utcnow()

        hits = await self.hybrid_search.search(
            Collections.KB_ARTICLES,
            state["ticket"].text,
            state["embedding"],
            KB_FIELDS,
            top_k=self.kb_top_k,
        )
        run.record(RetrieveKBStep(
            started_at=started_at,
            articles_found=len(hits),
            top_articles=[
                {**hit_summary(hit, "title"), "highlight": hit.first_highlight("content", "title")}
                for hit in hits
            ],
        ))
        return {"kb_hits": hits}

    async def retrieve_resolutions(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        classification = state["classification"]
        started_at = utcnow()

        query = build_resolution_search(
            state["embedding"],
            category=classification.category,
            severity=classification.severity,
            k=self.resolution_k,
        )
        response = await self.store.search(Collections.RESOLUTIONS, query)

        run.record(RetrieveResolutionsStep(
            started_at=started_at,
            resolutions_found=len(response.hits),
            top_resolutions=[hit_summary(hit, "title", "summary") for hit in response.hits],
        ))
        return {"resolution_hits": response.hits}

    async def draft(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        duplicate = state["duplicate_check"]
        kb_hits = state.get("kb_hits", [])
        resolution_hits = state.get("resolution_hits", [])
        started_at = utcnow()

        citations: List[Citation] = kb_citations(kb_hits) + resolution_citations(resolution_hits)
        if duplicate.is_duplicate:
            match = next(
                (ticket for ticket in duplicate.similar_tickets if ticket.id == duplicate.match_id),
                None,
            )
            citations.append(Citation(
                source_collection=Collections.TICKETS,
                document_id=duplicate.match_id,
                highlight=match.subject if match else None,
            ))

        decision = self.citation_gate.evaluate("update_ticket", citations)
        result = draft_response(
            state["ticket"],
            state["classification"],
            kb_hits,
            resolution_hits,
            duplicate,
            decision,
        )

        run.record(DraftStep(
            started_at=started_at,
            customer_message=result.customer_message,
            internal_notes=result.internal_notes,
            citations=decision.citations,
            confidence=decision.confidence,
        ))
        return {"draft_result": result, "citations": decision.citations, "gate_decision": decision}

    async def act(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        ticket = state["ticket"]
        ticket_id = state["ticket_id"]
        duplicate = state["duplicate_check"]
        decision = state["gate_decision"]
        result = state["draft_result"]
        started_at = utcnow()
        now = to_iso(utcnow())

        if duplicate.is_duplicate:
            fields = {
                "internal_notes": result.internal_notes,
                "tags": add_tag(ticket.tags, DUPLICATE_TAG),
                "updated_at": now,
            }
            action, reason = ACTION_TAGGED_DUPLICATE, None
        elif decision.permitted:
            classification = state["classification"]
            fields = {
                "category": classification.category,
                "severity": classification.severity,
                "priority": classification.priority,
                "customer_message": result.customer_message,
                "internal_notes": result.internal_notes,
                "embedding": state["embedding"],
                "updated_at": now,
            }
            action, reason = ACTION_UPDATED, None
        else:
            fields = {
                "internal_notes": result.internal_notes,
                "tags": add_tag(ticket.tags, REVIEW_TAG),
                "updated_at": now,
            }
            action, reason = ACTION_FLAGGED, decision.reason

        await self.store.update(
            Collections.TICKETS,
            ticket_id,
            fields,
            visibility=Visibility.IMMEDIATE,
        )

        run.record(ActStep(
            started_at=started_at,
            action=action,
            updated_ticket=ticket_id,
            reason=reason,
        ))
        logger.info(f"Triage of {ticket_id}: {action}")
        return {"action": action}

    async def write_metrics(self, state: TicketTriageState) -> Dict[str, Any]:
        run = state["run"]
        ticket_id = state["ticket_id"]
        category = state["classification"].category
        action = state["action"]
        started_at = utcnow()

        pending = []
        if action == ACTION_TAGGED_DUPLICATE:
            pending.append(("duplicates_prevented", 1))
            pending.append(("time_saved_minutes", TIME_SAVED_PER_DUPLICATE_MINUTES))
        elif action == ACTION_UPDATED:
            pending.append(("tickets_auto_triaged", 1))

        results = []
        for metric_name, value in pending:
            results.append(await self.metrics.write(
                metric_name,
                value,
                category=category,
                ref_id=ticket_id,
                ref_type="ticket",
                metric_type="efficiency",
                tags=TRIAGE_METRIC_TAGS,
            ))
        written, failed = split_metric_results(results)

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
        graph = StateGraph(TicketTriageState)

        graph.add_node("fetch_ticket", self.fetch_ticket)
        graph.add_node("embed", self.embed)
        graph.add_node("classify", self.classify)
        graph.add_node("dedupe", self.dedupe)
        graph.add_node("retrieve_kb", self.retrieve_kb)
        graph.add_node("retrieve_resolutions", self.retrieve_resolutions)
        graph.add_node("draft", self.draft)
        graph.add_node("act", self.act)
        graph.add_node("write_metrics", self.write_metrics)

        graph.set_entry_point("fetch_ticket")
        graph.add_edge("fetch_ticket", "embed")
        graph.add_edge("embed", "classify")
        graph.add_edge("classify", "dedupe")

        # Fan out, then join before drafting
        graph.add_edge("dedupe", "retrieve_kb")
        graph.add_edge("dedupe", "retrieve_resolutions")
        graph.add_edge(["retrieve_kb", "retrieve_resolutions"], "draft")

        graph.add_edge("draft", "act")
        graph.add_edge("act", "write_metrics")
        graph.add_edge("write_metrics", END)

        logger.info("Ticket triage graph built")
        return graph

    def compile(self):
        return self.build_graph().compile()

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------

    def build_outcome(self, run, state: TicketTriageState) -> WorkflowOutcome:
        ticket_id = state["ticket_id"]
        classification = state["classification"]
        duplicate = state["duplicate_check"]
        decision = state["gate_decision"]
        action = state["action"]

        if action == ACTION_TAGGED_DUPLICATE:
            summary = f"Ticket {ticket_id} is a likely duplicate of {duplicate.match_id}"
            recommended_action = f"Link or merge with ticket {duplicate.match_id}"
        elif action == ACTION_UPDATED:
            summary = (
                f"Ticket {ticket_id} triaged as {classification.category} "
                f"({classification.severity}, {classification.priority}) "
                f"with {decision.citation_count} citations"
            )
            recommended_action = "Review the drafted customer message and send"
        else:
            summary = f"Ticket {ticket_id} flagged for human review: {decision.reason}"
            recommended_action = "Manual review required - insufficient evidence"

        return WorkflowOutcome(
            ok=True,
            run_id=run.run_id,
            workflow=self.name,
            summary=summary,
            recommended_action=recommended_action,
            entities=Entities(ticket_id=ticket_id),
            citations=decision.citations,
            confidence=decision.confidence,
            duplicate_prevented=duplicate.is_duplicate,
            outputs={
                "action": action,
                "classification": classification.model_dump(),
                "draft": state["draft_result"].model_dump(),
                "updated": action == ACTION_UPDATED,
            },
            metrics={
                "kb_articles_found": len(state.get("kb_hits", [])),
                "resolutions_found": len(state.get("resolution_hits", [])),
                "similar_tickets": len(duplicate.similar_tickets),
                "citations_count": decision.citation_count,
                "metrics_written": state.get("metrics_written", []),
            },
        )
