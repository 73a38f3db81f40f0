"""
Evidence-gated ticket intake (copilot) - LangGraph assembly

Flow:
1. START → embed → retrieve_kb → search_tickets → collect_citations
2. collect_citations → (END when the gate withholds | create_ticket)
3. create_ticket → write_metrics → END
"""
from typing import Literal, Dict, Any

from langgraph.graph import StateGraph, END

from elasticops.agents.classifier import classify_text
from elasticops.agents.utils import (
    gate_summary,
    hit_summary,
    kb_citations,
    new_document_id,
    split_metric_results,
    ticket_citations,
)
from elasticops.models.graph_state import TicketIntakeState
from elasticops.models.queries import Visibility
from elasticops.models.schemas import (
    Collections,
    Entities,
    Ticket,
    WorkflowOutcome,
    utcnow,
)
from elasticops.models.steps import (
    ClassifyStep,
    CollectCitationsStep,
    CreateTicketStep,
    EmbedStep,
    RetrieveKBStep,
    SearchTicketsStep,
    WriteMetricsStep,
)
from elasticops.services.citation_gate import CitationGate
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import Embedder
from elasticops.services.hybrid_search import HybridSearchService
from elasticops.services.metrics import MetricsRecorder
from elasticops.services.search_templates import KB_FIELDS, build_ticket_dedupe_search
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

WORKFLOW_NAME = "copilot_create_ticket"
INTAKE_CHANNEL = "copilot-ui"
INTAKE_TAGS = ["copilot-created", "evidence-gated"]


def citation_condition(state: TicketIntakeState) -> Literal["create_ticket", "__end__"]:
    if not state["gate_decision"].permitted:
        logger.info("Insufficient evidence, ticket not created")
        return END
    return "create_ticket"


class TicketIntakeWorkflow:
    """Creates a ticket only when KB articles and similar tickets back it up"""

    name = WORKFLOW_NAME

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        hybrid_search: HybridSearchService,
        citation_gate: CitationGate,
        metrics: MetricsRecorder,
        evidence_k: int = 2
    ):
        self.store = store
        self.embedder = embedder
        self.hybrid_search = hybrid_search
        self.citation_gate = citation_gate
        self.metrics = metrics
        self.evidence_k = evidence_k

    @staticmethod
    def _text(state: TicketIntakeState) -> str:
        return f"{state['subject']} {state['description']}".strip()

    async def embed(self, state: TicketIntakeState) -> Dict[str, Any]:
        started_at = utcnow()
        embedding = self.embedder.embed(self._text(state))
        state["run"].record(EmbedStep(started_at=started_at, dims=len(embedding)))
        return {"embedding": embedding}

    async def retrieve_kb(self, state: TicketIntakeState) -> Dict[str, Any]:
        started_at = utcnow()
        hits = await self.hybrid_search.search(
            Collections.KB_ARTICLES,
            self._text(state),
            state["embedding"],
            KB_FIELDS,
            top_k=self.evidence_k,
        )
        state["run"].record(RetrieveKBStep(
            started_at=started_at,
            articles_found=len(hits),
            top_articles=[hit_summary(hit, "title") for hit in hits],
        ))
        return {"kb_hits": hits}

    async def search_tickets(self, state: TicketIntakeState) -> Dict[str, Any]:
        started_at = utcnow()
        query = build_ticket_dedupe_search(state["embedding"], k=self.evidence_k)
        response = await self.store.search(Collections.TICKETS, query)
        hits = response.hits[:self.evidence_k]
        state["run"].record(SearchTicketsStep(started_at=started_at, hits=len(hits)))
        return {"similar_ticket_hits": hits}

    async def collect_citations(self, state: TicketIntakeState) -> Dict[str, Any]:
        started_at = utcnow()
        citations = (
            kb_citations(state.get("kb_hits", []), limit=self.evidence_k)
            + ticket_citations(state.get("similar_ticket_hits", []), limit=self.evidence_k)
        )
        decision = self.citation_gate.evaluate("create_ticket", citations)
        state["run"].record(CollectCitationsStep(
            started_at=started_at,
            count=decision.citation_count,
            gate=gate_summary(decision),
        ))
        return {"citations": decision.citations, "gate_decision": decision}

    async def create_ticket(self, state: TicketIntakeState) -> Dict[str, Any]:
        run = state["run"]
        decision = state["gate_decision"]
        started_at = utcnow()

        classification = classify_text(state["subject"], state["description"])
        run.record(ClassifyStep(started_at=started_at, **classification.model_dump()))

        ticket = Ticket(
            ticket_id=new_document_id("TKT"),
            subject=state["subject"],
            description=state["description"],
            category=classification.category,
            severity=classification.severity,
            priority=classification.priority,
            channel=INTAKE_CHANNEL,
            customer_id="SYSTEM",
            tags=list(INTAKE_TAGS),
            embedding=state["embedding"],
        )
        ticket_id = await self.store.write(
            Collections.TICKETS,
            ticket.model_dump(mode="json", exclude_none=True),
            doc_id=ticket.ticket_id,
            visibility=Visibility.IMMEDIATE,
        )
        run.ref_id = ticket_id

        run.record(CreateTicketStep(
            started_at=started_at,
            gate=gate_summary(decision),
            ticket_id=ticket_id,
            citations=decision.citations,
        ))
        logger.info(f"Created ticket {ticket_id} with {decision.citation_count} citations")
        return {"classification": classification, "created_ticket_id": ticket_id}

    async def write_metrics(self, state: TicketIntakeState) -> Dict[str, Any]:
        started_at = utcnow()
        result = await self.metrics.write(
            "ticket_created_via_copilot",
            1,
            category=state["classification"].category,
            ref_id=state["created_ticket_id"],
            ref_type="ticket",
            tags=["copilot", "evidence-gated"],
        )
        written, failed = split_metric_results([result])
        state["run"].record(WriteMetricsStep(
            started_at=started_at,
            metrics_written=written,
            metrics_failed=failed,
        ))
        return {"metrics_written": written}

    def build_graph(self) -> StateGraph:
        graph = StateGraph(TicketIntakeState)

        graph.add_node("embed", self.embed)
        graph.add_node("retrieve_kb", self.retrieve_kb)
        graph.add_node("search_tickets", self.search_tickets)
        graph.add_node("collect_citations", self.collect_citations)
        graph.add_node("create_ticket", self.create_ticket)
        graph.add_node("write_metrics", self.write_metrics)

        graph.set_entry_point("embed")
        graph.add_edge("embed", "retrieve_kb")
        graph.add_edge("retrieve_kb", "search_tickets")
        graph.add_edge("search_tickets", "collect_citations")
        graph.add_conditional_edges(
            "collect_citations",
            citation_condition,
            {"create_ticket": "create_ticket", END: END}
        )
        graph.add_edge("create_ticket", "write_metrics")
        graph.add_edge("write_metrics", END)

        logger.info("Ticket intake graph built")
        return graph

    def compile(self):
        return self.build_graph().compile()

    def build_outcome(self, run, state: TicketIntakeState) -> WorkflowOutcome:
        decision = state["gate_decision"]
        metrics = {
            "citations_count": decision.citation_count,
            "kb_results": len(state.get("kb_hits", [])),
            "ticket_results": len(state.get("similar_ticket_hits", [])),
        }

        ticket_id = state.get("created_ticket_id")
        if not ticket_id:
            return WorkflowOutcome(
                ok=True,
                run_id=run.run_id,
                workflow=self.name,
                summary="Insufficient evidence to create ticket",
                recommended_action=(
                    f"Manual review required - less than "
                    f"{self.citation_gate.min_citations} citations found"
                ),
                citations=decision.citations,
                confidence="low",
                metrics=metrics,
            )

        classification = state["classification"]
        metrics["metrics_written"] = state.get("metrics_written", [])
        return WorkflowOutcome(
            ok=True,
            run_id=run.run_id,
            workflow=self.name,
            summary=f"Created ticket {ticket_id} with {decision.citation_count} citations",
            recommended_action="Ticket created with sufficient evidence",
            entities=Entities(ticket_id=ticket_id),
            citations=decision.citations,
            confidence=decision.confidence,
            outputs=classification.model_dump(),
            metrics=metrics,
        )
