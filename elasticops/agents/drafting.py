"""
Template-based response drafting

Deterministic text assembly from the classification, the gate decision and
the top evidence. No generation: identical inputs give identical drafts.
"""
from typing import List

from pydantic import BaseModel

from elasticops.models.schemas import Classification, Ticket
from elasticops.services.citation_gate import GateDecision
from elasticops.services.deduplication import DuplicateCheck
from elasticops.services.hybrid_search import FusedHit
from elasticops.models.queries import SearchHit


class Draft(BaseModel):
    customer_message: str
    internal_notes: str


def _sources_line(decision: GateDecision) -> str:
    if not decision.citations:
        return "none"
    return ", ".join(citation.label for citation in decision.citations)


def draft_response(
    ticket: Ticket,
    classification: Classification,
    kb_articles: List[FusedHit],
    resolutions: List[SearchHit],
    duplicate: DuplicateCheck,
    decision: GateDecision,
    max_articles: int = 2
) -> Draft:
    """
    Draft the customer message and internal notes for a triaged ticket

    Three templates: duplicate, evidence-backed (gate passed), and
    needs-human (gate withheld).
    """
    if duplicate.is_duplicate:
        return Draft(
            customer_message=(
                "Thank you for reaching out. We've identified that this issue is similar "
                "to a previously reported case. Our team is actively working on a resolution."
            ),
            internal_notes=(
                f"DUPLICATE: Similar to ticket {duplicate.match_id} "
                f"(score={duplicate.top_score:.3f}). Consider merging or linking."
            ),
        )

    if decision.permitted:
        lines = [
            f'Thank you for contacting support regarding "{ticket.subject}". '
            "Based on our knowledge base and previous resolutions, we've identified "
            "potential solutions to your issue.",
            "",
        ]
        if kb_articles:
            lines.append("Recommended articles:")
            for index, article in enumerate(kb_articles[:max_articles], start=1):
                lines.append(f"{index}. {article.source.get('title', article.id)}")
        if resolutions:
            lines.append("")
            lines.append(
                f"Recommended resolution: {resolutions[0].source.get('title', resolutions[0].id)}"
            )
        lines.append("")
        lines.append("Please try these steps and let us know if you need further assistance.")

        return Draft(
            customer_message="\n".join(lines),
            internal_notes=(
                f"AUTO-TRIAGE: Category={classification.category}, "
                f"Severity={classification.severity}, Priority={classification.priority}. "
                f"Found {decision.citation_count} relevant sources "
                f"({_sources_line(decision)}). Confidence={decision.confidence}."
            ),
        )

    return Draft(
        customer_message=(
            "Thank you for reaching out. We've received your request and our support "
            "team will review it shortly."
        ),
        internal_notes=(
            f"NEEDS_HUMAN: Insufficient automated context ({decision.citation_count} sources). "
            "Manual review required."
        ),
    )

