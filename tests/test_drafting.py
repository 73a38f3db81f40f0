"""
Response drafting tests
"""
from elasticops.agents.drafting import draft_response
from elasticops.models.queries import SearchHit
from elasticops.models.schemas import Classification, Ticket
from elasticops.services.citation_gate import CitationGate
from elasticops.services.deduplication import DuplicateCheck
from elasticops.services.hybrid_search import FusedHit
from elasticops.agents.utils import kb_citations, resolution_citations

TICKET = Ticket(ticket_id="TKT-1", subject="Cannot login", description="Password reset broken")
CLASSIFICATION = Classification(category="authentication", severity="high", priority="p2")
NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)

ARTICLES = [
    FusedHit(id="KB-1", score=0.03, source={"title": "Password reset troubleshooting"}),
    FusedHit(id="KB-2", score=0.02, source={"title": "SSO login failures"}),
    FusedHit(id="KB-3", score=0.01, source={"title": "Account lockout"}),
]
RESOLUTIONS = [SearchHit(id="RES-1", score=0.9, source={"title": "Resend reset email"})]


def decide(kb, resolutions):
    return CitationGate(2).evaluate("update_ticket", kb_citations(kb) + resolution_citations(resolutions))


class TestDraftResponse:

    def test_evidence_backed_draft(self):
        decision = decide(ARTICLES, RESOLUTIONS)

        draft = draft_response(TICKET, CLASSIFICATION, ARTICLES, RESOLUTIONS, NOT_DUPLICATE, decision)

        assert '"Cannot login"' in draft.customer_message
        assert "1. Password reset troubleshooting" in draft.customer_message
        assert "2. SSO login failures" in draft.customer_message
        assert "Account lockout" not in draft.customer_message
        assert "Recommended resolution: Resend reset email" in draft.customer_message
        assert draft.internal_notes.startswith(
            "AUTO-TRIAGE: Category=authentication, Severity=high, Priority=p2. Found 3 relevant sources"
        )
        assert "KB Article: KB-1" in draft.internal_notes
        assert draft.internal_notes.endswith("Confidence=high.")

    def test_needs_human_draft(self):
        decision = decide(ARTICLES[:1], [])

        draft = draft_response(TICKET, CLASSIFICATION, ARTICLES[:1], [], NOT_DUPLICATE, decision)

        assert draft.internal_notes == (
            "NEEDS_HUMAN: Insufficient automated context (1 sources). Manual review required."
        )
        assert "Recommended articles" not in draft.customer_message

    def test_duplicate_draft_wins(self):
        duplicate = DuplicateCheck(is_duplicate=True, top_score=0.9712, match_id="TKT-0999")
        decision = decide(ARTICLES, RESOLUTIONS)

        draft = draft_response(TICKET, CLASSIFICATION, ARTICLES, RESOLUTIONS, duplicate, decision)

        assert draft.internal_notes == (
            "DUPLICATE: Similar to ticket TKT-0999 (score=0.971). Consider merging or linking."
        )

    def test_same_inputs_same_draft(self):
        decision = decide(ARTICLES, RESOLUTIONS)

        first = draft_response(TICKET, CLASSIFICATION, ARTICLES, RESOLUTIONS, NOT_DUPLICATE, decision)
        second = draft_response(TICKET, CLASSIFICATION, ARTICLES, RESOLUTIONS, NOT_DUPLICATE, decision)

        assert first == second
