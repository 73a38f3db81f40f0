"""
Rule-based ticket classifier

Ordered (keywords → result) tables evaluated first-match-wins over the
lower-cased subject + description. Pure: the same text and fallbacks always
give the same classification.
"""
from typing import NamedTuple, Optional, Tuple

from elasticops.models.schemas import Classification

DEFAULT_CATEGORY = "general"
DEFAULT_SEVERITY = "medium"
DEFAULT_PRIORITY = "p3"


class Rule(NamedTuple):
    """Matches when any keyword occurs in the text"""
    keywords: Tuple[str, ...]
    result: Tuple[str, ...]

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


CATEGORY_RULES: Tuple[Rule, ...] = (
    Rule(("login", "password", "auth"), ("authentication",)),
    Rule(("payment", "billing", "invoice"), ("billing",)),
    Rule(("slow", "timeout", "performance"), ("performance",)),
    Rule(("api", "integration", "webhook"), ("integration",)),
    Rule(("data", "sync", "missing"), ("data",)),
    Rule(("incident", "outage", "down"), ("incident",)),
)

# result: (severity, priority)
SEVERITY_RULES: Tuple[Rule, ...] = (
    Rule(("urgent", "critical", "down", "outage"), ("critical", "p1")),
    Rule(("high", "important", "asap"), ("high", "p2")),
    Rule(("low", "minor", "question"), ("low", "p4")),
)


def first_match(rules: Tuple[Rule, ...], text: str) -> Optional[Tuple[str, ...]]:
    for rule in rules:
        if rule.matches(text):
            return rule.result
    return None


def classify_text(
    subject: Optional[str],
    description: Optional[str],
    current_category: Optional[str] = None,
    current_severity: Optional[str] = None,
    current_priority: Optional[str] = None
) -> Classification:
    """
    Classify ticket text

    Args:
        subject: Ticket subject
        description: Ticket description
        current_category: Value already on the record, used when no rule matches
        current_severity: Value already on the record, used when no rule matches
        current_priority: Value already on the record, used when no rule matches

    Returns:
        Classification with category, severity and priority
    """
    text = f"{subject or ''} {description or ''}".lower()

    category_match = first_match(CATEGORY_RULES, text)
    category = category_match[0] if category_match else (current_category or DEFAULT_CATEGORY)

    severity_match = first_match(SEVERITY_RULES, text)
    if severity_match:
        severity, priority = severity_match
    else:
        severity = current_severity or DEFAULT_SEVERITY
        priority = current_priority or DEFAULT_PRIORITY

    return Classification(category=category, severity=severity, priority=priority)
