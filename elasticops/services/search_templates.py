"""
Search templates for the query patterns used by the workflows

Every builder returns a typed query (see ``elasticops.models.queries``);
the store adapter owns the translation to Elasticsearch DSL.
"""
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Tuple

from elasticops.models.queries import (
    AnyOfFilter,
    TermFilter,
    RangeFilter,
    Filter,
    SortSpec,
    FilterQuery,
    LexicalQuery,
    VectorQuery,
    RateAggregation,
)
from elasticops.models.schemas import Collections, IncidentStatus, TicketStatus, to_iso

KB_FIELDS: Dict[str, float] = {"title": 2.0, "content": 1.0}
TICKET_FIELDS: Dict[str, float] = {"subject": 2.0, "description": 1.0, "customer_message": 1.0}

# mode -> (collection, lexical fields with boosts)
SEARCH_MODES: Dict[str, Tuple[str, Dict[str, float]]] = {
    "kb": (Collections.KB_ARTICLES, KB_FIELDS),
    "tickets": (Collections.TICKETS, TICKET_FIELDS),
}

ACTIVE_INCIDENT_STATUSES = [IncidentStatus.OPEN.value, IncidentStatus.INVESTIGATING.value]


def build_lexical_query(
    text: str,
    fields: Dict[str, float],
    size: int,
    fuzziness: Optional[str] = "AUTO",
    filters: Optional[List[Filter]] = None
) -> LexicalQuery:
    """BM25 multi_match over boosted fields, highlighting every field"""
    return LexicalQuery(
        text=text,
        fields=fields,
        fuzziness=fuzziness,
        filters=filters or [],
        size=size,
        highlight_fields=list(fields),
    )


def build_vector_query(
    vector: List[float],
    k: int,
    num_candidates: int = 50,
    filters: Optional[List[Filter]] = None
) -> VectorQuery:
    return VectorQuery(
        vector=vector,
        k=k,
        num_candidates=max(num_candidates, k),
        filters=filters or [],
    )


def build_ticket_dedupe_search(
    vector: List[float],
    category: Optional[str] = None,
    exclude_id: Optional[str] = None,
    k: int = 5
) -> VectorQuery:
    """
    Ticket deduplication search: kNN restricted to open tickets
    of the same category, excluding the ticket being triaged
    """
    filters: List[Filter] = [TermFilter(field="status", values=[TicketStatus.OPEN.value])]
    if category:
        filters.append(TermFilter(field="category", values=[category]))
    if exclude_id:
        filters.append(TermFilter(field="_id", values=[exclude_id], negate=True))
    return build_vector_query(vector, k=k, num_candidates=50, filters=filters)


def build_resolution_search(
    vector: List[float],
    category: Optional[str] = None,
    severity: Optional[str] = None,
    k: int = 5
) -> VectorQuery:
    """Resolution retrieval: kNN with optional category/severity pre-filter"""
    filters: List[Filter] = []
    if category:
        filters.append(TermFilter(field="category", values=[category]))
    if severity:
        filters.append(TermFilter(field="severity", values=[severity]))
    return build_vector_query(vector, k=k, num_candidates=50, filters=filters)


def build_open_incident_search(
    service: str,
    environment: str,
    since: datetime
) -> FilterQuery:
    """Active incident for (service, environment) detected since ``since``"""
    return FilterQuery(
        filters=[
            TermFilter(field="status", values=ACTIVE_INCIDENT_STATUSES),
            TermFilter(field="service", values=[service]),
            # incidents indexed by older writers carry "env"
            AnyOfFilter(filters=[
                TermFilter(field="environment", values=[environment]),
                TermFilter(field="env", values=[environment]),
            ]),
            RangeFilter(field="detected_at", gte=to_iso(since)),
        ],
        sort=[SortSpec(field="detected_at")],
        size=1,
    )


def build_spike_aggregation(window: timedelta, threshold: int) -> RateAggregation:
    """ERROR events per (service, env) over the trailing window"""
    return RateAggregation(
        time_field="@timestamp",
        window=window,
        filters=[TermFilter(field="level", values=["ERROR"])],
        group_by=["service", "env"],
        min_count=threshold,
    )


def build_spike_evidence_search(
    service: str,
    environment: str,
    since: datetime,
    size: int
) -> FilterQuery:
    """Most recent error events behind a spike"""
    return FilterQuery(
        filters=[
            TermFilter(field="level", values=["ERROR"]),
            TermFilter(field="service", values=[service]),
            TermFilter(field="env", values=[environment]),
            RangeFilter(field="@timestamp", gte=to_iso(since)),
        ],
        sort=[SortSpec(field="@timestamp")],
        size=size,
    )


def build_ticket_search(
    status: Optional[List[str]] = None,
    category: Optional[List[str]] = None,
    severity: Optional[List[str]] = None,
    priority: Optional[List[str]] = None,
    offset: int = 0,
    size: int = 50
) -> FilterQuery:
    """Ticket listing, newest first"""
    filters: List[Filter] = []
    for field, values in (
        ("status", status),
        ("category", category),
        ("severity", severity),
        ("priority", priority),
    ):
        if values:
            filters.append(TermFilter(field=field, values=values))
    return FilterQuery(
        filters=filters,
        sort=[SortSpec(field="created_at")],
        offset=offset,
        size=size,
    )


def build_incident_search(
    status: Optional[List[str]] = None,
    offset: int = 0,
    size: int = 50
) -> FilterQuery:
    """Incident listing, newest first; defaults to active incidents"""
    return FilterQuery(
        filters=[TermFilter(field="status", values=status or ACTIVE_INCIDENT_STATUSES)],
        sort=[SortSpec(field="detected_at")],
        offset=offset,
        size=size,
    )


def build_latest_run_search(ref_id: str) -> FilterQuery:
    """Most recent OpsRun for a referenced entity"""
    return FilterQuery(
        filters=[TermFilter(field="ref_id", values=[ref_id])],
        sort=[SortSpec(field="started_at")],
        size=1,
    )
