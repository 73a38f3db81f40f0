"""
Pytest configuration and fixtures

``InMemoryDocumentStore`` interprets the typed queries the workflows emit, so
workflow tests run the real graphs end to end without a cluster:
- term/range filters (ISO timestamps compared as datetimes)
- lexical match: boosted token overlap, highlights on matching fields
- vector match: Elasticsearch cosine scoring, (1 + cos) / 2
- rate aggregation: trailing-window group-by count
- stats aggregation: terms buckets with count/sum/avg
- create-only writes raise a 409 conflict for an existing id
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pytest

from elasticops.config import Settings
from elasticops.exceptions import NotFoundError, UpstreamUnavailableError
from elasticops.models.queries import (
    AnyOfFilter,
    BucketStats,
    FilterQuery,
    GroupCount,
    LexicalQuery,
    RangeFilter,
    RateAggregation,
    SearchHit,
    SearchResponse,
    StatsAggregation,
    TermFilter,
    VectorQuery,
    Visibility,
)
from elasticops.models.schemas import Collections, utcnow
from elasticops.services.document_store import DocumentStore
from elasticops.services.embedding import DeterministicEmbedder
from elasticops.services.orchestrator import WorkflowOrchestrator


def _coerce(value: Any) -> Any:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


def _tokens(text: Any) -> List[str]:
    return re.findall(r"\w+", str(text or "").lower())


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore double with write tracking and failure injection"""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes: List[Tuple[str, str, Visibility]] = []
        self.updates: List[Tuple[str, str, Dict[str, Any], Visibility]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail(self, operation: str, collection: str, error: Exception) -> None:
        """Make every ``operation`` on ``collection`` raise ``error``"""
        self.failures[(operation, collection)] = error

    def docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.get(collection, {})

    def put(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = dict(body)

    def _check(self, operation: str, collection: str) -> None:
        error = self.failures.get((operation, collection))
        if error is not None:
            raise error

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def write(self, collection, body, doc_id=None, visibility=Visibility.DEFAULT, create_only=False):
        self._check("write", collection)
        if create_only and doc_id in self.docs(collection):
            raise UpstreamUnavailableError(f"create {collection}", "version conflict", 409)
        if doc_id is None:
            self._counter += 1
            doc_id = f"{collection}-{self._counter}"
        self.put(collection, doc_id, body)
        self.writes.append((collection, doc_id, visibility))
        return doc_id

    async def update(self, collection, doc_id, fields, visibility=Visibility.DEFAULT):
        self._check("update", collection)
        docs = self.docs(collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        docs[doc_id].update(fields)
        self.updates.append((collection, doc_id, dict(fields), visibility))

    async def get(self, collection, doc_id):
        self._check("get", collection)
        doc = self.docs(collection).get(doc_id)
        return dict(doc) if doc is not None else None

    async def search(self, collection, query):
        self._check("search", collection)
        if isinstance(query, VectorQuery):
            return self._vector(collection, query)
        if isinstance(query, LexicalQuery):
            return self._lexical(collection, query)
        return self._filter(collection, query)

    async def aggregate(self, collection, aggregation: RateAggregation):
        self._check("aggregate", collection)
        since = utcnow() - aggregation.window
        counts: Dict[tuple, int] = {}
        for doc_id, doc in self.docs(collection).items():
            timestamp = _coerce(doc.get(aggregation.time_field))
            if not isinstance(timestamp, datetime) or timestamp < since:
                continue
            if not all(self._matches(doc_id, doc, f) for f in aggregation.filters):
                continue
            key = tuple(doc.get(field) for field in aggregation.group_by)
            counts[key] = counts.get(key, 0) + 1

        groups = [
            GroupCount(count=count, keys=dict(zip(aggregation.group_by, key)))
            for key, count in counts.items()
            if count >= aggregation.min_count
        ]
        groups.sort(key=lambda group: group.count, reverse=True)
        return groups

    async def summarize(self, collection, aggregation: StatsAggregation):
        self._check("summarize", collection)
        matched = self._candidates(collection, aggregation.filters)
        result = {}
        for name, group in aggregation.groups.items():
            values: Dict[Any, List[float]] = {}
            for _, doc in matched:
                key = doc.get(group.field)
                if key is None:
                    continue
                values.setdefault(key, []).append(float(doc.get(group.value_field) or 0.0))
            buckets = [
                BucketStats(key=key, count=len(items), total=sum(items), avg=sum(items) / len(items))
                for key, items in values.items()
            ]
            buckets.sort(key=lambda bucket: (-bucket.count, str(bucket.key)))
            result[name] = buckets[:group.size]
        return result

    # ------------------------------------------------------------------
    # Query interpretation
    # ------------------------------------------------------------------

    @staticmethod
    def _matches(doc_id: str, doc: Dict[str, Any], query_filter) -> bool:
        if isinstance(query_filter, AnyOfFilter):
            return any(InMemoryDocumentStore._matches(doc_id, doc, f) for f in query_filter.filters)
        if isinstance(query_filter, RangeFilter):
            value = _coerce(doc.get(query_filter.field))
            if value is None:
                return False
            if query_filter.gte is not None and value < _coerce(query_filter.gte):
                return False
            if query_filter.lte is not None and value > _coerce(query_filter.lte):
                return False
            return True

        value = doc_id if query_filter.field == "_id" else doc.get(query_filter.field)
        values = value if isinstance(value, list) else [value]
        matched = any(v in query_filter.values for v in values)
        return not matched if query_filter.negate else matched

    def _candidates(self, collection: str, filters) -> List[Tuple[str, Dict[str, Any]]]:
        return [
            (doc_id, doc)
            for doc_id, doc in self.docs(collection).items()
            if all(self._matches(doc_id, doc, f) for f in filters)
        ]

    def _filter(self, collection: str, query: FilterQuery) -> SearchResponse:
        matched = self._candidates(collection, query.filters)
        for spec in reversed(query.sort):
            present = [item for item in matched if item[1].get(spec.field) is not None]
            missing = [item for item in matched if item[1].get(spec.field) is None]
            present.sort(key=lambda item: _coerce(item[1][spec.field]), reverse=spec.descending)
            matched = present + missing
        page = matched[query.offset:query.offset + query.size]
        return SearchResponse(
            hits=[SearchHit(id=doc_id, score=1.0, source=dict(doc)) for doc_id, doc in page],
            total=len(matched),
        )

    def _lexical(self, collection: str, query: LexicalQuery) -> SearchResponse:
        terms = set(_tokens(query.text))
        scored = []
        for doc_id, doc in self._candidates(collection, query.filters):
            score = 0.0
            highlights: Dict[str, List[str]] = {}
            for field, boost in query.fields.items():
                overlap = terms & set(_tokens(doc.get(field)))
                if overlap:
                    score += boost * len(overlap)
                    if field in query.highlight_fields:
                        highlights[field] = [str(doc.get(field))[:150]]
            if score > 0:
                scored.append(SearchHit(id=doc_id, score=score, source=dict(doc), highlights=highlights))
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return SearchResponse(hits=scored[:query.size], total=len(scored))

    def _vector(self, collection: str, query: VectorQuery) -> SearchResponse:
        target = np.asarray(query.vector, dtype=np.float64)
        scored = []
        for doc_id, doc in self._candidates(collection, query.filters):
            embedding = doc.get(query.field)
            if not embedding:
                continue
            vector = np.asarray(embedding, dtype=np.float64)
            cosine = float(np.dot(target, vector) / (np.linalg.norm(target) * np.linalg.norm(vector)))
            scored.append(SearchHit(id=doc_id, score=(1.0 + cosine) / 2.0, source=dict(doc)))
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return SearchResponse(hits=scored[:query.k], total=len(scored))


class Seeder:
    """Writes fixture documents straight into the in-memory store"""

    def __init__(self, store: InMemoryDocumentStore, embedder: DeterministicEmbedder):
        self.store = store
        self.embedder = embedder

    def ticket(
        self,
        ticket_id: str,
        subject: str,
        description: str,
        category: Optional[str] = None,
        status: str = "open",
        with_embedding: bool = True,
        **extra
    ) -> Dict[str, Any]:
        body = {
            "ticket_id": ticket_id,
            "subject": subject,
            "description": description,
            "category": category,
            "status": status,
            "channel": "email",
            "customer_id": "CUST-1",
            "tags": [],
            "created_at": utcnow().isoformat(),
            **extra,
        }
        if with_embedding:
            body["embedding"] = self.embedder.embed(f"{subject} {description}".strip())
        self.store.put(Collections.TICKETS, ticket_id, body)
        return body

    def kb_article(self, doc_id: str, title: str, content: str, category: str = "general") -> None:
        self.store.put(Collections.KB_ARTICLES, doc_id, {
            "title": title,
            "content": content,
            "category": category,
            "embedding": self.embedder.embed(f"{title} {content}"),
        })

    def resolution(self, doc_id: str, title: str, category: str, severity: str) -> None:
        self.store.put(Collections.RESOLUTIONS, doc_id, {
            "title": title,
            "summary": f"How we fixed: {title}",
            "category": category,
            "severity": severity,
            "embedding": self.embedder.embed(title),
        })

    def error_logs(
        self,
        service: str,
        env: str,
        count: int,
        age: timedelta = timedelta(minutes=1),
        level: str = "ERROR"
    ) -> None:
        timestamp = (utcnow() - age).isoformat()
        start = len(self.store.docs(Collections.LOGS))
        for index in range(count):
            self.store.put(Collections.LOGS, f"log-{start + index}", {
                "@timestamp": timestamp,
                "level": level,
                "service": service,
                "env": env,
                "message": f"{service} request failed ({index})",
            })

    def incident(
        self,
        incident_id: str,
        service: str,
        environment: str,
        status: str = "open",
        age: timedelta = timedelta(minutes=2)
    ) -> None:
        self.store.put(Collections.INCIDENTS, incident_id, {
            "incident_id": incident_id,
            "title": f"Error spike in {service}",
            "summary": "seeded",
            "service": service,
            "environment": environment,
            "severity": "high",
            "status": status,
            "error_count": 50,
            "detected_at": (utcnow() - age).isoformat(),
        })


@pytest.fixture
def settings() -> Settings:
    return Settings(app_base_url="http://localhost:3000")


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def embedder() -> DeterministicEmbedder:
    return DeterministicEmbedder(384)


@pytest.fixture
def seed(store, embedder) -> Seeder:
    return Seeder(store, embedder)


@pytest.fixture
def orchestrator(store, embedder, settings) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(store, embedder=embedder, settings=settings)
