"""
Elasticsearch Document Store

REST client for the Elasticsearch/Elastic Cloud HTTP API:
- Document index / partial update / get with refresh control
- Filter, multi_match and kNN searches with highlights
- ES|QL windowed STATS queries for rate aggregation
- terms/sum/avg aggregations for metric summaries
- Create-only writes that tolerate a 409 from their own earlier attempt
- Retry with exponential backoff on 429/5xx

Timeouts and transport failures are raised as UpstreamUnavailableError;
they are never turned into empty results.
"""
import asyncio
from typing import Optional, Dict, Any, List

import httpx

from elasticops.config import Settings, get_settings
from elasticops.exceptions import NotFoundError, UpstreamUnavailableError
from elasticops.models.queries import (
    Visibility,
    AnyOfFilter,
    TermFilter,
    RangeFilter,
    Filter,
    FilterQuery,
    LexicalQuery,
    VectorQuery,
    Query,
    SearchHit,
    SearchResponse,
    RateAggregation,
    GroupCount,
    StatsAggregation,
    BucketStats,
)
from elasticops.services.document_store import DocumentStore
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
HIGHLIGHT_FRAGMENT_SIZE = 150
HIGHLIGHT_FRAGMENTS = 2


class ElasticsearchDocumentStore(DocumentStore):
    """
    Elasticsearch integration with retry logic and error handling
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.elastic_url.rstrip("/")
        self.headers = {
            "Content-Type": "application/json",
            **self.settings.ELASTIC_AUTH_HEADER
        }
        self.timeout = self.settings.elastic_timeout_seconds
        self.max_retries = max(1, self.settings.elastic_max_retries)
        self._client = client

    async def _make_request(
        self,
        method: str,
        path: str,
        operation: str,
        allow_not_found: bool = False,
        conflict_on_retry_ok: bool = False,
        **kwargs
    ) -> Optional[Dict[str, Any]]:
        """
        Make HTTP request with retry logic

        Args:
            method: HTTP method
            path: Path under the cluster URL
            operation: Operation name used in errors and logs
            allow_not_found: Return None on 404 instead of raising
            conflict_on_retry_ok: Treat a 409 on a retried attempt as success
                (create-only writes whose earlier attempt already landed)
            **kwargs: Additional arguments for httpx

        Returns:
            Response JSON, or None for an allowed 404

        Raises:
            UpstreamUnavailableError: On timeout, transport or HTTP errors
        """
        url = f"{self.base_url}{path}"

        for attempt in range(self.max_retries):
            try:
                response = await self._send(method, url, **kwargs)
                if response.status_code == 404 and allow_not_found:
                    return None
                if response.status_code == 409 and conflict_on_retry_ok and attempt > 0:
                    logger.info(f"{operation}: document already created by an earlier attempt")
                    return {}
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in RETRYABLE_STATUS and attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(
                        f"{operation} failed (attempt {attempt + 1}/{self.max_retries}), "
                        f"retrying in {wait_time}s: {e}"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                logger.error(f"{operation} failed with HTTP {status_code}")
                raise UpstreamUnavailableError(operation, str(e), status_code) from e

            except httpx.TimeoutException as e:
                logger.error(f"{operation} timed out after {self.timeout}s")
                raise UpstreamUnavailableError(operation, f"timed out after {self.timeout}s") from e

            except httpx.TransportError as e:
                logger.error(f"{operation} transport error: {e}")
                raise UpstreamUnavailableError(operation, str(e)) from e

        raise UpstreamUnavailableError(operation, "retries exhausted")

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, headers=self.headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self.headers, **kwargs)

    @staticmethod
    def _refresh_param(visibility: Visibility) -> Dict[str, str]:
        return {"refresh": "true"} if visibility == Visibility.IMMEDIATE else {}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def write(
        self,
        collection: str,
        body: Dict[str, Any],
        doc_id: Optional[str] = None,
        visibility: Visibility = Visibility.DEFAULT,
        create_only: bool = False
    ) -> str:
        params = self._refresh_param(visibility)
        if create_only:
            if not doc_id:
                raise ValueError("create_only writes need an explicit doc_id")
            result = await self._make_request(
                "PUT", f"/{collection}/_create/{doc_id}", f"create {collection}",
                conflict_on_retry_ok=True, params=params, json=body
            )
        elif doc_id:
            result = await self._make_request(
                "PUT", f"/{collection}/_doc/{doc_id}", f"index {collection}",
                params=params, json=body
            )
        else:
            result = await self._make_request(
                "POST", f"/{collection}/_doc", f"index {collection}",
                params=params, json=body
            )
        effective_id = result.get("_id", doc_id)
        logger.debug(f"Indexed {collection}/{effective_id} (visibility={visibility.value})")
        return effective_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        visibility: Visibility = Visibility.DEFAULT
    ) -> None:
        result = await self._make_request(
            "POST", f"/{collection}/_update/{doc_id}", f"update {collection}",
            allow_not_found=True,
            params=self._refresh_param(visibility),
            json={"doc": fields}
        )
        if result is None:
            raise NotFoundError(collection, doc_id)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        result = await self._make_request(
            "GET", f"/{collection}/_doc/{doc_id}", f"get {collection}",
            allow_not_found=True
        )
        if result is None or not result.get("found", True):
            return None
        return result.get("_source") or {}

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, collection: str, query: Query) -> SearchResponse:
        body = build_search_body(query)
        result = await self._make_request(
            "POST", f"/{collection}/_search", f"search {collection}", json=body
        )
        return parse_search_response(result)

    async def aggregate(
        self,
        collection: str,
        aggregation: RateAggregation
    ) -> List[GroupCount]:
        esql = build_rate_esql(collection, aggregation)
        result = await self._make_request("POST", "/_query", f"esql {collection}", json={"query": esql})
        return parse_esql_groups(result, aggregation)

    async def summarize(
        self,
        collection: str,
        aggregation: StatsAggregation
    ) -> Dict[str, List[BucketStats]]:
        body = build_stats_body(aggregation)
        result = await self._make_request(
            "POST", f"/{collection}/_search", f"aggregate {collection}", json=body
        )
        return parse_stats_response(result, aggregation)


# ============================================================================
# DSL translation
# ============================================================================

def filter_clause(query_filter: Filter) -> Dict[str, Any]:
    """Translate one typed filter into a bool filter clause"""
    if isinstance(query_filter, AnyOfFilter):
        return {
            "bool": {
                "should": [filter_clause(f) for f in query_filter.filters],
                "minimum_should_match": 1,
            }
        }

    if isinstance(query_filter, RangeFilter):
        bounds = {}
        if query_filter.gte is not None:
            bounds["gte"] = query_filter.gte
        if query_filter.lte is not None:
            bounds["lte"] = query_filter.lte
        return {"range": {query_filter.field: bounds}}

    if len(query_filter.values) == 1:
        clause = {"term": {query_filter.field: query_filter.values[0]}}
    else:
        clause = {"terms": {query_filter.field: list(query_filter.values)}}
    if query_filter.negate:
        return {"bool": {"must_not": [clause]}}
    return clause


def _bool_filter(filters: List[Filter]) -> Dict[str, Any]:
    return {"bool": {"filter": [filter_clause(f) for f in filters]}}


def build_search_body(query: Query) -> Dict[str, Any]:
    """Translate a typed query into an Elasticsearch _search body"""
    if isinstance(query, VectorQuery):
        knn: Dict[str, Any] = {
            "field": query.field,
            "query_vector": query.vector,
            "k": query.k,
            "num_candidates": query.num_candidates,
        }
        if query.filters:
            knn["filter"] = _bool_filter(query.filters)
        return {"knn": knn, "size": query.k}

    if isinstance(query, LexicalQuery):
        multi_match: Dict[str, Any] = {
            "query": query.text,
            "fields": [
                field if boost == 1 else f"{field}^{boost:g}"
                for field, boost in query.fields.items()
            ],
            "type": "best_fields",
        }
        if query.fuzziness:
            multi_match["fuzziness"] = query.fuzziness
        body: Dict[str, Any] = {
            "query": {
                "bool": {
                    "must": [{"multi_match": multi_match}],
                    "filter": [filter_clause(f) for f in query.filters],
                }
            },
            "size": query.size,
        }
        if query.highlight_fields:
            body["highlight"] = {
                "fields": {
                    field: {
                        "fragment_size": HIGHLIGHT_FRAGMENT_SIZE,
                        "number_of_fragments": HIGHLIGHT_FRAGMENTS,
                    }
                    for field in query.highlight_fields
                }
            }
        return body

    body = {
        "query": _bool_filter(query.filters) if query.filters else {"match_all": {}},
        "from": query.offset,
        "size": query.size,
    }
    if query.sort:
        body["sort"] = [
            {s.field: {"order": "desc" if s.descending else "asc"}}
            for s in query.sort
        ]
    return body


def build_stats_body(aggregation: StatsAggregation) -> Dict[str, Any]:
    """Translate a StatsAggregation into a size-0 _search body with terms/sum/avg aggs"""
    aggs = {
        name: {
            "terms": {"field": group.field, "size": group.size},
            "aggs": {
                "total_value": {"sum": {"field": group.value_field}},
                "avg_value": {"avg": {"field": group.value_field}},
            },
        }
        for name, group in aggregation.groups.items()
    }
    return {
        "query": _bool_filter(aggregation.filters) if aggregation.filters else {"match_all": {}},
        "aggs": aggs,
        "size": 0,
    }


def parse_stats_response(
    result: Dict[str, Any],
    aggregation: StatsAggregation
) -> Dict[str, List[BucketStats]]:
    aggregations = result.get("aggregations") or {}
    parsed = {}
    for name in aggregation.groups:
        buckets = (aggregations.get(name) or {}).get("buckets", [])
        parsed[name] = [
            BucketStats(
                key=bucket["key"],
                count=bucket.get("doc_count", 0),
                total=(bucket.get("total_value") or {}).get("value") or 0.0,
                avg=(bucket.get("avg_value") or {}).get("value"),
            )
            for bucket in buckets
        ]
    return parsed


def parse_search_response(result: Dict[str, Any]) -> SearchResponse:
    hits_block = result.get("hits", {})
    total = hits_block.get("total", 0)
    if isinstance(total, dict):
        total = total.get("value", 0)

    hits = [
        SearchHit(
            id=hit["_id"],
            score=hit.get("_score") or 0.0,
            source=hit.get("_source") or {},
            highlights=hit.get("highlight") or {},
        )
        for hit in hits_block.get("hits", [])
    ]
    return SearchResponse(hits=hits, total=total)


def _esql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_rate_esql(collection: str, aggregation: RateAggregation) -> str:
    """
    Build the ES|QL STATS query for a windowed rate aggregation, e.g.

        FROM logs-app
        | WHERE @timestamp >= NOW() - 300 seconds
        | WHERE level == "ERROR"
        | STATS count = COUNT(*) BY service, env
        | WHERE count >= 40
        | SORT count DESC
    """
    seconds = int(aggregation.window.total_seconds())
    lines = [
        f"FROM {collection}",
        f"| WHERE {aggregation.time_field} >= NOW() - {seconds} seconds",
    ]
    for term in aggregation.filters:
        if len(term.values) == 1:
            condition = f"{term.field} == {_esql_literal(term.values[0])}"
        else:
            condition = f"{term.field} IN ({', '.join(_esql_literal(v) for v in term.values)})"
        lines.append(f"| WHERE NOT ({condition})" if term.negate else f"| WHERE {condition}")
    lines.append(f"| STATS count = COUNT(*) BY {', '.join(aggregation.group_by)}")
    lines.append(f"| WHERE count >= {aggregation.min_count}")
    lines.append("| SORT count DESC")
    return "\n".join(lines)


def parse_esql_groups(result: Dict[str, Any], aggregation: RateAggregation) -> List[GroupCount]:
    """Map ES|QL columnar rows back to GroupCount objects"""
    columns = [column["name"] for column in result.get("columns", [])]
    groups = []
    for row in result.get("values", []):
        record = dict(zip(columns, row))
        groups.append(GroupCount(
            count=int(record.get("count", 0)),
            keys={field: record.get(field) for field in aggregation.group_by},
        ))
    return groups
