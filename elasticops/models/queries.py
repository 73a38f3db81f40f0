"""
Typed document store queries

The orchestrator never builds Elasticsearch DSL directly. It describes what it
needs with these models and the store adapter translates them:

- FilterQuery: term / range filters with sorting (exact lookups)
- LexicalQuery: multi-field text match with field boosts and fuzziness
- VectorQuery: kNN over an embedding field with an optional pre-filter
- RateAggregation: windowed count grouped by fields, filtered by a threshold
- StatsAggregation: terms buckets with sum/avg of a numeric field
"""
from datetime import timedelta
from enum import Enum
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, Field


class Visibility(str, Enum):
    """Read-after-write visibility requested on writes"""
    IMMEDIATE = "immediate"
    DEFAULT = "default"


class TermFilter(BaseModel):
    """Exact match on one or more values; ``negate`` turns it into must_not"""
    field: str
    values: List[Any] = Field(..., min_length=1)
    negate: bool = False


class RangeFilter(BaseModel):
    """Inclusive range on a field"""
    field: str
    gte: Optional[Any] = None
    lte: Optional[Any] = None


class AnyOfFilter(BaseModel):
    """Matches when at least one of ``filters`` matches"""
    filters: List[TermFilter] = Field(..., min_length=1)


Filter = Union[TermFilter, RangeFilter, AnyOfFilter]


class SortSpec(BaseModel):
    field: str
    descending: bool = True


class FilterQuery(BaseModel):
    filters: List[Filter] = Field(default_factory=list)
    sort: List[SortSpec] = Field(default_factory=list)
    size: int = Field(default=10, ge=0)
    offset: int = Field(default=0, ge=0)


class LexicalQuery(BaseModel):
    text: str
    fields: Dict[str, float] = Field(..., description="Field name to boost")
    fuzziness: Optional[str] = None
    filters: List[Filter] = Field(default_factory=list)
    size: int = Field(default=10, ge=1)
    highlight_fields: List[str] = Field(default_factory=list)


class VectorQuery(BaseModel):
    vector: List[float]
    field: str = "embedding"
    k: int = Field(default=10, ge=1)
    num_candidates: int = Field(default=50, ge=1)
    filters: List[Filter] = Field(default_factory=list)


Query = Union[FilterQuery, LexicalQuery, VectorQuery]


class SearchHit(BaseModel):
    """One ranked document"""
    id: str
    score: float = 0.0
    source: Dict[str, Any] = Field(default_factory=dict)
    highlights: Dict[str, List[str]] = Field(default_factory=dict)

    def first_highlight(self, *fields: str) -> Optional[str]:
        for field in fields:
            fragments = self.highlights.get(field)
            if fragments:
                return fragments[0]
        return None


class SearchResponse(BaseModel):
    hits: List[SearchHit] = Field(default_factory=list)
    total: int = 0


class RateAggregation(BaseModel):
    """
    Count documents in a trailing window grouped by ``group_by``.

    Only groups with at least ``min_count`` documents are returned, sorted by
    count descending.
    """
    time_field: str = "@timestamp"
    window: timedelta
    filters: List[TermFilter] = Field(default_factory=list)
    group_by: List[str] = Field(..., min_length=1)
    min_count: int = Field(default=1, ge=1)


class GroupCount(BaseModel):
    count: int
    keys: Dict[str, Any]


class TermsStats(BaseModel):
    """Terms buckets on ``field`` with count, sum and average of ``value_field``"""
    field: str
    value_field: str = "value"
    size: int = Field(default=20, ge=1)


class StatsAggregation(BaseModel):
    """
    Named terms/stats groupings over the documents matching ``filters``.

    Buckets come back largest first (document count), at most ``size`` each.
    """
    filters: List[Filter] = Field(default_factory=list)
    groups: Dict[str, TermsStats] = Field(..., min_length=1)


class BucketStats(BaseModel):
    key: Any
    count: int
    total: float = 0.0
    avg: Optional[float] = None
