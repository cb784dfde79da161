"""Index selection for a query workload.

The rules follow the optimization notes kept with the schema:

* a selective equality filter gets its own index (email lookups);
* a query that filters and then joins or groups gets a composite index in
  (filter column, join/group column) order, e.g. ``(start_date, user_id)``;
* join columns, range columns and sort columns not covered by the above get a
  single-column index;
* columns searched with a leading wildcard (``LIKE '%x%'``) are never indexed,
  a B-tree cannot serve them;
* anything already served by the leftmost prefix of an existing index is
  dropped.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import UniqueConstraint, func, select, table as table_clause, column as column_clause

import config

logger = logging.getLogger(__name__)


@dataclass
class QueryPattern:
    name: str
    table: str
    equality: List[str] = field(default_factory=list)
    ranges: List[str] = field(default_factory=list)
    joins: List[str] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    order_by: List[str] = field(default_factory=list)
    wildcard: List[str] = field(default_factory=list)
    frequency: int = 1

    @property
    def filters(self):
        return self.equality + [c for c in self.ranges if c not in self.equality]


@dataclass(frozen=True)
class ColumnStats:
    table: str
    column: str
    rows: int
    distinct: int

    @property
    def selectivity(self):
        if self.rows == 0:
            return 0.0
        return self.distinct / self.rows


@dataclass
class IndexRecommendation:
    table: str
    columns: Tuple[str, ...]
    kind: str
    reason: str
    queries: List[str] = field(default_factory=list)

    @property
    def name(self):
        if self.kind == "skip":
            return None
        return f"idx_{self.table}_{'_'.join(self.columns)}"

    @property
    def ddl(self):
        if self.kind == "skip":
            return None
        return f"CREATE INDEX IF NOT EXISTS {self.name} ON {self.table} ({', '.join(self.columns)});"


def _is_partial(index):
    return any(key.endswith("_where") and value is not None for key, value in index.dialect_kwargs.items())


def existing_indexes(metadata) -> Dict[str, List[Tuple[str, ...]]]:
    """Column tuples already indexed per table, primary keys and unique constraints included.

    Partial indexes are left out: a query without their predicate cannot use them.
    """
    found: Dict[str, List[Tuple[str, ...]]] = {}
    for name, tbl in metadata.tables.items():
        keys = []
        if tbl.primary_key.columns:
            keys.append(tuple(c.name for c in tbl.primary_key.columns))
        for index in tbl.indexes:
            if _is_partial(index):
                continue
            cols = tuple(c.name for c in index.columns)
            if cols:
                keys.append(cols)
        for constraint in tbl.constraints:
            if isinstance(constraint, UniqueConstraint):
                keys.append(tuple(c.name for c in constraint.columns))
        for col in tbl.columns:
            if col.unique:
                keys.append((col.name,))
        found[name] = keys
    return found


def is_covered(columns: Sequence[str], indexed: Sequence[Tuple[str, ...]]):
    """True when ``columns`` is a leftmost prefix of one of ``indexed``."""
    columns = tuple(columns)
    return any(idx[:len(columns)] == columns for idx in indexed)


def _attach(rec, query):
    if query not in rec.queries:
        rec.queries.append(query)


class IndexAdvisor:
    def __init__(self, stats=None, existing=None, threshold=None):
        self.stats = {(s.table, s.column): s for s in (stats or [])}
        self.existing = existing or {}
        self.threshold = config.SELECTIVITY_THRESHOLD if threshold is None else threshold

    def is_selective(self, table, column):
        stats = self.stats.get((table, column))
        if stats is None:
            # no statistics: assume the filter narrows the scan
            return True
        return stats.selectivity >= self.threshold

    def _candidates(self, pattern: QueryPattern):
        t = pattern.table
        wildcard = set(pattern.wildcard)
        for col in pattern.wildcard:
            yield IndexRecommendation(t, (col,), "skip", f"leading-wildcard LIKE search on {col} cannot use a B-tree index")

        followers = [c for c in pattern.joins + pattern.group_by if c not in wildcard]
        filters = [c for c in pattern.filters if c not in wildcard and (c in pattern.ranges or self.is_selective(t, c))]

        for col in filters:
            for follower in followers:
                if follower != col:
                    yield IndexRecommendation(t, (col, follower), "composite", f"filter on {col} then join/group on {follower}")

        for col in pattern.equality:
            if col in wildcard:
                continue
            if self.is_selective(t, col):
                yield IndexRecommendation(t, (col,), "single", f"selective equality filter on {col}")
            else:
                yield IndexRecommendation(t, (col,), "skip", f"equality filter on {col} has low selectivity")

        for col in pattern.ranges:
            if col not in wildcard:
                yield IndexRecommendation(t, (col,), "single", f"range filter on {col}")
        for col in followers:
            yield IndexRecommendation(t, (col,), "single", f"join/group column {col}")
        for col in pattern.order_by:
            if col not in wildcard:
                yield IndexRecommendation(t, (col,), "single", f"sort on {col}")

    def recommend(self, patterns: Sequence[QueryPattern]) -> List[IndexRecommendation]:
        # most frequent queries claim their indexes first
        ordered = sorted(patterns, key=lambda p: -p.frequency)
        chosen: Dict[Tuple[str, Tuple[str, ...]], IndexRecommendation] = {}
        skipped: Dict[Tuple[str, Tuple[str, ...]], IndexRecommendation] = {}
        for pattern in ordered:
            for rec in self._candidates(pattern):
                key = (rec.table, rec.columns)
                if rec.kind == "skip":
                    _attach(skipped.setdefault(key, rec), pattern.name)
                    continue
                if key in chosen:
                    _attach(chosen[key], pattern.name)
                    continue
                if is_covered(rec.columns, self.existing.get(rec.table, [])):
                    logger.debug("%s(%s) already indexed", rec.table, ", ".join(rec.columns))
                    continue
                covering = [r for r in chosen.values() if r.table == rec.table and is_covered(rec.columns, [r.columns])]
                if covering:
                    _attach(covering[0], pattern.name)
                    continue
                rec.queries.append(pattern.name)
                chosen[key] = rec

        # a composite chosen later can make an earlier single-column pick redundant
        result = []
        picks = list(chosen.values())
        for rec in picks:
            if rec.kind == "single":
                covering = [
                    o for o in picks
                    if o is not rec and o.table == rec.table and len(o.columns) > len(rec.columns)
                    and is_covered(rec.columns, [o.columns])
                ]
                if covering:
                    # the covering index now serves this pick's queries too
                    target = covering[0]
                    for query in rec.queries:
                        _attach(target, query)
                    continue
            result.append(rec)
        skips = [s for key, s in skipped.items() if key not in chosen]
        logger.info("Recommended %d indexes, skipped %d columns for %d queries", len(result), len(skips), len(patterns))
        return result + skips


def collect_stats(db, table_name, columns) -> List[ColumnStats]:
    """Measure row and distinct-value counts for ``columns`` of ``table_name``."""
    tbl = table_clause(table_name, *[column_clause(c) for c in columns])
    rows = db.scalar(select(func.count()).select_from(tbl))
    result = []
    for col in columns:
        distinct = db.scalar(select(func.count(func.distinct(tbl.c[col]))))
        result.append(ColumnStats(table_name, col, rows or 0, distinct or 0))
    return result


def recommend(patterns, stats=None, metadata=None, threshold=None):
    existing = existing_indexes(metadata) if metadata is not None else {}
    return IndexAdvisor(stats=stats, existing=existing, threshold=threshold).recommend(patterns)


# Workload behind the index report: login lookups, dated booking lists joined to
# guests, availability checks per property and location searches.
DEFAULT_WORKLOAD = [
    QueryPattern("user_login", "users", equality=["email"], frequency=50),
    QueryPattern("bookings_after", "bookings", ranges=["start_date"], joins=["user_id"], order_by=["start_date"], frequency=20),
    QueryPattern("availability", "bookings", equality=["property_id"], ranges=["start_date", "end_date"], frequency=30),
    QueryPattern("bookings_by_location", "properties", equality=["location"], joins=["id"], frequency=10),
    QueryPattern("property_search", "properties", wildcard=["description"], frequency=5),
    QueryPattern("host_listings", "properties", joins=["host_id"], frequency=5),
    QueryPattern("booking_payment", "payments", joins=["booking_id"], frequency=15),
]


def pattern_from_schema(model) -> QueryPattern:
    return QueryPattern(**model.model_dump())


def recommendation_rows(recommendations) -> List[Dict[str, Optional[str]]]:
    return [
        {
            "table": r.table,
            "columns": list(r.columns),
            "kind": r.kind,
            "reason": r.reason,
            "name": r.name,
            "ddl": r.ddl,
        }
        for r in recommendations
    ]
