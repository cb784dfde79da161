"""Query plan profiling.

PostgreSQL plans come from ``EXPLAIN (ANALYZE, BUFFERS)``, SQLite plans from
``EXPLAIN QUERY PLAN``. Both are reduced to the same summary: which relations
were read with a full scan, which indexes were used and how many explicit
sorts the plan needed. ``compare`` runs the before/after experiment for a set
of candidate indexes.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import inspect

from errors import SchemaLabError

logger = logging.getLogger(__name__)

PG_SEQ_SCAN = re.compile(r"Seq Scan on (\w+)")
PG_INDEX_SCAN = re.compile(r"Index (?:Only )?Scan(?: Backward)? using (\w+)")
PG_BITMAP_SCAN = re.compile(r"Bitmap Index Scan on (\w+)")
PG_SORT = re.compile(r"^\s*(?:->\s*)?(?:Incremental )?Sort\s+\(")
PG_EXECUTION = re.compile(r"Execution Time: ([\d.]+) ms")

SQLITE_ACCESS = re.compile(
    r"^(SCAN|SEARCH) (?:TABLE )?(\w+)(?: AS \w+)?"
    r"(?: USING (?:(?:COVERING )?INDEX (\w+)|(INTEGER PRIMARY KEY)))?"
)
SQLITE_SORT = re.compile(r"USE TEMP B-TREE FOR (?:ORDER|GROUP) BY")


@dataclass
class QueryProfile:
    query: str
    dialect: str
    plan: List[str] = field(default_factory=list)
    full_scans: List[str] = field(default_factory=list)
    indexes_used: List[str] = field(default_factory=list)
    sorts: int = 0
    execution_ms: Optional[float] = None
    wall_ms: float = 0.0


@dataclass
class PlanComparison:
    before: QueryProfile
    after: QueryProfile
    created: List[str] = field(default_factory=list)

    @property
    def scans_removed(self):
        return sorted(set(self.before.full_scans) - set(self.after.full_scans))

    @property
    def new_indexes(self):
        return sorted(set(self.after.indexes_used) - set(self.before.indexes_used))

    @property
    def improved(self):
        return bool(self.scans_removed or self.new_indexes)


def parse_postgres_plan(lines, profile):
    for line in lines:
        match = PG_SEQ_SCAN.search(line)
        if match:
            profile.full_scans.append(match.group(1))
        for pattern in (PG_INDEX_SCAN, PG_BITMAP_SCAN):
            match = pattern.search(line)
            if match:
                profile.indexes_used.append(match.group(1))
        if PG_SORT.search(line):
            profile.sorts += 1
        match = PG_EXECUTION.search(line)
        if match:
            profile.execution_ms = float(match.group(1))
    return profile


def parse_sqlite_plan(lines, profile):
    for line in lines:
        if SQLITE_SORT.search(line):
            profile.sorts += 1
            continue
        match = SQLITE_ACCESS.match(line)
        if not match or match.group(2) == "CONSTANT":
            continue
        op, name, index, rowid = match.groups()
        if index:
            profile.indexes_used.append(index)
        elif rowid:
            profile.indexes_used.append(f"{name}:rowid")
        elif op == "SCAN":
            profile.full_scans.append(name)
    return profile


def compile_literal(statement, dialect):
    return str(statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


def explain_lines(db, sql, dialect_name, analyze=True):
    if dialect_name == "postgresql":
        prefix = "EXPLAIN (ANALYZE, BUFFERS) " if analyze else "EXPLAIN "
        return [row[0] for row in db.connection().exec_driver_sql(prefix + sql)]
    if dialect_name == "sqlite":
        # rows are (id, parent, notused, detail)
        return [row[3] for row in db.connection().exec_driver_sql("EXPLAIN QUERY PLAN " + sql)]
    raise SchemaLabError(f"Profiling is not supported on {dialect_name}")


def profile(db, statement, name="query", analyze=True):
    dialect = db.get_bind().dialect
    sql = compile_literal(statement, dialect)
    lines = explain_lines(db, sql, dialect.name, analyze=analyze)
    result = QueryProfile(query=name, dialect=dialect.name, plan=lines)
    if dialect.name == "postgresql":
        parse_postgres_plan(lines, result)
    else:
        parse_sqlite_plan(lines, result)

    if analyze:
        started = time.perf_counter()
        db.execute(statement).all()
        result.wall_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "Profiled %s on %s: full scans=%s indexes=%s sorts=%d",
        name, dialect.name, result.full_scans, result.indexes_used, result.sorts,
    )
    return result


def refresh_statistics(db):
    db.connection().exec_driver_sql("ANALYZE")


def compare(db, statement, recommendations, name="query", keep=False):
    """Profile ``statement``, create the recommended indexes, profile it again.

    Only indexes this call created are dropped afterwards, and only when
    ``keep`` is not set. Indexes that already exist are left alone.
    """
    before = profile(db, statement, name=name)
    conn = db.connection()
    created = []
    # the indexes live inside this savepoint; rolling it back drops them
    savepoint = db.begin_nested()
    try:
        for rec in recommendations:
            if not rec.ddl:
                continue
            present = {ix["name"] for ix in inspect(conn).get_indexes(rec.table)}
            if rec.name in present:
                logger.info("%s already exists, leaving it in place", rec.name)
                continue
            conn.exec_driver_sql(rec.ddl)
            created.append(rec.name)
        refresh_statistics(db)
        after = profile(db, statement, name=name)
    except Exception:
        savepoint.rollback()
        raise
    if keep:
        savepoint.commit()
        db.commit()
    else:
        savepoint.rollback()
    comparison = PlanComparison(before, after, created)
    logger.info("%s: removed full scans %s, new indexes %s", name, comparison.scans_removed, comparison.new_indexes)
    return comparison
