"""Range partitioning of the bookings table on ``start_date``.

Partitions are half-open ``[start, end)`` ranges, one per year or per month.
A date-range query only has to read the partitions its range overlaps; the
rest are pruned by the planner.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Sequence

from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

import config
import models_sqlalchemy as models
import variants
from errors import PartitionPlanError

logger = logging.getLogger(__name__)

GRANULARITIES = ("yearly", "monthly")
DEFAULT_PARTITION_INDEXES = ("user_id", "property_id", "end_date")


@dataclass(frozen=True)
class Partition:
    name: str
    start: date
    end: date

    def overlaps(self, lo, hi):
        """True when the inclusive query range ``[lo, hi]`` touches this partition."""
        return self.start <= hi and lo < self.end

    def ddl(self, parent):
        return (
            f"CREATE TABLE {self.name} PARTITION OF {parent}\n"
            f"    FOR VALUES FROM ('{self.start.isoformat()}') TO ('{self.end.isoformat()}');"
        )


@dataclass
class PartitionPlan:
    table: str
    column: str
    granularity: str
    partitions: List[Partition] = field(default_factory=list)

    def find(self, day):
        for partition in self.partitions:
            if partition.start <= day < partition.end:
                return partition
        return None


@dataclass(frozen=True)
class PartitionAdvice:
    partition: bool
    reason: str
    range_share: float


def _next_boundary(day, granularity):
    if day.year == date.max.year and (granularity == "yearly" or day.month == 12):
        raise PartitionPlanError(f"no partition boundary after {day}, dates end at {date.max}")
    if granularity == "yearly":
        return date(day.year + 1, 1, 1)
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _partition_count(start, end, granularity):
    if granularity == "yearly":
        return end.year - start.year + 1
    return (end.year - start.year) * 12 + end.month - start.month + 1


def _partition_name(table, day, granularity):
    if granularity == "yearly":
        return f"{table}_{day.year}"
    return f"{table}_{day.year}_{day.month:02d}"


def plan_partitions(start, end, granularity="yearly", table="bookings", column="start_date"):
    """Partitions covering every date from ``start`` through ``end``."""
    if granularity not in GRANULARITIES:
        raise PartitionPlanError(f"granularity must be one of {', '.join(GRANULARITIES)}, got {granularity!r}")
    if end < start:
        raise PartitionPlanError(f"end {end} is before start {start}")
    count = _partition_count(start, end, granularity)
    if count > config.PARTITION_MAX_COUNT:
        raise PartitionPlanError(f"{count} {granularity} partitions exceed the limit of {config.PARTITION_MAX_COUNT}")
    cursor = date(start.year, 1, 1) if granularity == "yearly" else date(start.year, start.month, 1)
    plan = PartitionPlan(table, column, granularity)
    while cursor <= end:
        upper = _next_boundary(cursor, granularity)
        plan.partitions.append(Partition(_partition_name(table, cursor, granularity), cursor, upper))
        cursor = upper
    logger.debug("Planned %d %s partitions of %s", len(plan.partitions), granularity, table)
    return plan


def prune(partitions: Sequence[Partition], lo, hi) -> List[Partition]:
    if hi < lo:
        raise PartitionPlanError(f"range end {hi} is before range start {lo}")
    return [p for p in partitions if p.overlaps(lo, hi)]


def should_partition(patterns, table, column, rows, min_rows=None, range_share=None, writes_tolerate_boundaries=True):
    """Decide whether range partitioning on ``column`` pays off for ``table``.

    Range scans on the column must carry at least ``range_share`` of the
    table's workload frequency, and the table must hold ``min_rows`` rows.
    """
    min_rows = config.PARTITION_MIN_ROWS if min_rows is None else min_rows
    range_share = config.PARTITION_RANGE_SHARE if range_share is None else range_share
    relevant = [p for p in patterns if p.table == table]
    total = sum(p.frequency for p in relevant)
    ranged = sum(p.frequency for p in relevant if column in p.ranges)
    share = ranged / total if total else 0.0

    if not writes_tolerate_boundaries:
        return PartitionAdvice(False, "write pattern cannot tolerate partition boundaries", share)
    if rows < min_rows:
        return PartitionAdvice(False, f"{rows} rows is below the {min_rows} row threshold", share)
    if share < range_share:
        return PartitionAdvice(False, f"range scans on {column} are {share:.0%} of the workload", share)
    return PartitionAdvice(True, f"range scans on {column} are {share:.0%} of the workload over {rows} rows", share)


def render_partition_ddl(plan, indexes=DEFAULT_PARTITION_INDEXES, migrate=True, source=None):
    """Script that rebuilds the table as a range-partitioned parent.

    The existing rows are copied to ``<table>_backup`` first and moved back
    into the partitions at the end when ``migrate`` is set; only the columns
    ``source`` (the canonical bookings table by default) shares with the
    partitioned layout are copied.
    """
    parent = variants.partitioned_bookings
    if plan.table != parent.name or plan.column != "start_date":
        raise PartitionPlanError(f"no partitioned layout for {plan.table}.{plan.column}")
    backup = f"{plan.table}_backup"
    source = source if source is not None else models.Booking.__table__
    columns = ", ".join(c.name for c in parent.columns if c.name in source.columns)

    statements = []
    if migrate:
        statements.append(f"CREATE TABLE {backup} AS SELECT * FROM {plan.table};")
    statements.append(f"DROP TABLE IF EXISTS {plan.table} CASCADE;")
    statements.append(str(CreateTable(parent).compile(dialect=postgresql.dialect())).strip() + ";")
    statements.extend(p.ddl(plan.table) for p in plan.partitions)
    statements.extend(f"CREATE INDEX idx_{plan.table}_{col} ON {plan.table} ({col});" for col in indexes)
    if migrate:
        statements.append(f"INSERT INTO {plan.table} ({columns}) SELECT {columns} FROM {backup};")
        statements.append(f"DROP TABLE {backup};")
    statements.append(f"ANALYZE {plan.table};")
    return "\n\n".join(statements) + "\n"


def detach_statement(partition: Partition, parent="bookings", concurrently=False):
    mode = " CONCURRENTLY" if concurrently else ""
    return f"ALTER TABLE {parent} DETACH PARTITION {partition.name}{mode};"
