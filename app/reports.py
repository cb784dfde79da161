"""Markdown write-ups of the optimization experiments."""
import logging
import os
from datetime import date

import config
import explain
import index_advisor
import normalization
import partitioning
import queries
import variants

logger = logging.getLogger(__name__)

REPORT_KINDS = ("index", "partition", "normalization", "performance")


def _table(headers, rows):
    lines = ["| " + " | ".join(headers) + " |", "|" + "---|" * len(headers)]
    for row in rows:
        lines.append("| " + " | ".join(str(v) for v in row) + " |")
    return "\n".join(lines)


def _plan_block(title, prof):
    lines = [f"**{title}** ({prof.dialect}, {prof.wall_ms:.2f} ms wall)", "", "```"]
    lines.extend(prof.plan or ["(empty plan)"])
    lines.append("```")
    summary = f"Full scans: {', '.join(prof.full_scans) or 'none'}; indexes used: {', '.join(prof.indexes_used) or 'none'}; sorts: {prof.sorts}"
    if prof.execution_ms is not None:
        summary += f"; execution time: {prof.execution_ms:.3f} ms"
    lines.extend(["", summary])
    return "\n".join(lines)


def index_report(db, metadata, patterns=None, query_name="bookings_after"):
    patterns = patterns or index_advisor.DEFAULT_WORKLOAD
    recs = index_advisor.recommend(patterns, metadata=metadata)
    rows = [
        (r.table, ", ".join(r.columns), r.kind, r.reason, ", ".join(r.queries))
        for r in recs
    ]
    sections = [
        "# Index optimization",
        "## Recommendations",
        _table(("table", "columns", "kind", "reason", "queries"), rows) if rows else "No new indexes needed.",
        "## DDL",
        "```sql\n" + "\n".join(r.ddl for r in recs if r.ddl) + "\n```",
    ]
    statement = queries.get_query(query_name).build()
    comparison = explain.compare(db, statement, [r for r in recs if r.table in ("bookings", "users")], name=query_name)
    sections.extend([
        f"## Before / after: `{query_name}`",
        _plan_block("Before", comparison.before),
        _plan_block("After", comparison.after),
        f"Full scans removed: {', '.join(comparison.scans_removed) or 'none'}. "
        f"New indexes in plan: {', '.join(comparison.new_indexes) or 'none'}.",
    ])
    return "\n\n".join(sections) + "\n"


def partition_report(start, end, granularity="yearly", lo=None, hi=None, patterns=None, rows=0):
    plan = partitioning.plan_partitions(start, end, granularity)
    lo = lo or plan.partitions[-1].start
    hi = hi or plan.partitions[-1].end
    touched = partitioning.prune(plan.partitions, lo, hi)
    advice = partitioning.should_partition(patterns or index_advisor.DEFAULT_WORKLOAD, "bookings", "start_date", rows)
    sections = [
        "# Partitioning bookings by start_date",
        f"Advice: {'partition' if advice.partition else 'do not partition'} ({advice.reason}).",
        "## Partitions",
        _table(("name", "from", "to"), [(p.name, p.start, p.end) for p in plan.partitions]),
        "## Pruning",
        f"A query on start_date between {lo} and {hi} reads {len(touched)} of {len(plan.partitions)} partitions: "
        f"{', '.join(p.name for p in touched) or 'none'}.",
        "## DDL",
        "```sql\n" + partitioning.render_partition_ddl(plan) + "```",
    ]
    return "\n\n".join(sections) + "\n"


def normalization_report():
    sections = ["# Normalization (3NF)"]
    for name in variants.VARIANTS:
        violations = normalization.check_metadata(variants.get_variant(name))
        sections.append(f"## {name}")
        if violations:
            sections.append(_table(("table", "determinant", "dependent", "reason"), [
                (v.table, ", ".join(v.determinant), v.dependent, v.reason) for v in violations
            ]))
        else:
            sections.append("No violations.")
    return "\n\n".join(sections) + "\n"


def performance_report(db, since=None):
    since = since or date(2024, 1, 1)
    initial = explain.profile(db, queries.booking_details_initial(), name="booking_details_initial")
    optimized = explain.profile(db, queries.booking_details_optimized(since), name="booking_details_optimized")
    sections = [
        "# Booking details query refactor",
        "The initial query joins bookings, users, properties and payments with no filter and every column. "
        f"The refactor projects only the needed columns through CTEs and keeps bookings starting on or after {since}.",
        _plan_block("Initial", initial),
        _plan_block("Optimized", optimized),
    ]
    return "\n\n".join(sections) + "\n"


def build_report(kind, db, metadata):
    if kind == "index":
        return index_report(db, metadata)
    if kind == "partition":
        today = date.today()
        return partition_report(date(today.year - 2, 1, 1), date(today.year, 12, 31))
    if kind == "normalization":
        return normalization_report()
    if kind == "performance":
        return performance_report(db)
    raise KeyError(kind)


def write_report(kind, content, directory=None):
    directory = directory or config.REPORTS_DIR
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{kind}_report.md")
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    logger.info("Wrote %s report to %s", kind, path)
    return path
