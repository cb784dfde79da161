import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

import explain
import queries
from errors import SchemaLabError
from index_advisor import IndexRecommendation

PG_PLAN = [
    "Sort  (cost=182.34..184.84 rows=1000 width=40) (actual time=1.201..1.305 rows=1000 loops=1)",
    "  Sort Key: b.start_date",
    "  Sort Method: quicksort  Memory: 103kB",
    "  ->  Hash Join  (cost=29.50..132.51 rows=1000 width=40) (actual time=0.31..0.90 rows=1000 loops=1)",
    "        Hash Cond: (b.user_id = u.id)",
    "        ->  Seq Scan on bookings b  (cost=0.00..100.37 rows=1000 width=16) (actual time=0.01..0.41 rows=1000 loops=1)",
    "              Filter: (start_date > '2024-01-01'::date)",
    "        ->  Hash  (cost=17.00..17.00 rows=1000 width=28) (actual time=0.27..0.27 rows=1000 loops=1)",
    "              ->  Index Scan using users_pkey on users u  (cost=0.28..17.00 rows=1000 width=28)",
    "  ->  Bitmap Index Scan on idx_bookings_user_status  (cost=0.00..4.30 rows=10 width=0)",
    "Planning Time: 0.210 ms",
    "Execution Time: 1.402 ms",
]

SQLITE_PLAN = [
    "SCAN b",
    "SEARCH u USING INTEGER PRIMARY KEY (rowid=?)",
    "SEARCH pay USING INDEX sqlite_autoindex_payments_1 (booking_id=?)",
    "SCAN p USING COVERING INDEX idx_properties_host",
    "SCAN CONSTANT ROW",
    "USE TEMP B-TREE FOR ORDER BY",
]


def test_parse_postgres_plan():
    prof = explain.parse_postgres_plan(PG_PLAN, explain.QueryProfile("q", "postgresql"))
    assert prof.full_scans == ["bookings"]
    assert prof.indexes_used == ["users_pkey", "idx_bookings_user_status"]
    # the "Sort Key:" detail line is not a second sort
    assert prof.sorts == 1
    assert prof.execution_ms == pytest.approx(1.402)

def test_parse_sqlite_plan():
    prof = explain.parse_sqlite_plan(SQLITE_PLAN, explain.QueryProfile("q", "sqlite"))
    assert prof.full_scans == ["b"]
    assert prof.indexes_used == ["u:rowid", "sqlite_autoindex_payments_1", "idx_properties_host"]
    assert prof.sorts == 1
    assert prof.execution_ms is None

def test_parse_old_sqlite_format():
    prof = explain.parse_sqlite_plan(["SCAN TABLE bookings AS b", "SEARCH TABLE users AS u USING INTEGER PRIMARY KEY (rowid=?)"], explain.QueryProfile("q", "sqlite"))
    assert prof.full_scans == ["bookings"]
    assert prof.indexes_used == ["users:rowid"]

def test_comparison_summary():
    before = explain.QueryProfile("q", "sqlite", full_scans=["b"], indexes_used=["u:rowid"])
    after = explain.QueryProfile("q", "sqlite", full_scans=[], indexes_used=["u:rowid", "idx_bookings_start_date"])
    comparison = explain.PlanComparison(before, after)
    assert comparison.scans_removed == ["b"]
    assert comparison.new_indexes == ["idx_bookings_start_date"]
    assert comparison.improved
    assert not explain.PlanComparison(before, before).improved

def test_profile_on_sqlite(seeded):
    prof = explain.profile(seeded, queries.bookings_after(), name="bookings_after")
    assert prof.dialect == "sqlite"
    assert prof.plan
    assert prof.wall_ms >= 0
    assert prof.full_scans or prof.indexes_used

def test_profile_without_analyze_skips_execution(seeded):
    prof = explain.profile(seeded, queries.bookings_after(), analyze=False)
    assert prof.wall_ms == 0.0

def test_compare_creates_and_drops_indexes(seeded):
    recs = [
        IndexRecommendation("bookings", ("start_date", "user_id"), "composite", "filter then join"),
        IndexRecommendation("properties", ("description",), "skip", "wildcard"),
    ]
    comparison = explain.compare(seeded, queries.bookings_after(), recs, name="bookings_after")
    assert comparison.created == ["idx_bookings_start_date_user_id"]
    assert comparison.after.plan
    remaining = seeded.execute(
        text("SELECT name FROM sqlite_master WHERE type = 'index' AND name = 'idx_bookings_start_date_user_id'")
    ).all()
    assert remaining == []

def test_compare_can_keep_indexes(seeded):
    recs = [IndexRecommendation("bookings", ("end_date",), "single", "range filter on end_date")]
    explain.compare(seeded, queries.bookings_after(), recs, keep=True)
    remaining = seeded.execute(
        text("SELECT name FROM sqlite_master WHERE type = 'index' AND name = 'idx_bookings_end_date'")
    ).all()
    assert len(remaining) == 1

def test_unsupported_dialect():
    with pytest.raises(SchemaLabError):
        explain.explain_lines(None, "SELECT 1", "mssql")

def test_compare_leaves_existing_index(seeded):
    seeded.execute(text("CREATE INDEX idx_bookings_start_date ON bookings (start_date)"))
    recs = [IndexRecommendation("bookings", ("start_date",), "single", "range filter on start_date")]
    comparison = explain.compare(seeded, queries.bookings_after(), recs, name="bookings_after")
    assert comparison.created == []
    remaining = seeded.execute(
        text("SELECT name FROM sqlite_master WHERE type = 'index' AND name = 'idx_bookings_start_date'")
    ).all()
    assert len(remaining) == 1

def test_compare_failure_rolls_back_created_indexes(seeded):
    recs = [
        IndexRecommendation("bookings", ("end_date",), "single", "range filter on end_date"),
        IndexRecommendation("bookings", ("no_such_column",), "single", "bad column"),
    ]
    with pytest.raises(OperationalError):
        explain.compare(seeded, queries.bookings_after(), recs)
    remaining = seeded.execute(
        text("SELECT name FROM sqlite_master WHERE type = 'index' AND name = 'idx_bookings_end_date'")
    ).all()
    assert remaining == []
