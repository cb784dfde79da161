import pytest
from fastapi.testclient import TestClient

from api_endpoints import app, get_db
import queries

# ---------- TEST FIXTURES ----------

@pytest.fixture(scope="function")
def client(db_session):
    """Override get_db dependency for FastAPI TestClient."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def seeded_client(client):
    r = client.post("/seed")
    assert r.status_code == 201
    return client

# ---------- TEST DATA HELPERS ----------

def create_pattern_dict(name="user_login", table="users", **columns):
    data = {"name": name, "table": table, "frequency": 1}
    data.update(columns)
    return data

# ---------- HAPPY PATH TESTS ----------

def test_schema_ddl_postgres(client):
    r = client.get("/schema/ddl")
    assert r.status_code == 200
    assert "CREATE TABLE users" in r.text
    assert "SET search_path TO airbnb" in r.text
    assert "trg_bookings_updated_at" in r.text

def test_schema_ddl_partitioned_variant(client):
    r = client.get("/schema/ddl", params={"variant": "partitioned"})
    assert r.status_code == 200
    assert "PARTITION BY RANGE (start_date)" in r.text

def test_normalization_canonical_is_clean(client):
    r = client.get("/schema/normalization")
    assert r.status_code == 200
    assert r.json() == []

def test_normalization_legacy_flags_total_price(client):
    r = client.get("/schema/normalization", params={"variant": "legacy"})
    assert r.status_code == 200
    flagged = [(v["table"], v["dependent"]) for v in r.json()]
    assert ("bookings", "total_price") in flagged

def test_variant_reconciliation(client):
    r = client.get("/schema/variants/legacy")
    assert r.status_code == 200
    places = next(t for t in r.json() if t["table"] == "places")
    assert places["canonical_table"] == "properties"
    assert places["renames"]["pricepernight"] == "price_per_night"
    assert "ALTER TABLE places RENAME TO properties;" in places["statements"]

def test_list_queries(client):
    r = client.get("/queries/")
    assert r.status_code == 200
    names = [q["name"] for q in r.json()]
    assert names == list(queries.CATALOG)
    assert all(q["sql"].startswith("SELECT") or q["sql"].startswith("WITH") for q in r.json())

def test_seed_loads_once(client):
    r = client.post("/seed")
    assert r.status_code == 201
    assert r.json()["loaded"] is True
    assert r.json()["counts"] == {
        "users": 5, "properties": 3, "bookings": 4, "payments": 2, "reviews": 2, "messages": 2,
    }
    r2 = client.post("/seed")
    assert r2.status_code == 200
    assert r2.json()["loaded"] is False
    assert r2.json()["counts"]["users"] == 5

def test_run_query(seeded_client):
    r = seeded_client.get("/queries/bookings_per_user")
    assert r.status_code == 200
    rows = r.json()
    assert len(rows) == 5
    assert [row["total_bookings"] for row in rows[:2]] == [2, 2]

def test_explain_query(seeded_client):
    r = seeded_client.get("/queries/bookings_after/explain")
    assert r.status_code == 200
    body = r.json()
    assert body["dialect"] == "sqlite"
    assert body["query"] == "bookings_after"
    assert body["plan"]
    assert body["wall_ms"] >= 0

def test_recommend_indexes(client):
    data = {
        "patterns": [create_pattern_dict(equality=["email"])],
        "include_existing": False,
    }
    r = client.post("/indexes/recommendations", json=data)
    assert r.status_code == 200
    recs = r.json()
    assert recs[0]["name"] == "idx_users_email"
    assert recs[0]["ddl"] == "CREATE INDEX IF NOT EXISTS idx_users_email ON users (email);"

def test_recommend_indexes_respects_existing(client):
    data = {"patterns": [create_pattern_dict(equality=["email"])]}
    r = client.post("/indexes/recommendations", json=data)
    assert r.status_code == 200
    assert r.json() == []

def test_partition_plan(client):
    params = {"start": "2023-01-01", "end": "2025-12-31", "lo": "2025-01-01", "hi": "2025-03-31"}
    r = client.get("/partitions/plan", params=params)
    assert r.status_code == 200
    body = r.json()
    assert [p["name"] for p in body["partitions"]] == ["bookings_2023", "bookings_2024", "bookings_2025"]
    assert body["pruned"] == ["bookings_2025"]
    assert "CREATE TABLE bookings_2024 PARTITION OF bookings" in body["ddl"]

def test_reports(seeded_client):
    for kind, heading in [
        ("normalization", "# Normalization"),
        ("partition", "# Partitioning"),
        ("performance", "# Booking details"),
        ("index", "# Index optimization"),
    ]:
        r = seeded_client.get(f"/reports/{kind}")
        assert r.status_code == 200
        assert r.text.startswith(heading)

def test_report_saved(seeded_client, tmp_path, monkeypatch):
    monkeypatch.setattr("config.REPORTS_DIR", str(tmp_path))
    r = seeded_client.get("/reports/normalization", params={"save": True})
    assert r.status_code == 200
    assert (tmp_path / "normalization_report.md").read_text() == r.text

# ---------- EDGE CASE TESTS ----------

def test_schema_ddl_unknown_dialect(client):
    r = client.get("/schema/ddl", params={"dialect": "oracle"})
    assert r.status_code == 400

def test_unknown_variant(client):
    assert client.get("/schema/ddl", params={"variant": "nope"}).status_code == 404
    assert client.get("/schema/normalization", params={"variant": "nope"}).status_code == 404
    r = client.get("/schema/variants/nope")
    assert r.status_code == 404
    assert "Unknown schema variant" in r.text

def test_unknown_query(client):
    r = client.get("/queries/nope")
    assert r.status_code == 404
    assert "Unknown query" in r.text
    assert client.get("/queries/nope/explain").status_code == 404

def test_recommend_indexes_requires_patterns(client):
    r = client.post("/indexes/recommendations", json={"patterns": []})
    assert r.status_code == 422

def test_recommend_indexes_rejects_bad_frequency(client):
    data = {"patterns": [create_pattern_dict(equality=["email"], frequency=0)]}
    r = client.post("/indexes/recommendations", json=data)
    assert r.status_code == 422

def test_partition_plan_bad_granularity(client):
    r = client.get("/partitions/plan", params={"start": "2025-01-01", "end": "2025-12-31", "granularity": "weekly"})
    assert r.status_code == 400
    assert "granularity" in r.text

def test_partition_plan_end_before_start(client):
    r = client.get("/partitions/plan", params={"start": "2025-01-01", "end": "2024-01-01"})
    assert r.status_code == 400

def test_partition_plan_inverted_prune_range(client):
    params = {"start": "2025-01-01", "end": "2025-12-31", "lo": "2025-06-01", "hi": "2025-01-01"}
    r = client.get("/partitions/plan", params=params)
    assert r.status_code == 400

def test_partition_plan_past_last_date(client):
    r = client.get("/partitions/plan", params={"start": "9999-01-01", "end": "9999-06-01"})
    assert r.status_code == 400
    assert "9999-12-31" in r.text

def test_partition_plan_too_many_partitions(client):
    r = client.get("/partitions/plan", params={"start": "2000-01-01", "end": "2099-12-31", "granularity": "monthly"})
    assert r.status_code == 400
    assert "limit" in r.text

def test_unknown_report(client):
    r = client.get("/reports/nope")
    assert r.status_code == 404
