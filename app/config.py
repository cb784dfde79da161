import os


# Database connection; production runs on PostgreSQL, tests and local runs on SQLite
DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./bookings.db")
# Schema the PostgreSQL script creates and puts on the search_path
PG_SCHEMA: str = os.environ.get("PG_SCHEMA", "airbnb")

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

# Index advisor: minimum distinct/rows ratio for an equality filter to earn its own index
SELECTIVITY_THRESHOLD: float = float(os.environ.get("SELECTIVITY_THRESHOLD", "0.05"))

# Partition advisor: range partitioning is not worth it below this many rows
PARTITION_MIN_ROWS: int = int(os.environ.get("PARTITION_MIN_ROWS", "1000000"))
# Share of workload frequency that must be date range scans before partitioning
PARTITION_RANGE_SHARE: float = float(os.environ.get("PARTITION_RANGE_SHARE", "0.5"))
# Upper bound on the number of partitions a single plan may create
PARTITION_MAX_COUNT: int = int(os.environ.get("PARTITION_MAX_COUNT", "600"))

REPORTS_DIR: str = os.environ.get("REPORTS_DIR", os.path.join(os.getcwd(), "reports"))
