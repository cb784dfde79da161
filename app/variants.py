"""Older and alternative shapes of the marketplace schema.

``legacy`` is the first-generation layout (``places``, ``place_id``,
``date_start``/``date_end``, stored ``total_price``); ``partitioned`` is the
bookings table rebuilt for range partitioning on ``start_date``. Both are
kept as separate MetaData so they can be rendered, normalized and reconciled
against the canonical models.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, ForeignKey, MetaData, Table, Text, func
)
from sqlalchemy.dialects import postgresql

import models_sqlalchemy as models
from errors import UnknownVariantError

logger = logging.getLogger(__name__)

TABLE_ALIASES = {"places": "properties"}

COLUMN_ALIASES = {
    "place_id": "property_id",
    "date_start": "start_date",
    "date_end": "end_date",
    "pricepernight": "price_per_night",
}

# renames that only hold on one table
TABLE_COLUMN_ALIASES = {
    ("places", "user_id"): "host_id",
    ("places", "city"): "location",
}

legacy_metadata = MetaData()

Table(
    "users", legacy_metadata,
    Column("id", Integer, primary_key=True),
    Column("first_name", String(80), nullable=False),
    Column("last_name", String(80), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("phone_number", String(20)),
    Column("role", String(10), nullable=False),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

Table(
    "places", legacy_metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(150), nullable=False),
    Column("description", Text),
    Column("city", String(100), nullable=False),
    Column("pricepernight", Numeric(10, 2), nullable=False),
)

Table(
    "bookings", legacy_metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("place_id", Integer, ForeignKey("places.id"), nullable=False),
    Column("date_start", Date, nullable=False),
    Column("date_end", Date, nullable=False),
    Column("status", String(50)),
    Column("total_price", Numeric(10, 2)),
)

Table(
    "payments", legacy_metadata,
    Column("id", Integer, primary_key=True),
    Column("booking_id", Integer, ForeignKey("bookings.id"), nullable=False),
    Column("amount", Numeric(10, 2), nullable=False),
)

Table(
    "reviews", legacy_metadata,
    Column("id", Integer, primary_key=True),
    Column("place_id", Integer, ForeignKey("places.id"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("rating", Integer, nullable=False),
    Column("comment", Text),
)

partitioned_metadata = MetaData()

# the partition key has to be part of the primary key
partitioned_bookings = Table(
    "bookings", partitioned_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("property_id", Integer, nullable=False),
    Column("start_date", Date, primary_key=True),
    Column("end_date", Date, nullable=False),
    Column("status", String(50)),
    Column("total_price", Numeric(10, 2)),
    postgresql_partition_by="RANGE (start_date)",
)

VARIANTS = {
    "canonical": models.Base.metadata,
    "legacy": legacy_metadata,
    "partitioned": partitioned_metadata,
}


@dataclass
class Reconciliation:
    variant: str
    table: str
    canonical_table: str
    renames: Dict[str, str] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)

    @property
    def matches(self):
        return self.table == self.canonical_table and not (self.renames or self.missing or self.extra)


def get_variant(name):
    try:
        return VARIANTS[name]
    except KeyError:
        raise UnknownVariantError(name) from None


def canonical_column(table_name, column_name):
    return TABLE_COLUMN_ALIASES.get((table_name, column_name), COLUMN_ALIASES.get(column_name, column_name))


def reconcile(variant_table, canonical_table, variant="legacy", dialect=None):
    """Compare one variant table with its canonical counterpart.

    Statements rename columns, then the table, then add the missing columns as
    nullable. Extra columns are reported but never dropped.
    """
    dialect = dialect or postgresql.dialect()
    result = Reconciliation(variant, variant_table.name, canonical_table.name)
    mapped = {}
    for col in variant_table.columns:
        target = canonical_column(variant_table.name, col.name)
        if target in canonical_table.columns:
            mapped[target] = col.name
            if target != col.name:
                result.renames[col.name] = target
        else:
            result.extra.append(col.name)
    result.missing = [c.name for c in canonical_table.columns if c.name not in mapped]

    for old, new in result.renames.items():
        result.statements.append(f"ALTER TABLE {variant_table.name} RENAME COLUMN {old} TO {new};")
    if variant_table.name != canonical_table.name:
        result.statements.append(f"ALTER TABLE {variant_table.name} RENAME TO {canonical_table.name};")
    for name in result.missing:
        col_type = canonical_table.columns[name].type.compile(dialect=dialect)
        result.statements.append(f"ALTER TABLE {canonical_table.name} ADD COLUMN {name} {col_type};")
    return result


def reconcile_variant(name, canonical=None):
    metadata = get_variant(name)
    canonical = canonical if canonical is not None else models.Base.metadata
    results = []
    for table in metadata.sorted_tables:
        target = TABLE_ALIASES.get(table.name, table.name)
        if target not in canonical.tables:
            logger.warning("Variant %s table %s has no canonical counterpart", name, table.name)
            continue
        results.append(reconcile(table, canonical.tables[target], variant=name))
    return results
