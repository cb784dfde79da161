import logging

from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.schema import CreateIndex, CreateTable

import config
import models_sqlalchemy as models

logger = logging.getLogger(__name__)

DIALECTS = {
    "postgresql": postgresql.dialect,
    "sqlite": sqlite.dialect,
}

TIMESTAMP_FUNCTION = """CREATE OR REPLACE FUNCTION {schema}.fn_update_timestamp()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;"""

TIMESTAMP_TRIGGER = """CREATE TRIGGER trg_{table}_updated_at
BEFORE UPDATE ON {schema}.{table}
FOR EACH ROW
EXECUTE FUNCTION {schema}.fn_update_timestamp();"""


def enable_sqlite_foreign_keys(engine):
    """SQLite ignores REFERENCES ... ON DELETE unless the pragma is set per connection."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def make_engine(url=None, **kwargs):
    url = url or config.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        return enable_sqlite_foreign_keys(create_engine(url, **kwargs))
    return create_engine(url, **kwargs)


def create_schema(engine, metadata=None):
    metadata = metadata if metadata is not None else models.Base.metadata
    logger.info("Creating %d tables on %s", len(metadata.tables), engine.url.render_as_string(hide_password=True))
    metadata.create_all(bind=engine)


def drop_schema(engine, metadata=None):
    metadata = metadata if metadata is not None else models.Base.metadata
    logger.info("Dropping %d tables on %s", len(metadata.tables), engine.url.render_as_string(hide_password=True))
    metadata.drop_all(bind=engine)


def get_dialect(name):
    try:
        return DIALECTS[name]()
    except KeyError:
        raise ValueError(f"Unsupported dialect: {name}") from None


def compile_statement(ddl_element, dialect):
    return str(ddl_element.compile(dialect=dialect)).strip() + ";"


def table_statements(table, dialect):
    statements = [compile_statement(CreateTable(table), dialect)]
    for index in sorted(table.indexes, key=lambda i: i.name):
        statements.append(compile_statement(CreateIndex(index), dialect))
    return statements


def render_ddl(metadata=None, dialect_name="postgresql", schema=None):
    """Render the provisioning script for ``metadata``.

    On PostgreSQL the script creates ``schema``, puts it on the search path and
    installs the ``updated_at`` trigger for the timestamped tables. Other
    dialects get plain CREATE TABLE / CREATE INDEX statements.
    """
    metadata = metadata if metadata is not None else models.Base.metadata
    dialect = get_dialect(dialect_name)
    schema = schema or config.PG_SCHEMA
    postgres = dialect_name == "postgresql"

    sections = []
    if postgres:
        sections.append(f"CREATE SCHEMA IF NOT EXISTS {schema} AUTHORIZATION CURRENT_USER;\nSET search_path TO {schema};")
    for table in metadata.sorted_tables:
        sections.append("\n\n".join(table_statements(table, dialect)))
    if postgres:
        triggers = [TIMESTAMP_FUNCTION.format(schema=schema)]
        for name in models.TIMESTAMPED_TABLES:
            # the trigger writes NEW.updated_at
            if name in metadata.tables and "updated_at" in metadata.tables[name].c:
                triggers.append(TIMESTAMP_TRIGGER.format(schema=schema, table=name))
        sections.append("\n\n".join(triggers))
    logger.debug("Rendered %s DDL for %d tables", dialect_name, len(metadata.tables))
    return "\n\n".join(sections) + "\n"
