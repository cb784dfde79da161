import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import ddl
import seed

# ---------- TEST FIXTURES ----------

# One shared in-memory connection, so TestClient worker threads see the same database
TEST_DATABASE_URL = "sqlite://"

@pytest.fixture(scope="function")
def engine():
    engine = ddl.make_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    ddl.create_schema(engine)
    yield engine
    ddl.drop_schema(engine)
    engine.dispose()

@pytest.fixture(scope="function")
def db_session(engine):
    """A new DB session for each test."""
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()
    yield session
    session.close()

@pytest.fixture(scope="function")
def seeded(db_session):
    seed.load_seed(db_session)
    return db_session
