import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.screening.app import app
from services.screening.db import get_db, init_db


@pytest.fixture
def anyio_backend():
    # Force asyncio backend so tests don't require trio.
    return "asyncio"


@pytest.fixture
def test_db_session():
    # One in-memory database per test, shared across the app's sessions via StaticPool.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    db = Session()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def screening_db(test_db_session):
    """Route every request's ``get_db`` to the per-test database."""

    def _get_db_override():
        yield test_db_session

    app.dependency_overrides[get_db] = _get_db_override
    yield test_db_session
    app.dependency_overrides.clear()
