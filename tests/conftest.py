"""Pytest fixtures for testing"""

import pytest
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from debt_reconciler.api.main import create_app
from debt_reconciler.config import ReconciliationConfig
from debt_reconciler.infrastructure.database.models import Base
from debt_reconciler.infrastructure.database.session import get_db
from factories import CUTOFF, FakeDebtProvider, FakeNameResolver, FakeSalesProvider


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def config() -> ReconciliationConfig:
    return ReconciliationConfig(payment_cutoff_date=CUTOFF)


@pytest.fixture
def sales_provider() -> FakeSalesProvider:
    return FakeSalesProvider()


@pytest.fixture
def debt_provider() -> FakeDebtProvider:
    return FakeDebtProvider()


@pytest.fixture
def name_resolver() -> FakeNameResolver:
    return FakeNameResolver()


@pytest.fixture
def session_factory():
    """Session factory for code that opens its own sessions (aggregation workers)"""
    return TestingSessionLocal


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(
    db: Session,
    config: ReconciliationConfig,
    sales_provider: FakeSalesProvider,
    debt_provider: FakeDebtProvider,
    name_resolver: FakeNameResolver,
) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with test database and fake collaborators"""
    app = create_app(
        session_factory=TestingSessionLocal,
        sales_provider=sales_provider,
        debt_provider=debt_provider,
        name_resolver=name_resolver,
        config=config,
    )

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.state.orchestrator.shutdown(wait=True)
