"""Pytest fixtures for testing"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from installment_ledger.api.main import create_app
from installment_ledger.infrastructure.database.models import Base
from installment_ledger.infrastructure.database.repositories import PaymentRepository
from installment_ledger.infrastructure.database.session import get_db
from installment_ledger.domain.models import IncomingPayment
from installment_ledger.services.group_builder import GroupBuilder
from installment_ledger.services.ingestion import IngestionService
from installment_ledger.services.match_resolver import MatchResolver


# Test database
TEST_DATABASE_URL = "sqlite:///./test_ledger.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# A 3,099 purchase split into 24 payments: 23 regular payments of 129,
# payment 1 absorbs the remainder (132)
BUSINESS_NAME = "test business twin"
DEAL_DATE = date(2024, 1, 15)
DEAL_TOTAL = Decimal("3099")
REGULAR_AMOUNT = Decimal("129")
FIRST_AMOUNT = Decimal("132")
PAYMENT_TOTAL = 24


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
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def repository(db: Session) -> PaymentRepository:
    return PaymentRepository(db)


@pytest.fixture
def builder(repository: PaymentRepository) -> GroupBuilder:
    return GroupBuilder(repository, interval_days=30)


@pytest.fixture
def resolver(repository: PaymentRepository, builder: GroupBuilder) -> MatchResolver:
    return MatchResolver(
        repository,
        builder,
        exact_match_tolerance=0.01,
        orphan_match_tolerance=0.05,
        discrepancy_threshold=0.05,
    )


@pytest.fixture
def service(db: Session, resolver: MatchResolver) -> IngestionService:
    return IngestionService(db, resolver)


@pytest.fixture
def make_row() -> Callable[..., IncomingPayment]:
    """Factory for installment rows of the 3,099 / 24 reference purchase"""

    def _make_row(**overrides) -> IncomingPayment:
        index = overrides.get("payment_index", 1)
        values = dict(
            business_id="biz-1",
            business_name=BUSINESS_NAME,
            card_id="card-9999",
            deal_date=DEAL_DATE,
            payment_index=index,
            payment_total=PAYMENT_TOTAL,
            canonical_amount=FIRST_AMOUNT if index == 1 else REGULAR_AMOUNT,
            original_amount=DEAL_TOTAL,
            source_batch="batch-1",
        )
        values.update(overrides)
        return IncomingPayment(**values)

    return _make_row
