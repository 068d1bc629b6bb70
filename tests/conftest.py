"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from collections_engine.api.main import create_app
from collections_engine.infrastructure.database.models import (
    Base,
    CategoryRuleRecord,
    CustomerRecord,
    FollowUpRecord,
    InvoiceRecord,
    ReceiptRecord,
)
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.workers import TenantWorkerPool


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TENANT_A = "tenant_a"
TENANT_B = "tenant_b"

# Evaluation instant used across integration tests (a Monday)
AS_OF = "2025-03-10T15:00:00"


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
def pool() -> Generator[TenantWorkerPool, None, None]:
    """Small worker pool, shut down after each test"""
    workers = TenantWorkerPool(max_workers=4, per_tenant_limit=2)
    try:
        yield workers
    finally:
        workers.shutdown()


@pytest.fixture
def seeded_ledger(db: Session) -> Session:
    """
    Two tenants. Tenant A, as of 2025-03-10:

    - cust_1 Acme Traders (Beta): 50000.00 opening + 125000.00 invoiced - 75000.00 received
      = 100000.00 outstanding; invoice due 2025-01-31 still open; next follow-up tomorrow
    - cust_2 Bright Stores (Alpha): 1000.00 invoiced and paid a day early; settled
    - cust_3 Cedar Supplies (Gamma): 2000.00 invoiced, due 2025-03-31; no follow-ups

    Tenant B holds one customer that must never show up in tenant A's numbers.
    """
    db.add_all(
        [
            CustomerRecord(
                id="cust_1",
                tenant_id=TENANT_A,
                name="Acme Traders",
                category="Beta",
                opening_balance_cents=5_000_000,
                credit_limit_cents=20_000_000,
                payment_terms_days=30,
            ),
            CustomerRecord(
                id="cust_2",
                tenant_id=TENANT_A,
                name="Bright Stores",
                category="Alpha",
                payment_terms_days=10,
            ),
            CustomerRecord(
                id="cust_3",
                tenant_id=TENANT_A,
                name="Cedar Supplies",
                category="Gamma",
                payment_terms_days=30,
            ),
            CustomerRecord(
                id="cust_b1",
                tenant_id=TENANT_B,
                name="Other Tenant Co",
                category="Alpha",
                opening_balance_cents=99_999_900,
            ),
        ]
    )
    db.flush()
    db.add_all(
        [
            InvoiceRecord(
                id="inv_1", tenant_id=TENANT_A, customer_id="cust_1",
                amount_cents=12_500_000, invoice_date=date(2025, 1, 1), invoice_number="INV-001",
            ),
            InvoiceRecord(
                id="inv_2", tenant_id=TENANT_A, customer_id="cust_2",
                amount_cents=100_000, invoice_date=date(2025, 2, 1), invoice_number="INV-002",
            ),
            InvoiceRecord(
                id="inv_3", tenant_id=TENANT_A, customer_id="cust_3",
                amount_cents=200_000, invoice_date=date(2025, 3, 1), invoice_number="INV-003",
            ),
            InvoiceRecord(
                id="inv_b1", tenant_id=TENANT_B, customer_id="cust_b1",
                amount_cents=55_500, invoice_date=date(2025, 1, 5),
            ),
            ReceiptRecord(
                id="rec_1", tenant_id=TENANT_A, customer_id="cust_1",
                amount_cents=7_500_000, date=date(2025, 2, 15), receipt_type="Bank Transfer",
            ),
            ReceiptRecord(
                id="rec_2", tenant_id=TENANT_A, customer_id="cust_2",
                amount_cents=100_000, date=date(2025, 2, 10), linked_invoice_id="inv_2",
            ),
            FollowUpRecord(
                id="fu_1", tenant_id=TENANT_A, customer_id="cust_1",
                follow_up_at=datetime(2025, 3, 1, 10, 0), next_follow_up_at=datetime(2025, 3, 4, 9, 0),
                status="Completed",
            ),
            FollowUpRecord(
                id="fu_2", tenant_id=TENANT_A, customer_id="cust_1",
                follow_up_at=datetime(2025, 3, 5, 11, 0), next_follow_up_at=datetime(2025, 3, 11, 9, 0),
                remarks="Promised part payment",
            ),
            FollowUpRecord(
                id="fu_b1", tenant_id=TENANT_B, customer_id="cust_b1",
                follow_up_at=datetime(2025, 3, 1, 10, 0), next_follow_up_at=datetime(2025, 3, 10, 9, 0),
            ),
            CategoryRuleRecord(
                id="rule_1", tenant_id=TENANT_A, priority=1,
                min_balance_cents=5_000_000, min_overdue_days=30, target_category="Delta",
            ),
            CategoryRuleRecord(
                id="rule_2", tenant_id=TENANT_A, priority=2,
                max_balance_cents=0, target_category="Alpha",
            ),
        ]
    )
    db.commit()
    return db
