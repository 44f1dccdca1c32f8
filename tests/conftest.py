"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from datetime import datetime, timezone
from typing import Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from school_billing.api.main import create_app
from school_billing.api.dependencies import get_clock, get_payment_client, get_settings
from school_billing.config import Settings
from school_billing.domain.models import ChargeResult, ChargeSucceeded
from school_billing.infrastructure.database.models import (
    Base,
    ClassEnrollment,
    Guardian,
    GuardianBillingProfile,
    SchoolClass,
    Student,
    Tenant,
)
from school_billing.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CRON_SECRET = "test-cron-secret"
# 15 March 2026, 09:00 UTC is the 15th in Europe/London as well
BILLING_NOW = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)


class FakeChargeProvider:
    """In-memory stand-in for the payment provider"""

    def __init__(self):
        self.calls: List[dict] = []
        # payment_method_ref -> ChargeResult or Exception
        self.outcomes: dict = {}

    async def attempt_charge(
        self,
        tenant_id: str,
        guardian_id: str,
        idempotency_key: str,
        amount_minor: int,
        payment_method_ref: Optional[str] = None,
        customer_ref: Optional[str] = None,
        connected_account_id: Optional[str] = None,
    ) -> ChargeResult:
        self.calls.append(
            {
                "tenant_id": tenant_id,
                "guardian_id": guardian_id,
                "idempotency_key": idempotency_key,
                "amount_minor": amount_minor,
                "payment_method_ref": payment_method_ref,
                "connected_account_id": connected_account_id,
            }
        )
        outcome = self.outcomes.get(payment_method_ref)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ChargeSucceeded(transaction_ref=f"pi_test_{len(self.calls)}")
        return outcome


class Seeder:
    """Builds tenants, guardians, students and enrollments for a test"""

    def __init__(self, db: Session):
        self.db = db
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    def tenant(
        self,
        billing_day: Optional[int] = 15,
        fee_due_day: Optional[int] = None,
        status: str = "ACTIVE",
        accepts_card: bool = True,
        payment_account_id: Optional[str] = "acct_test",
        name: str = "Al-Noor Madrasah",
    ) -> Tenant:
        tenant = Tenant(
            id=self._next("tenant"),
            name=name,
            status=status,
            billing_day=billing_day,
            fee_due_day=fee_due_day,
            accepts_card=accepts_card,
            payment_account_id=payment_account_id,
        )
        self.db.add(tenant)
        self.db.commit()
        return tenant

    def guardian(
        self,
        tenant: Tenant,
        autopay: Optional[bool] = True,
        payment_method_ref: Optional[str] = "pm_card_visa",
    ) -> Guardian:
        """Guardian with a billing profile; autopay=None creates no profile"""
        guardian_id = self._next("guardian")
        guardian = Guardian(id=guardian_id, name="Parent", email=f"{guardian_id}@example.com")
        self.db.add(guardian)
        if autopay is not None:
            self.db.add(
                GuardianBillingProfile(
                    tenant_id=tenant.id,
                    guardian_id=guardian_id,
                    autopay_enabled=autopay,
                    provider_customer_id=f"cus_{guardian_id}",
                    default_payment_method_id=payment_method_ref,
                )
            )
        self.db.commit()
        return guardian

    def school_class(self, tenant: Tenant, fee: Optional[int] = 5000, name: str = "Quran Level 1") -> SchoolClass:
        school_class = SchoolClass(id=self._next("class"), tenant_id=tenant.id, name=name, monthly_fee_minor=fee)
        self.db.add(school_class)
        self.db.commit()
        return school_class

    def student(
        self,
        tenant: Tenant,
        guardian: Optional[Guardian],
        classes: List[SchoolClass],
        payment_method: str = "CARD",
        is_archived: bool = False,
    ) -> Student:
        student = Student(
            id=self._next("student"),
            tenant_id=tenant.id,
            name="Student",
            is_archived=is_archived,
            payment_method=payment_method,
            primary_guardian_id=guardian.id if guardian else None,
        )
        self.db.add(student)
        for school_class in classes:
            self.db.add(ClassEnrollment(student_id=student.id, class_id=school_class.id))
        self.db.commit()
        return student


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
def session_factory() -> sessionmaker:
    """Independent sessions against the test database, standing in for a second run"""
    return TestingSessionLocal


@pytest.fixture
def seed(db: Session) -> Seeder:
    return Seeder(db)


@pytest.fixture
def provider() -> FakeChargeProvider:
    return FakeChargeProvider()


@pytest.fixture
def clock_now() -> dict:
    """Mutable "now" shared with the app's clock dependency"""
    return {"now": BILLING_NOW}


@pytest.fixture
def client(db: Session, provider: FakeChargeProvider, clock_now: dict) -> TestClient:
    """Create FastAPI test client with test database, fake provider and fixed clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_client] = lambda: provider
    app.dependency_overrides[get_clock] = lambda: (lambda: clock_now["now"])
    app.dependency_overrides[get_settings] = lambda: Settings(
        cron_secret=CRON_SECRET,
        billing_timezone="Europe/London",
    )
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {CRON_SECRET}"}
