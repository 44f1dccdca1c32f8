"""Data access layer for tenants, eligibility and the monthly charge ledger"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from school_billing.infrastructure.database.models import (
    ClassEnrollment,
    GuardianBillingProfile,
    MonthlyChargeEntry,
    Student,
    Tenant,
)
from school_billing.domain.exceptions import InvalidLedgerTransitionError
from school_billing.domain.ledger import next_status
from school_billing.domain.models import LedgerStatus, PaymentMethodType, TenantStatus


class TenantRepository:
    """Repository for tenant organisations"""

    def __init__(self, db: Session):
        self.db = db

    def list_collecting_tenants(self) -> List[Tenant]:
        """Active card-accepting tenants with a connected account and some billing day set"""
        return (
            self.db.query(Tenant)
            .filter(
                Tenant.status == TenantStatus.ACTIVE.value,
                Tenant.accepts_card.is_(True),
                Tenant.payment_account_id.isnot(None),
                or_(Tenant.billing_day.isnot(None), Tenant.fee_due_day.isnot(None)),
            )
            .order_by(Tenant.id)
            .all()
        )

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()


class EligibilityRepository:
    """Read-only queries feeding the eligibility rules"""

    def __init__(self, db: Session):
        self.db = db

    def load_card_students(self, tenant_id: str) -> List[Student]:
        """Unarchived CARD students with a guardian, enrollments and classes preloaded"""
        return (
            self.db.query(Student)
            .options(selectinload(Student.enrollments).selectinload(ClassEnrollment.school_class))
            .filter(
                Student.tenant_id == tenant_id,
                Student.is_archived.is_(False),
                Student.payment_method == PaymentMethodType.CARD.value,
                Student.primary_guardian_id.isnot(None),
            )
            .order_by(Student.id)
            .all()
        )

    def load_billing_profiles(self, tenant_id: str, guardian_ids: Iterable[str]) -> Dict[str, GuardianBillingProfile]:
        """Billing profiles keyed by guardian id, one query per tenant"""
        ids = set(guardian_ids)
        if not ids:
            return {}
        profiles = (
            self.db.query(GuardianBillingProfile)
            .filter(
                GuardianBillingProfile.tenant_id == tenant_id,
                GuardianBillingProfile.guardian_id.in_(ids),
            )
            .all()
        )
        return {p.guardian_id: p for p in profiles}


class LedgerRepository:
    """
    Repository for monthly charge entries.

    Every write commits immediately so the ledger reflects each step of an
    attempt even if the process dies before the run finishes.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_entry(self, student_id: str, class_id: str, month: str) -> Optional[MonthlyChargeEntry]:
        return (
            self.db.query(MonthlyChargeEntry)
            .filter(
                MonthlyChargeEntry.student_id == student_id,
                MonthlyChargeEntry.class_id == class_id,
                MonthlyChargeEntry.month == month,
            )
            .first()
        )

    def get_or_create_entry(
        self,
        tenant_id: str,
        student_id: str,
        class_id: str,
        month: str,
        amount_minor: int,
    ) -> Tuple[MonthlyChargeEntry, bool]:
        """
        Find the entry for (student, class, month) or create it as PENDING.

        An existing entry is returned untouched, including its amount. If a
        concurrent run inserts the same triple first, the unique constraint
        rejects our insert and the winner's row is read back.

        Returns:
            (entry, created)
        """
        entry = self.find_entry(student_id, class_id, month)
        if entry is not None:
            return entry, False

        entry = MonthlyChargeEntry(
            tenant_id=tenant_id,
            student_id=student_id,
            class_id=class_id,
            month=month,
            amount_minor=amount_minor,
            method=PaymentMethodType.CARD.value,
            status=LedgerStatus.PENDING.value,
            attempts=0,
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_entry(student_id, class_id, month)
            if existing is None:
                raise
            return existing, False

        return entry, True

    def reset_for_retry(self, entry: MonthlyChargeEntry) -> bool:
        """FAILED -> PENDING ahead of a new attempt"""
        return self._transition(entry, LedgerStatus.PENDING)

    def mark_paid(self, entry: MonthlyChargeEntry, reference: str, paid_at: datetime) -> bool:
        return self._transition(
            entry,
            LedgerStatus.PAID,
            paid_at=paid_at,
            reference=reference,
            notes=None,
            attempts=MonthlyChargeEntry.attempts + 1,
        )

    def mark_failed(self, entry: MonthlyChargeEntry, notes: str, reference: Optional[str] = None) -> bool:
        values = {"notes": notes, "attempts": MonthlyChargeEntry.attempts + 1}
        if reference:
            values["reference"] = reference
        return self._transition(entry, LedgerStatus.FAILED, **values)

    def unpaid_triples(self, tenant_id: str, month: str) -> Set[Tuple[str, str]]:
        """
        (student_id, class_id) pairs whose entry for the month is not PAID.

        Covers FAILED entries and PENDING ones left behind by a run that died or
        rolled back before recording an outcome.
        """
        rows = (
            self.db.query(MonthlyChargeEntry.student_id, MonthlyChargeEntry.class_id)
            .filter(
                MonthlyChargeEntry.tenant_id == tenant_id,
                MonthlyChargeEntry.month == month,
                MonthlyChargeEntry.status != LedgerStatus.PAID.value,
            )
            .all()
        )
        return {(student_id, class_id) for student_id, class_id in rows}

    def list_entries(
        self,
        tenant_id: str,
        month: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 500,
    ) -> List[MonthlyChargeEntry]:
        """Entries for a tenant, newest month first"""
        query = self.db.query(MonthlyChargeEntry).filter(MonthlyChargeEntry.tenant_id == tenant_id)
        if month:
            query = query.filter(MonthlyChargeEntry.month == month)
        if status:
            query = query.filter(MonthlyChargeEntry.status == status)
        return (
            query.order_by(
                MonthlyChargeEntry.month.desc(),
                MonthlyChargeEntry.student_id,
                MonthlyChargeEntry.class_id,
            )
            .limit(limit)
            .all()
        )

    def _transition(self, entry: MonthlyChargeEntry, target: LedgerStatus, **values) -> bool:
        """
        Compare-and-set status change.

        The UPDATE only matches while the row still has the status we read, so
        an overlapping run that already moved the entry (e.g. to PAID) wins.

        Returns:
            True if this call moved the entry, False if another run already
            left it PAID or at the target status

        Raises:
            InvalidLedgerTransitionError: If the move is not allowed, or the
                row moved somewhere else under us
        """
        current = entry.status
        next_status(current, target)

        updated = (
            self.db.query(MonthlyChargeEntry)
            .filter(MonthlyChargeEntry.id == entry.id, MonthlyChargeEntry.status == current)
            .update({"status": target.value, **values}, synchronize_session=False)
        )
        self.db.commit()

        if updated:
            return True

        # Row moved under us; commit expired the instance so this reads the stored status
        stored = entry.status
        if stored in (target.value, LedgerStatus.PAID.value):
            return False
        raise InvalidLedgerTransitionError(stored, target.value)
