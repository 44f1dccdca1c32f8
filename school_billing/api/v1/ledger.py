"""GET /v1/ledger - Read a tenant's monthly charge entries"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from school_billing.api.dependencies import get_clock, get_settings, verify_cron_secret
from school_billing.api.v1.schemas import LedgerEntryItem, LedgerResponse
from school_billing.config import Settings
from school_billing.domain.calendar import calculate_payment_status, resolve_billing_day
from school_billing.domain.models import LedgerStatus
from school_billing.infrastructure.database.session import get_db
from school_billing.infrastructure.database.repositories import LedgerRepository, TenantRepository

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.get("/ledger", response_model=LedgerResponse)
def get_ledger(
    tenant_id: str = Query(..., min_length=1, description="Tenant identifier"),
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$", description="YYYY-MM"),
    status: Optional[str] = Query(None, description="PENDING, PAID or FAILED"),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_settings),
):
    """
    Retrieve ledger entries for a tenant.

    Returns:
        Entries with their stored status and a display status that marks
        unpaid entries LATE or OVERDUE relative to the tenant's billing day
    """
    if status is not None and status not in LedgerStatus.__members__:
        raise HTTPException(status_code=400, detail="Invalid status filter")

    tenant = TenantRepository(db).get_tenant(tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")

    billing_day = resolve_billing_day(tenant.billing_day, tenant.fee_due_day)
    now = clock()
    entries = LedgerRepository(db).list_entries(tenant_id, month=month, status=status)

    items = [
        LedgerEntryItem(
            entry_id=e.id,
            student_id=e.student_id,
            class_id=e.class_id,
            month=e.month,
            amount_minor=e.amount_minor,
            status=e.status,
            display_status=calculate_payment_status(
                e.status, e.month, billing_day, e.paid_at, now, tz_name=app_settings.billing_timezone
            ),
            attempts=e.attempts,
            paid_at=e.paid_at.isoformat() if e.paid_at else None,
            reference=e.reference,
            notes=e.notes,
        )
        for e in entries
    ]

    return LedgerResponse(tenant_id=tenant_id, entries=items)
