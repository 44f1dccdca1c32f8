"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import List, Optional


class BillingRunResponse(BaseModel):
    """Response for the billing cron trigger"""

    success: bool = True
    processed: int = Field(..., description="Tenants whose billing day is today")
    charged: int
    failed: int
    skipped: int = Field(0, description="Entries already paid this month")
    month: str = Field(..., description="Billing month as YYYY-MM")


class TenantPreviewItem(BaseModel):
    tenant_id: str
    name: str
    billing_day: int
    candidate_count: int
    amount_minor_total: int


class BillingPreviewResponse(BaseModel):
    """Response for the billing dry-run"""

    month: str
    billing_date: str
    tenants: List[TenantPreviewItem]


class LedgerEntryItem(BaseModel):
    """Single monthly charge entry"""

    entry_id: str
    student_id: str
    class_id: str
    month: str
    amount_minor: int
    status: str
    display_status: str
    attempts: int
    paid_at: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class LedgerResponse(BaseModel):
    """Response for GET /v1/ledger"""

    tenant_id: str
    entries: List[LedgerEntryItem]
