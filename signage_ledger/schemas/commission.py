"""Pydantic schemas for the commission ledger."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from signage_ledger.core.clock import as_utc
from signage_ledger.schemas.base import BaseResponseSchema, BaseCreateSchema
from signage_ledger.models.commission import CommissionTier, CommissionStatus


class CommissionDraft(BaseModel):
    """Values for a new ledger entry before it is stored."""
    tier: CommissionTier
    source_invoice_id: str
    beneficiary_id: str
    source_ref: Optional[str] = None
    source_confirmed_at: Optional[datetime] = None
    base_amount: Decimal
    percentage_applied: Decimal
    reference_month: str
    lock_days: int = Field(0, ge=0)
    settings_snapshot: Optional[dict] = None

    @field_validator("source_confirmed_at")
    @classmethod
    def normalise_confirmed_at(cls, v):
        return as_utc(v) if v is not None else v

    @property
    def key(self) -> tuple:
        return (self.source_invoice_id, self.tier.value, self.beneficiary_id)


class CommissionEntryResponse(BaseResponseSchema):
    """Response schema for a ledger entry."""
    id: UUID
    tier: CommissionTier
    source_invoice_id: str
    source_ref: Optional[str] = None
    beneficiary_id: str
    base_amount: Decimal
    percentage_applied: Decimal
    amount: Decimal
    reference_month: str
    status: CommissionStatus
    status_reason: Optional[str] = None
    available_at: datetime
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    created_at: datetime


class CommissionEntryListResponse(BaseModel):
    """Response for listing entries."""
    items: List[CommissionEntryResponse]
    total: int
    skip: int = 0
    limit: int = 50


class CommissionEntryFilters(BaseModel):
    """Filters accepted by list_entries."""
    beneficiary_id: Optional[str] = None
    tier: Optional[CommissionTier] = None
    status: Optional[CommissionStatus] = None
    source_invoice_id: Optional[str] = None
    start_month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    end_month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class CommissionSummary(BaseModel):
    """Aggregate totals over a filtered entry set."""
    total_pending: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_cancelled: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")
    entries_count: int = 0


class TransitionRequest(BaseCreateSchema):
    """Move one entry to PAID or CANCELLED."""
    status: CommissionStatus
    reason: Optional[str] = Field(None, max_length=500)


class BatchTransitionRequest(BaseCreateSchema):
    """Move several entries; each id is processed independently."""
    ids: List[UUID] = Field(..., min_length=1)
    status: CommissionStatus
    reason: Optional[str] = Field(None, max_length=500)


class BatchItemResult(BaseModel):
    id: UUID
    success: bool
    reason: Optional[str] = None


class BatchTransitionResult(BaseModel):
    processed: int
    success_count: int
    fail_count: int
    results: List[BatchItemResult]


class BalanceResponse(BaseModel):
    """Locked / available / paid sums for one beneficiary."""
    beneficiary_id: str
    locked: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")


class BeneficiaryStatsResponse(BalanceResponse):
    """Dashboard statistics for an affiliate or agent."""
    tier1_earnings: Decimal = Decimal("0")
    tier2_earnings: Decimal = Decimal("0")
    agent_earnings: Decimal = Decimal("0")
    total_earnings: Decimal = Decimal("0")
    min_withdrawal: Decimal = Decimal("0")
    withdrawable: bool = False


class PaymentOutcome(BaseModel):
    """What the payment trigger did; never an exception to the payment path."""
    invoice_id: str
    created: List[CommissionEntryResponse] = []
    suppressed: List[CommissionEntryResponse] = []
    skipped_reason: Optional[str] = None
    errors: List[str] = []

    @property
    def entries(self) -> List[CommissionEntryResponse]:
        return self.created + self.suppressed
