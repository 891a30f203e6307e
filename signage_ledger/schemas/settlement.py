"""Pydantic schemas for settlement generation and listing."""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from signage_ledger.schemas.base import BaseResponseSchema, BaseCreateSchema
from signage_ledger.models.settlement import SettlementType


class SettlementTarget(BaseCreateSchema):
    """
    A payee to settle.

    Location owners share in the value of plays on their monitors; sales
    agents are settled from their AGENT ledger entries.
    """
    target_id: str = Field(..., min_length=1, max_length=64)
    target_type: SettlementType
    share_percent: Decimal = Field(Decimal("100"), ge=0, le=100)
    monitor_ids: List[str] = []

    @field_validator("share_percent")
    @classmethod
    def quantize_share(cls, v):
        # Stored as Numeric(5, 2)
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @model_validator(mode="after")
    def check_monitors(self):
        if self.target_type == SettlementType.LOCATION_OWNER and not self.monitor_ids:
            raise ValueError("location owner targets need at least one monitor id")
        return self


class GenerateSettlementRequest(BaseCreateSchema):
    period_start: date
    period_end: date
    targets: List[SettlementTarget] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class SettlementDetailResponse(BaseResponseSchema):
    id: UUID
    line_number: int
    campaign_id: Optional[str] = None
    ledger_entry_id: Optional[UUID] = None
    source_invoice_id: Optional[str] = None
    plays: int
    value_per_play: Optional[Decimal] = None
    gross_value: Decimal
    share_percent: Decimal
    amount: Decimal


class SettlementResponse(BaseResponseSchema):
    id: UUID
    target_id: str
    target_type: SettlementType
    period_start: date
    period_end: date
    gross_value: Decimal
    share_percent: Decimal
    total_amount: Decimal
    total_plays: int
    status: str
    revision: int
    generated_by: Optional[str] = None
    created_at: datetime
    details: List[SettlementDetailResponse] = []


class SettlementListResponse(BaseModel):
    items: List[SettlementResponse]
    total: int
    skip: int = 0
    limit: int = 50


class SettlementRunResult(BaseModel):
    """Summary of one generate() call."""
    period_start: date
    period_end: date
    settlements: List[SettlementResponse] = []
    unchanged: List[str] = []
    empty_targets: List[str] = []
    errors: List[str] = []
    anomalies: List[str] = []
    total_amount: Decimal = Decimal("0")

    @property
    def success(self) -> bool:
        return not self.errors
