"""Payloads consumed from collaborators (payment gateway, referral graph, telemetry)."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from signage_ledger.core.clock import as_utc
from signage_ledger.schemas.base import BaseCreateSchema, SnapshotSchema


class InvoiceKind(str, Enum):
    """Which trigger flow a paid invoice goes through."""
    SUBSCRIPTION = "SUBSCRIPTION"   # SaaS subscription -> affiliate tiers
    CONTRACT = "CONTRACT"           # Advertiser contract -> sales agent


class PaymentConfirmed(BaseCreateSchema):
    """
    A payment confirmed by the gateway collaborator.

    Authenticity is verified upstream. `payer_ref` is the paying user id for
    subscriptions and the contract id for contract invoices.
    """
    invoice_id: str = Field(..., min_length=1, max_length=64)
    invoice_kind: InvoiceKind
    payer_ref: str = Field(..., min_length=1, max_length=64)
    amount: Decimal
    confirmed_at: datetime
    reference_month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")

    @field_validator("confirmed_at")
    @classmethod
    def normalise_confirmed_at(cls, v):
        # Stored as UTC; SQLite keeps no offset
        return as_utc(v)


class AffiliateSettingsSnapshot(SnapshotSchema):
    """Affiliate settings as read at the moment a payment is processed."""
    enabled: bool
    l1_percent: Decimal
    l2_percent: Decimal
    lock_days: int
    min_withdrawal: Decimal

    def as_dict(self) -> dict:
        return self.model_dump(mode="json")


class ContractCommissionSnapshot(SnapshotSchema):
    """Sales agent and rate fixed at contract signing."""
    contract_id: str
    sales_agent_id: str
    rate_percent: Decimal
    signed_at: Optional[datetime] = None

    @field_validator("signed_at")
    @classmethod
    def normalise_signed_at(cls, v):
        return as_utc(v) if v is not None else v

    def as_dict(self) -> dict:
        return self.model_dump(mode="json")


class UsageRecord(SnapshotSchema):
    """One play of a campaign on a monitor."""
    monitor_id: str
    campaign_id: Optional[str] = None
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def normalise_occurred_at(cls, v):
        return as_utc(v)


class CampaignBudgetSnapshot(SnapshotSchema):
    """Budget figures a campaign was sold at."""
    campaign_id: str
    budget: Decimal
    goal_plays: int
    campaign_name: Optional[str] = None

    @field_validator("goal_plays")
    @classmethod
    def validate_goal(cls, v):
        if v < 0:
            raise ValueError("goal_plays must not be negative")
        return v
