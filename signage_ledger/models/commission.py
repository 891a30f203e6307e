"""Commission ledger models.

One append-only row per (source invoice, tier, beneficiary):
- TIER1 / TIER2 affiliate commissions on SaaS subscription invoices
- AGENT commissions on advertiser contract invoices
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Text, CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from signage_ledger.database import Base
from signage_ledger.db_types import UUIDType, JSONType, MoneyType, PercentType


class CommissionTier(str, Enum):
    """Who the commission is for."""
    TIER1 = "TIER1"     # Direct referrer of the paying account
    TIER2 = "TIER2"     # Referrer's referrer
    AGENT = "AGENT"     # Sales agent on a signed contract


class CommissionStatus(str, Enum):
    """Ledger entry status."""
    PENDING = "PENDING"         # Earned, locked until available_at
    PAID = "PAID"               # Paid out (terminal)
    CANCELLED = "CANCELLED"     # Cancelled by an operator (terminal)


class CommissionLedgerEntry(Base):
    """
    A single commission owed to one beneficiary for one paid invoice.

    Rates are frozen at creation and entries are never deleted.
    """
    __tablename__ = "commission_ledger_entries"
    __table_args__ = (
        UniqueConstraint(
            "source_invoice_id", "tier", "beneficiary_id",
            name="uq_commission_ledger_invoice_tier_beneficiary",
        ),
        CheckConstraint("amount >= 0", name="ck_commission_ledger_amount_non_negative"),
        CheckConstraint(
            "percentage_applied >= 0 AND percentage_applied <= 100",
            name="ck_commission_ledger_percentage_range",
        ),
        Index("ix_commission_ledger_beneficiary_status", "beneficiary_id", "status"),
        Index("ix_commission_ledger_reference_month", "reference_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    tier: Mapped[str] = mapped_column(String(10), nullable=False, index=True)

    # Source
    source_invoice_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_ref: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Paying user id (affiliate tiers) or contract id (agent)"
    )
    source_confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the payment gateway confirmed the invoice"
    )

    # Beneficiary
    beneficiary_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Values
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    percentage_applied: Mapped[Decimal] = mapped_column(
        PercentType,
        nullable=False,
        comment="Rate frozen at creation; never re-read from settings"
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    reference_month: Mapped[str] = mapped_column(String(7), nullable=False, comment="YYYY-MM")
    settings_snapshot: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Copy of the settings/contract snapshot used at creation"
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionStatus.PENDING.value,
        nullable=False
    )
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionLedgerEntry(invoice='{self.source_invoice_id}', tier='{self.tier}', "
            f"beneficiary='{self.beneficiary_id}', amount={self.amount}, status='{self.status}')>"
        )
