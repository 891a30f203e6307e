"""Settlement statements: one per (target, period), details per campaign or invoice."""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, Boolean, Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from signage_ledger.database import Base
from signage_ledger.db_types import UUIDType, JSONType, MoneyType, PercentType, RateType


class SettlementType(str, Enum):
    """Who the statement is for."""
    LOCATION_OWNER = "LOCATION_OWNER"   # Screen-hosting partner (revenue share)
    SALES_AGENT = "SALES_AGENT"         # Sales agent (contract commissions)


class SettlementStatus(str, Enum):
    DRAFT = "DRAFT"


class Settlement(Base):
    """
    Aggregated amount owed to one payee over one period.

    Regeneration replaces the row for the same (target, period).
    """
    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint("target_id", "period_start", "period_end", name="uq_settlement_target_period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    target_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    gross_value: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    share_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Sum of detail amounts"
    )
    total_plays: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SettlementStatus.DRAFT.value, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    generated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    details: Mapped[List["SettlementDetail"]] = relationship(
        "SettlementDetail",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="SettlementDetail.line_number",
    )

    def __repr__(self) -> str:
        return (
            f"<Settlement(target='{self.target_id}', period={self.period_start}..{self.period_end}, "
            f"total={self.total_amount})>"
        )


class SettlementDetail(Base):
    """One line of a settlement: a campaign's plays or one agent ledger entry."""
    __tablename__ = "settlement_details"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    settlement_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("settlements.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # What the line refers to
    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ledger_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    source_invoice_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    plays: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    value_per_play: Mapped[Optional[Decimal]] = mapped_column(RateType, nullable=True)
    gross_value: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    share_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    settlement: Mapped["Settlement"] = relationship("Settlement", back_populates="details")


class SettlementTargetRecord(Base):
    """A payee settled by the monthly job."""
    __tablename__ = "settlement_targets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    target_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    share_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False, default=Decimal("100"))
    monitor_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
