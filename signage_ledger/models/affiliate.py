"""Affiliate program configuration, referral graph and contract snapshots."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from signage_ledger.database import Base
from signage_ledger.db_types import UUIDType, MoneyType, PercentType


class AffiliateSettingsRecord(Base):
    """
    Global affiliate program settings (single row).

    Read once per payment event and copied into every entry it creates.
    """
    __tablename__ = "affiliate_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    l1_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    l2_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    lock_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    min_withdrawal: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class ReferralEdge(Base):
    """
    user -> referrer. No acyclicity is enforced; traversal is depth-bounded.
    """
    __tablename__ = "referral_edges"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    referrer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ReferralEdge(user='{self.user_id}', referrer='{self.referrer_id}')>"


class ContractCommissionSnapshotRecord(Base):
    """
    Sales agent and rate fixed when the contract was signed.

    Later changes to the agent's default rate or active flag do not touch it.
    """
    __tablename__ = "contract_commission_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    contract_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    sales_agent_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rate_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    agent_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Informational; inactive agents still earn on signed contracts"
    )

    def __repr__(self) -> str:
        return f"<ContractCommissionSnapshot(contract='{self.contract_id}', agent='{self.sales_agent_id}')>"
