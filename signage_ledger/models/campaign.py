"""Campaign budgets (from quotes) and play logs (usage telemetry)."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column, validates

from signage_ledger.core.clock import as_utc
from signage_ledger.database import Base
from signage_ledger.db_types import UUIDType, MoneyType


class CampaignBudget(Base):
    """Contracted budget and play goal of a campaign, taken from its quote."""
    __tablename__ = "campaign_budgets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    campaign_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    campaign_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    advertiser_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    budget: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    goal_plays: Mapped[int] = mapped_column(Integer, nullable=False)
    quoted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CampaignBudget(campaign='{self.campaign_id}', budget={self.budget}, goal={self.goal_plays})>"


class PlayLog(Base):
    """One play of a campaign on a monitor."""
    __tablename__ = "play_logs"
    __table_args__ = (
        Index("ix_play_logs_occurred_at", "occurred_at"),
        Index("ix_play_logs_monitor_occurred", "monitor_id", "occurred_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    monitor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    campaign_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @validates("occurred_at")
    def _normalise_occurred_at(self, key, value):
        return as_utc(value)

    def __repr__(self) -> str:
        return f"<PlayLog(monitor='{self.monitor_id}', campaign='{self.campaign_id}', at={self.occurred_at})>"
