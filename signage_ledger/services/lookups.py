"""
Collaborator lookups consumed by the engine.

Each lookup is a Protocol so other sources (HTTP clients, caches) can be
plugged in; the Database* classes read the engine's own tables.
"""
import logging
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.config import Settings, settings as app_settings
from signage_ledger.models.affiliate import (
    AffiliateSettingsRecord,
    ReferralEdge,
    ContractCommissionSnapshotRecord,
)
from signage_ledger.models.campaign import CampaignBudget, PlayLog
from signage_ledger.schemas.events import (
    AffiliateSettingsSnapshot,
    CampaignBudgetSnapshot,
    ContractCommissionSnapshot,
    UsageRecord,
)

logger = logging.getLogger(__name__)


class ReferralLookup(Protocol):
    async def referrer_of(self, user_id: str) -> Optional[str]:
        ...


class AffiliateSettingsSource(Protocol):
    async def snapshot(self) -> AffiliateSettingsSnapshot:
        ...


class ContractSnapshotLookup(Protocol):
    async def get(self, contract_id: str) -> Optional[ContractCommissionSnapshot]:
        ...


class UsageFeed(Protocol):
    def records(
        self,
        start: datetime,
        end: datetime,
        monitor_ids: Optional[Iterable[str]] = None,
    ) -> AsyncIterator[UsageRecord]:
        ...


class CampaignBudgetLookup(Protocol):
    async def get(self, campaign_id: str) -> Optional[CampaignBudgetSnapshot]:
        ...


class DatabaseReferralLookup:
    """Reads the referral_edges table; one query per hop."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def referrer_of(self, user_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(ReferralEdge.referrer_id).where(ReferralEdge.user_id == user_id)
        )
        return result.scalar_one_or_none()


class DatabaseAffiliateSettingsSource:
    """Stored settings row, falling back to configured defaults."""

    def __init__(self, db: AsyncSession, defaults: Optional[Settings] = None):
        self.db = db
        self.defaults = defaults or app_settings

    async def snapshot(self) -> AffiliateSettingsSnapshot:
        result = await self.db.execute(
            select(AffiliateSettingsRecord).order_by(AffiliateSettingsRecord.id).limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return AffiliateSettingsSnapshot(
                enabled=self.defaults.AFFILIATE_ENABLED,
                l1_percent=self.defaults.AFFILIATE_L1_PERCENT,
                l2_percent=self.defaults.AFFILIATE_L2_PERCENT,
                lock_days=self.defaults.AFFILIATE_LOCK_DAYS,
                min_withdrawal=self.defaults.AFFILIATE_MIN_WITHDRAWAL,
            )
        return AffiliateSettingsSnapshot.model_validate(record)


class DatabaseContractSnapshotLookup:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, contract_id: str) -> Optional[ContractCommissionSnapshot]:
        result = await self.db.execute(
            select(ContractCommissionSnapshotRecord).where(
                ContractCommissionSnapshotRecord.contract_id == contract_id
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return ContractCommissionSnapshot.model_validate(record)


class DatabaseUsageFeed:
    """Play logs in [start, end), optionally restricted to some monitors."""

    def __init__(self, db: AsyncSession, batch_size: int = 1000):
        self.db = db
        self.batch_size = batch_size

    async def records(
        self,
        start: datetime,
        end: datetime,
        monitor_ids: Optional[Iterable[str]] = None,
    ) -> AsyncIterator[UsageRecord]:
        query = (
            select(PlayLog)
            .where(PlayLog.occurred_at >= start, PlayLog.occurred_at < end)
            .order_by(PlayLog.occurred_at, PlayLog.id)
        )
        if monitor_ids is not None:
            query = query.where(PlayLog.monitor_id.in_(list(monitor_ids)))

        offset = 0
        while True:
            result = await self.db.execute(query.offset(offset).limit(self.batch_size))
            rows = result.scalars().all()
            for row in rows:
                yield UsageRecord(
                    monitor_id=row.monitor_id,
                    campaign_id=row.campaign_id,
                    occurred_at=row.occurred_at,
                )
            if len(rows) < self.batch_size:
                break
            offset += self.batch_size


class DatabaseCampaignBudgetLookup:
    """Campaign budgets, cached for the lifetime of the lookup."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._cache: Dict[str, Optional[CampaignBudgetSnapshot]] = {}

    async def get(self, campaign_id: str) -> Optional[CampaignBudgetSnapshot]:
        if campaign_id in self._cache:
            return self._cache[campaign_id]

        result = await self.db.execute(
            select(CampaignBudget).where(CampaignBudget.campaign_id == campaign_id)
        )
        record = result.scalar_one_or_none()
        snapshot = CampaignBudgetSnapshot.model_validate(record) if record else None
        self._cache[campaign_id] = snapshot
        return snapshot
