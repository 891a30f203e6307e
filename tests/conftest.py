import os

# Configure before the package creates its engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from signage_ledger.database import Base, build_engine, build_session_factory
from signage_ledger import models  # noqa: F401
from signage_ledger.models.affiliate import (
    AffiliateSettingsRecord,
    ContractCommissionSnapshotRecord,
    ReferralEdge,
)
from signage_ledger.models.campaign import CampaignBudget, PlayLog


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock whose time only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ==================== Seed helpers ====================

async def seed_referrals(db, edges: dict) -> None:
    """edges: {user_id: referrer_id}"""
    for user_id, referrer_id in edges.items():
        db.add(ReferralEdge(user_id=user_id, referrer_id=referrer_id))
    await db.commit()


async def seed_affiliate_settings(
    db,
    enabled: bool = True,
    l1_percent: str = "10",
    l2_percent: str = "5",
    lock_days: int = 30,
    min_withdrawal: str = "50.00",
) -> None:
    db.add(AffiliateSettingsRecord(
        id=1,
        enabled=enabled,
        l1_percent=Decimal(l1_percent),
        l2_percent=Decimal(l2_percent),
        lock_days=lock_days,
        min_withdrawal=Decimal(min_withdrawal),
    ))
    await db.commit()


async def seed_contract(db, contract_id: str, agent_id: str, rate: str, agent_active: bool = True) -> None:
    db.add(ContractCommissionSnapshotRecord(
        contract_id=contract_id,
        sales_agent_id=agent_id,
        rate_percent=Decimal(rate),
        signed_at=NOW - timedelta(days=60),
        agent_active=agent_active,
    ))
    await db.commit()


async def seed_campaign(db, campaign_id: str, budget: str, goal_plays: int) -> None:
    db.add(CampaignBudget(campaign_id=campaign_id, budget=Decimal(budget), goal_plays=goal_plays))
    await db.commit()


async def seed_plays(db, monitor_id: str, campaign_id, count: int, start: datetime) -> None:
    for i in range(count):
        db.add(PlayLog(
            monitor_id=monitor_id,
            campaign_id=campaign_id,
            occurred_at=start + timedelta(seconds=30 * i),
            duration_seconds=15,
        ))
    await db.commit()
