import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.core.clock import Clock, utc_now
from signage_ledger.models.campaign import CampaignBudget
from signage_ledger.schemas.events import CampaignBudgetSnapshot

logger = logging.getLogger(__name__)


class CampaignService:
    """Stores the budget and play goal a campaign was sold at."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def record_budget(
        self,
        snapshot: CampaignBudgetSnapshot,
        advertiser_id: Optional[str] = None,
    ) -> CampaignBudget:
        """Insert or re-quote a campaign budget. Settlements already written are not touched."""
        result = await self.db.execute(
            select(CampaignBudget).where(CampaignBudget.campaign_id == snapshot.campaign_id)
        )
        budget = result.scalar_one_or_none()
        if budget is None:
            budget = CampaignBudget(campaign_id=snapshot.campaign_id)
            self.db.add(budget)

        budget.campaign_name = snapshot.campaign_name or budget.campaign_name
        budget.advertiser_id = advertiser_id or budget.advertiser_id
        budget.budget = snapshot.budget
        budget.goal_plays = snapshot.goal_plays
        budget.quoted_at = self.clock()

        await self.db.commit()
        await self.db.refresh(budget)
        logger.info(
            f"Campaign budget recorded: {snapshot.campaign_id} budget={snapshot.budget} goal={snapshot.goal_plays}"
        )
        return budget
