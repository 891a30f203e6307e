"""Campaign pricing quotes."""
from typing import Annotated

from fastapi import APIRouter, Depends

from signage_ledger.api.deps import DB, require_capability
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.schemas.quote import QuoteRequest, QuoteResult
from signage_ledger.services.campaign_service import CampaignService
from signage_ledger.services.quote_service import QuoteEngine

router = APIRouter()


@router.post("", response_model=QuoteResult)
async def create_quote(
    request: QuoteRequest,
    db: DB,
    actor: Annotated[Actor, Depends(require_capability(Capability.QUOTES_CREATE))],
):
    """
    Price a campaign.

    With a campaign_id the quoted total and play count are stored as that
    campaign's budget and goal for settlement.
    """
    engine = QuoteEngine(pricing=request.pricing, policy=request.policy)
    result = engine.quote(
        request.terminals,
        plays_per_day=request.plays_per_day,
        duration_days=request.duration_days,
        slot_duration_sec=request.slot_duration_sec,
        commission_percent=request.commission_percent,
        geo_filter=request.geo_filter,
    )
    if request.campaign_id:
        budget = QuoteEngine.campaign_budget_for(result, request.campaign_id, request.campaign_name)
        await CampaignService(db).record_budget(budget)
    return result
