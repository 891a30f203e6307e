"""
Referral chain resolution for affiliate commissions.

Walks at most two hops up the referral graph. The graph may be arbitrarily
deep or cyclic; the fixed depth is the only bound relied on.
"""
import logging
from typing import NamedTuple, Optional

from signage_ledger.services.lookups import ReferralLookup

logger = logging.getLogger(__name__)


class ChainResolution(NamedTuple):
    tier1: Optional[str]
    tier2: Optional[str]

    @property
    def is_empty(self) -> bool:
        return self.tier1 is None


NO_CHAIN = ChainResolution(None, None)


class AffiliateChainResolver:
    """Finds the direct referrer (TIER1) and the referrer's referrer (TIER2)."""

    MAX_DEPTH = 2

    def __init__(self, lookup: ReferralLookup):
        self.lookup = lookup

    async def resolve(self, paying_user_id: str) -> ChainResolution:
        tier1 = await self.lookup.referrer_of(paying_user_id)
        if not tier1:
            return NO_CHAIN

        if tier1 == paying_user_id:
            logger.warning(f"Self-referral ignored for user {paying_user_id}")
            return NO_CHAIN

        # Second and last hop; tier2's own referrer is never looked up
        tier2 = await self.lookup.referrer_of(tier1)
        if tier2 and tier2 in (paying_user_id, tier1):
            logger.warning(
                f"Referral loop ignored at tier 2: payer={paying_user_id} tier1={tier1} tier2={tier2}"
            )
            tier2 = None

        return ChainResolution(tier1, tier2 or None)
