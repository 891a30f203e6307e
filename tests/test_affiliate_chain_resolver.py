from typing import Dict, List, Optional

from signage_ledger.services.affiliate_chain_resolver import AffiliateChainResolver, ChainResolution
from signage_ledger.services.lookups import DatabaseReferralLookup

from tests.conftest import seed_referrals


class InMemoryReferrals:
    """Referral graph that records every lookup."""

    def __init__(self, edges: Dict[str, str]):
        self.edges = edges
        self.calls: List[str] = []

    async def referrer_of(self, user_id: str) -> Optional[str]:
        self.calls.append(user_id)
        return self.edges.get(user_id)


class TestResolve:

    async def test_depth_cutoff(self):
        # D referred by C, C by B, B by A
        lookup = InMemoryReferrals({"D": "C", "C": "B", "B": "A"})
        chain = await AffiliateChainResolver(lookup).resolve("D")

        assert chain == ChainResolution("C", "B")
        assert "B" not in lookup.calls

    async def test_single_level(self):
        chain = await AffiliateChainResolver(InMemoryReferrals({"D": "C"})).resolve("D")
        assert chain == ChainResolution("C", None)

    async def test_no_referrer(self):
        chain = await AffiliateChainResolver(InMemoryReferrals({})).resolve("D")
        assert chain.is_empty
        assert chain == ChainResolution(None, None)

    async def test_self_referral_yields_nothing(self):
        chain = await AffiliateChainResolver(InMemoryReferrals({"D": "D"})).resolve("D")
        assert chain == ChainResolution(None, None)

    async def test_two_cycle_drops_tier2(self):
        chain = await AffiliateChainResolver(InMemoryReferrals({"D": "C", "C": "D"})).resolve("D")
        assert chain == ChainResolution("C", None)

    async def test_tier1_referring_itself_drops_tier2(self):
        chain = await AffiliateChainResolver(InMemoryReferrals({"D": "C", "C": "C"})).resolve("D")
        assert chain == ChainResolution("C", None)

    async def test_long_cycle_is_bounded(self):
        lookup = InMemoryReferrals({"A": "B", "B": "C", "C": "A"})
        chain = await AffiliateChainResolver(lookup).resolve("A")

        assert chain == ChainResolution("B", "C")
        assert len(lookup.calls) == 2


class TestDatabaseLookup:

    async def test_reads_referral_edges(self, db):
        await seed_referrals(db, {"D": "C", "C": "B", "B": "A"})
        chain = await AffiliateChainResolver(DatabaseReferralLookup(db)).resolve("D")
        assert chain == ChainResolution("C", "B")
