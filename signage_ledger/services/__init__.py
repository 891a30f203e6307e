# Services module
from signage_ledger.services.commission_calculator import CommissionCalculator
from signage_ledger.services.affiliate_chain_resolver import AffiliateChainResolver, ChainResolution
from signage_ledger.services.audit_service import AuditService
from signage_ledger.services.ledger_service import LedgerService
from signage_ledger.services.commission_service import CommissionService
from signage_ledger.services.quote_service import QuoteEngine
from signage_ledger.services.play_value_attributor import PlayValueAttributor
from signage_ledger.services.settlement_service import SettlementService
from signage_ledger.services.campaign_service import CampaignService

__all__ = [
    "CommissionCalculator",
    "AffiliateChainResolver",
    "ChainResolution",
    "AuditService",
    "LedgerService",
    "CommissionService",
    "QuoteEngine",
    "PlayValueAttributor",
    "SettlementService",
    "CampaignService",
]
