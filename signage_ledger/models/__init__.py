# Import all models so Base.metadata sees every table
from signage_ledger.models.commission import CommissionLedgerEntry, CommissionTier, CommissionStatus
from signage_ledger.models.affiliate import (
    AffiliateSettingsRecord,
    ReferralEdge,
    ContractCommissionSnapshotRecord,
)
from signage_ledger.models.campaign import CampaignBudget, PlayLog
from signage_ledger.models.settlement import (
    Settlement,
    SettlementDetail,
    SettlementTargetRecord,
    SettlementType,
    SettlementStatus,
)
from signage_ledger.models.audit_log import AuditLog

__all__ = [
    "CommissionLedgerEntry",
    "CommissionTier",
    "CommissionStatus",
    "AffiliateSettingsRecord",
    "ReferralEdge",
    "ContractCommissionSnapshotRecord",
    "CampaignBudget",
    "PlayLog",
    "Settlement",
    "SettlementDetail",
    "SettlementTargetRecord",
    "SettlementType",
    "SettlementStatus",
    "AuditLog",
]
