from signage_ledger.api.v1.endpoints import (
    payments,
    commissions,
    settlements,
    quotes,
    settings,
)

__all__ = ["payments", "commissions", "settlements", "quotes", "settings"]
