from typing import Annotated

from fastapi import APIRouter, Depends

from signage_ledger.api.deps import DB, require_capability
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.schemas.events import AffiliateSettingsSnapshot
from signage_ledger.services.lookups import DatabaseAffiliateSettingsSource

router = APIRouter()


@router.get("/affiliate", response_model=AffiliateSettingsSnapshot)
async def get_affiliate_settings(
    db: DB,
    actor: Annotated[Actor, Depends(require_capability(Capability.SETTINGS_READ))],
):
    """Affiliate settings new payments will be processed with."""
    return await DatabaseAffiliateSettingsSource(db).snapshot()
