"""Payment-confirmed events from the payment gateway."""
from typing import Annotated

from fastapi import APIRouter, Depends, status

from signage_ledger.api.deps import DB, require_capability
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.schemas.commission import PaymentOutcome
from signage_ledger.schemas.events import PaymentConfirmed
from signage_ledger.services.commission_service import CommissionService

router = APIRouter()


@router.post("/confirmed", response_model=PaymentOutcome, status_code=status.HTTP_202_ACCEPTED)
async def payment_confirmed(
    event: PaymentConfirmed,
    db: DB,
    actor: Annotated[Actor, Depends(require_capability(Capability.PAYMENTS_INGEST))],
):
    """
    Record the commissions owed for a confirmed invoice.

    Always accepted so the payment flow is never blocked; failures are
    reported in `errors`. Replaying the same invoice creates nothing new.
    """
    return await CommissionService(db).handle_payment_confirmed(event)
