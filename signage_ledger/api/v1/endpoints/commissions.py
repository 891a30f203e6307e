"""API endpoints for the commission ledger."""
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from signage_ledger.api.deps import DB, require_capability
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.models.commission import CommissionStatus, CommissionTier
from signage_ledger.schemas.commission import (
    BalanceResponse,
    BatchTransitionRequest,
    BatchTransitionResult,
    BeneficiaryStatsResponse,
    CommissionEntryFilters,
    CommissionEntryListResponse,
    CommissionEntryResponse,
    CommissionSummary,
    TransitionRequest,
)
from signage_ledger.services.ledger_service import LedgerService
from signage_ledger.services.lookups import DatabaseAffiliateSettingsSource

router = APIRouter()

Reader = Annotated[Actor, Depends(require_capability(Capability.LEDGER_READ))]
Operator = Annotated[Actor, Depends(require_capability(Capability.LEDGER_TRANSITION))]


def _filters(
    beneficiary_id: Optional[str] = None,
    tier: Optional[CommissionTier] = None,
    status: Optional[CommissionStatus] = None,
    source_invoice_id: Optional[str] = None,
    start_month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    end_month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
) -> CommissionEntryFilters:
    return CommissionEntryFilters(
        beneficiary_id=beneficiary_id,
        tier=tier,
        status=status,
        source_invoice_id=source_invoice_id,
        start_month=start_month,
        end_month=end_month,
    )


Filters = Annotated[CommissionEntryFilters, Depends(_filters)]


# ==================== Listing ====================

@router.get("", response_model=CommissionEntryListResponse)
async def list_commission_entries(
    db: DB,
    actor: Reader,
    filters: Filters,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List ledger entries, newest first."""
    items, total = await LedgerService(db).list_entries(filters, skip=skip, limit=limit)
    return CommissionEntryListResponse(
        items=[CommissionEntryResponse.model_validate(e) for e in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/summary", response_model=CommissionSummary)
async def commission_summary(db: DB, actor: Reader, filters: Filters):
    """Pending / paid / cancelled totals over the filtered entries."""
    return await LedgerService(db).summarize(filters)


# ==================== Beneficiary dashboards ====================

@router.get("/balances/{beneficiary_id}", response_model=BalanceResponse)
async def get_balances(beneficiary_id: str, db: DB, actor: Reader):
    """Locked, available and paid totals."""
    return await LedgerService(db).balances_for(beneficiary_id)


@router.get("/stats/{beneficiary_id}", response_model=BeneficiaryStatsResponse)
async def get_beneficiary_stats(beneficiary_id: str, db: DB, actor: Reader):
    """Balances plus earnings per tier and whether a withdrawal can be requested."""
    snapshot = await DatabaseAffiliateSettingsSource(db).snapshot()
    return await LedgerService(db).stats_for(beneficiary_id, snapshot.min_withdrawal)


# ==================== Transitions ====================

@router.post("/batch", response_model=BatchTransitionResult)
async def batch_transition(request: BatchTransitionRequest, db: DB, actor: Operator):
    """
    Mark several entries PAID or CANCELLED.

    Each id succeeds or fails on its own; see `results` for per-id reasons.
    """
    return await LedgerService(db).batch_transition(
        request.ids, request.status, actor.id, request.reason
    )


@router.get("/{entry_id}", response_model=CommissionEntryResponse)
async def get_commission_entry(entry_id: UUID, db: DB, actor: Reader):
    return await LedgerService(db).get_entry(entry_id)


@router.post("/{entry_id}/transition", response_model=CommissionEntryResponse)
async def transition_commission_entry(
    entry_id: UUID,
    request: TransitionRequest,
    db: DB,
    actor: Operator,
):
    """Mark one PENDING entry PAID or CANCELLED. Terminal entries answer 409."""
    return await LedgerService(db).transition(entry_id, request.status, actor.id, request.reason)
