"""API endpoints for settlement statements."""
from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from signage_ledger.api.deps import DB, require_capability
from signage_ledger.core.permissions import Actor, Capability
from signage_ledger.models.settlement import SettlementType
from signage_ledger.schemas.settlement import (
    GenerateSettlementRequest,
    SettlementListResponse,
    SettlementResponse,
    SettlementRunResult,
)
from signage_ledger.services.settlement_service import SettlementService

router = APIRouter()

Reader = Annotated[Actor, Depends(require_capability(Capability.SETTLEMENTS_READ))]


@router.post("/generate", response_model=SettlementRunResult)
async def generate_settlements(
    request: GenerateSettlementRequest,
    db: DB,
    actor: Annotated[Actor, Depends(require_capability(Capability.SETTLEMENTS_GENERATE))],
):
    """
    Generate statements for the given targets and period.

    Safe to re-run: unchanged targets keep their statement, changed ones are
    replaced and targets without activity get none.
    """
    return await SettlementService(db).generate(
        request.period_start, request.period_end, request.targets, actor_id=actor.id
    )


@router.get("", response_model=SettlementListResponse)
async def list_settlements(
    db: DB,
    actor: Reader,
    target_id: Optional[str] = None,
    target_type: Optional[SettlementType] = None,
    period_from: Optional[date] = None,
    period_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    items, total = await SettlementService(db).list_settlements(
        target_id=target_id,
        target_type=target_type,
        period_from=period_from,
        period_to=period_to,
        skip=skip,
        limit=limit,
    )
    return SettlementListResponse(
        items=[SettlementResponse.model_validate(s) for s in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{settlement_id}", response_model=SettlementResponse)
async def get_settlement(settlement_id: UUID, db: DB, actor: Reader):
    return await SettlementService(db).get_settlement(settlement_id)
