"""
Settlement batch engine.

Aggregates attributed value per payee and period into one Settlement with
its details:
- LOCATION_OWNER: plays on the owner's monitors, valued at each campaign's
  budget / goal plays, times the owner's share
- SALES_AGENT: the agent's non-cancelled AGENT ledger entries

Regenerating a (target, period) replaces the previous statement or leaves it
untouched when nothing changed. Runs for the same key are serialised in
process by an asyncio lock and across processes by the unique constraint.
"""
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from signage_ledger.config import settings
from signage_ledger.core.clock import (
    Clock,
    as_utc,
    end_of_day_exclusive,
    last_day_of_month,
    start_of_day,
    utc_now,
)
from signage_ledger.core.locks import KeyedLocks
from signage_ledger.exceptions import LedgerError, NotFoundError, ValidationError
from signage_ledger.models.commission import CommissionLedgerEntry, CommissionStatus, CommissionTier
from signage_ledger.models.settlement import (
    Settlement,
    SettlementDetail,
    SettlementStatus,
    SettlementTargetRecord,
    SettlementType,
)
from signage_ledger.schemas.settlement import SettlementResponse, SettlementRunResult, SettlementTarget
from signage_ledger.services.audit_service import AuditService
from signage_ledger.services.commission_calculator import quantize_money
from signage_ledger.services.lookups import (
    CampaignBudgetLookup,
    DatabaseCampaignBudgetLookup,
    DatabaseUsageFeed,
    UsageFeed,
)
from signage_ledger.services.play_value_attributor import PlayValueAttributor

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# (target_id, period_start, period_end)
_settlement_locks = KeyedLocks()


@dataclass
class SettlementLine:
    gross_value: Decimal
    share_percent: Decimal
    amount: Decimal
    plays: int = 0
    campaign_id: Optional[str] = None
    value_per_play: Optional[Decimal] = None
    ledger_entry_id: Optional[uuid.UUID] = None
    source_invoice_id: Optional[str] = None

    @property
    def signature(self) -> tuple:
        return (self.campaign_id, self.ledger_entry_id, self.plays, self.amount)


class SettlementService:
    """Generates and reads settlement statements."""

    def __init__(
        self,
        db: AsyncSession,
        usage_feed: Optional[UsageFeed] = None,
        budget_lookup: Optional[CampaignBudgetLookup] = None,
        grace_days: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.usage_feed = usage_feed or DatabaseUsageFeed(db)
        self.budget_lookup = budget_lookup or DatabaseCampaignBudgetLookup(db)
        self.grace_days = settings.SETTLEMENT_GRACE_DAYS if grace_days is None else grace_days
        self.clock = clock

    # ==================== Generation ====================

    async def generate(
        self,
        period_start: date,
        period_end: date,
        targets: Sequence[SettlementTarget],
        actor_id: str = "system",
    ) -> SettlementRunResult:
        """Settle every target for [period_start, period_end], both days inclusive."""
        if period_end < period_start:
            raise ValidationError("period_end must not be before period_start")
        if not targets:
            raise ValidationError("At least one settlement target is required")

        result = SettlementRunResult(period_start=period_start, period_end=period_end)
        attributor = PlayValueAttributor()
        anomalies: List[str] = []

        for target in targets:
            key = (target.target_id, period_start, period_end)
            async with _settlement_locks.hold(key):
                try:
                    state, settlement = await self._settle_target(
                        target, period_start, period_end, actor_id, attributor, anomalies
                    )
                except (LedgerError, SQLAlchemyError) as e:
                    await self.db.rollback()
                    reason = e.reason if isinstance(e, LedgerError) else "Database error"
                    logger.error(f"Settlement failed for target {target.target_id}: {e}")
                    result.errors.append(f"{target.target_id}: {reason}")
                    continue

            if settlement is None:
                result.empty_targets.append(target.target_id)
                continue
            if state == "unchanged":
                result.unchanged.append(target.target_id)
            result.settlements.append(SettlementResponse.model_validate(settlement))
            result.total_amount += settlement.total_amount

        result.anomalies = attributor.anomalies + anomalies
        logger.info(
            f"Settlement run {period_start}..{period_end}: {len(result.settlements)} settlements "
            f"({len(result.unchanged)} unchanged), {len(result.empty_targets)} empty, "
            f"{len(result.errors)} errors, total={result.total_amount}"
        )
        return result

    async def _settle_target(
        self,
        target: SettlementTarget,
        period_start: date,
        period_end: date,
        actor_id: str,
        attributor: PlayValueAttributor,
        anomalies: List[str],
    ) -> Tuple[str, Optional[Settlement]]:
        if target.target_type == SettlementType.LOCATION_OWNER:
            lines = await self._location_owner_lines(target, period_start, period_end, attributor, anomalies)
        else:
            lines = await self._sales_agent_lines(target, period_start, period_end)
        return await self._write(target, period_start, period_end, lines, actor_id)

    async def _location_owner_lines(
        self,
        target: SettlementTarget,
        period_start: date,
        period_end: date,
        attributor: PlayValueAttributor,
        anomalies: List[str],
    ) -> List[SettlementLine]:
        plays: Dict[str, int] = defaultdict(int)
        values: Dict[str, Decimal] = defaultdict(Decimal)
        per_play: Dict[str, Decimal] = {}
        missing_budget = set()

        records = self.usage_feed.records(
            start_of_day(period_start), end_of_day_exclusive(period_end), target.monitor_ids
        )
        async for record in records:
            if not record.campaign_id:
                continue
            budget = await self.budget_lookup.get(record.campaign_id)
            if budget is None:
                missing_budget.add(record.campaign_id)
                continue
            value = attributor.value_of(record, budget.budget, budget.goal_plays)
            if value == ZERO:
                continue
            plays[record.campaign_id] += 1
            values[record.campaign_id] += value
            per_play[record.campaign_id] = value

        for campaign_id in sorted(missing_budget):
            message = f"Campaign {campaign_id} has no budget; its plays were not settled"
            if message not in anomalies:
                anomalies.append(message)
                logger.warning(message)

        share = target.share_percent
        return [
            SettlementLine(
                campaign_id=campaign_id,
                plays=plays[campaign_id],
                value_per_play=per_play[campaign_id],
                gross_value=quantize_money(values[campaign_id]),
                share_percent=share,
                amount=quantize_money(values[campaign_id] * share / 100),
            )
            for campaign_id in sorted(plays)
        ]

    def attribution_time(self, entry: CommissionLedgerEntry) -> datetime:
        """
        When an agent entry counts for settlement.

        Its confirmation time, unless the entry was only recorded after the
        confirmation month plus the grace window closed; then its creation time.
        """
        created = as_utc(entry.created_at)
        if entry.source_confirmed_at is None:
            return created
        confirmed = as_utc(entry.source_confirmed_at)
        cutoff = end_of_day_exclusive(last_day_of_month(confirmed.date()) + timedelta(days=self.grace_days))
        return confirmed if created < cutoff else created

    async def _sales_agent_lines(
        self,
        target: SettlementTarget,
        period_start: date,
        period_end: date,
    ) -> List[SettlementLine]:
        start, end = start_of_day(period_start), end_of_day_exclusive(period_end)
        result = await self.db.execute(
            select(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.tier == CommissionTier.AGENT.value,
                CommissionLedgerEntry.beneficiary_id == target.target_id,
                CommissionLedgerEntry.status != CommissionStatus.CANCELLED.value,
                or_(
                    and_(
                        CommissionLedgerEntry.source_confirmed_at >= start,
                        CommissionLedgerEntry.source_confirmed_at < end,
                    ),
                    and_(
                        CommissionLedgerEntry.created_at >= start,
                        CommissionLedgerEntry.created_at < end,
                    ),
                ),
            )
            .order_by(CommissionLedgerEntry.created_at, CommissionLedgerEntry.id)
        )

        share = target.share_percent
        lines = []
        for entry in result.scalars().all():
            if not start <= self.attribution_time(entry) < end:
                continue
            lines.append(
                SettlementLine(
                    ledger_entry_id=entry.id,
                    source_invoice_id=entry.source_invoice_id,
                    gross_value=entry.amount,
                    share_percent=share,
                    amount=quantize_money(entry.amount * share / 100),
                )
            )
        return lines

    # ==================== Persistence ====================

    async def _find(self, target_id: str, period_start: date, period_end: date) -> Optional[Settlement]:
        result = await self.db.execute(
            select(Settlement)
            .options(selectinload(Settlement.details))
            .where(
                Settlement.target_id == target_id,
                Settlement.period_start == period_start,
                Settlement.period_end == period_end,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _matches(existing: Settlement, target: SettlementTarget, lines: List[SettlementLine]) -> bool:
        if existing.target_type != target.target_type.value or existing.share_percent != target.share_percent:
            return False
        stored = [(d.campaign_id, d.ledger_entry_id, d.plays, d.amount) for d in existing.details]
        return stored == [line.signature for line in lines]

    async def _write(
        self,
        target: SettlementTarget,
        period_start: date,
        period_end: date,
        lines: List[SettlementLine],
        actor_id: str,
    ) -> Tuple[str, Optional[Settlement]]:
        existing = await self._find(target.target_id, period_start, period_end)
        audit = AuditService(self.db)

        if not lines:
            if existing is not None:
                await audit.log_settlement(
                    "REMOVE", existing.id, target.target_id, actor_id,
                    old_values={"total_amount": str(existing.total_amount), "revision": existing.revision},
                )
                await self.db.delete(existing)
                await self.db.commit()
                logger.info(f"Settlement removed for {target.target_id}: no activity in period")
            return "empty", None

        if existing is not None and self._matches(existing, target, lines):
            return "unchanged", existing

        revision = 1
        old_values = None
        if existing is not None:
            revision = existing.revision + 1
            old_values = {"total_amount": str(existing.total_amount), "revision": existing.revision}
            await self.db.delete(existing)
            await self.db.flush()

        settlement = Settlement(
            id=uuid.uuid4(),
            target_id=target.target_id,
            target_type=target.target_type.value,
            period_start=period_start,
            period_end=period_end,
            gross_value=quantize_money(sum((line.gross_value for line in lines), ZERO)),
            share_percent=target.share_percent,
            total_amount=quantize_money(sum((line.amount for line in lines), ZERO)),
            total_plays=sum(line.plays for line in lines),
            status=SettlementStatus.DRAFT.value,
            revision=revision,
            generated_by=actor_id,
            created_at=self.clock(),
            details=[
                SettlementDetail(
                    id=uuid.uuid4(),
                    line_number=number,
                    campaign_id=line.campaign_id,
                    ledger_entry_id=line.ledger_entry_id,
                    source_invoice_id=line.source_invoice_id,
                    plays=line.plays,
                    value_per_play=line.value_per_play,
                    gross_value=line.gross_value,
                    share_percent=line.share_percent,
                    amount=line.amount,
                )
                for number, line in enumerate(lines, start=1)
            ],
        )
        self.db.add(settlement)
        await self.db.flush()

        state = "replaced" if existing is not None else "created"
        await audit.log_settlement(
            "REPLACE" if existing is not None else "GENERATE",
            settlement.id, target.target_id, actor_id,
            old_values=old_values,
            new_values={
                "total_amount": str(settlement.total_amount),
                "lines": len(lines),
                "revision": revision,
            },
        )
        await self.db.commit()
        logger.info(
            f"Settlement {state} for {target.target_id} {period_start}..{period_end}: "
            f"{settlement.total_amount} over {len(lines)} lines"
        )
        return state, settlement

    # ==================== Reads ====================

    async def get_settlement(self, settlement_id: uuid.UUID) -> Settlement:
        result = await self.db.execute(
            select(Settlement)
            .options(selectinload(Settlement.details))
            .where(Settlement.id == settlement_id)
        )
        settlement = result.scalar_one_or_none()
        if settlement is None:
            raise NotFoundError(f"Settlement {settlement_id} not found", settlement_id=str(settlement_id))
        return settlement

    async def list_settlements(
        self,
        target_id: Optional[str] = None,
        target_type: Optional[SettlementType] = None,
        period_from: Optional[date] = None,
        period_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[Sequence[Settlement], int]:
        """Settlements whose period overlaps [period_from, period_to]."""
        conditions = []
        if target_id:
            conditions.append(Settlement.target_id == target_id)
        if target_type:
            conditions.append(Settlement.target_type == target_type.value)
        if period_from:
            conditions.append(Settlement.period_end >= period_from)
        if period_to:
            conditions.append(Settlement.period_start <= period_to)

        count_query = select(func.count()).select_from(Settlement)
        query = select(Settlement).options(selectinload(Settlement.details))
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Settlement.period_start.desc(), Settlement.target_id).offset(skip).limit(limit)
        )
        return result.scalars().all(), total

    async def registered_targets(self) -> List[SettlementTarget]:
        """Active targets settled by the scheduled monthly run."""
        result = await self.db.execute(
            select(SettlementTargetRecord)
            .where(SettlementTargetRecord.is_active == True)  # noqa: E712
            .order_by(SettlementTargetRecord.target_id)
        )
        return [
            SettlementTarget(
                target_id=record.target_id,
                target_type=SettlementType(record.target_type),
                share_percent=record.share_percent,
                monitor_ids=list(record.monitor_ids or []),
            )
            for record in result.scalars().all()
        ]
