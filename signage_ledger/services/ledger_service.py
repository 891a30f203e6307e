"""
Commission ledger store.

Append-only: entries are created once per (invoice, tier, beneficiary) and
afterwards only change status. Amount, percentage and base never change.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.config import settings
from signage_ledger.core.clock import Clock, as_utc, utc_now
from signage_ledger.exceptions import (
    DuplicateSuppressed,
    LedgerError,
    NotFoundError,
    InvalidStateError,
    ValidationError,
)
from signage_ledger.models.commission import (
    CommissionLedgerEntry,
    CommissionStatus,
    CommissionTier,
)
from signage_ledger.schemas.commission import (
    BalanceResponse,
    BatchItemResult,
    BatchTransitionResult,
    BeneficiaryStatsResponse,
    CommissionDraft,
    CommissionEntryFilters,
    CommissionSummary,
)
from signage_ledger.services.audit_service import AuditService
from signage_ledger.services.commission_calculator import CommissionCalculator, quantize_money
from signage_ledger.services.ledger_state_machine import (
    get_transition_action,
    validate_target,
    validate_transition,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class LedgerService:
    """Creates, transitions and aggregates commission ledger entries."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        batch_max_size: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.batch_max_size = batch_max_size or settings.LEDGER_BATCH_MAX_SIZE

    # ==================== Reads ====================

    async def get_entry(self, entry_id: uuid.UUID) -> CommissionLedgerEntry:
        result = await self.db.execute(
            select(CommissionLedgerEntry).where(CommissionLedgerEntry.id == entry_id)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError(f"Commission entry {entry_id} not found", entry_id=str(entry_id))
        return entry

    async def find_by_key(
        self,
        source_invoice_id: str,
        tier: str,
        beneficiary_id: str,
    ) -> Optional[CommissionLedgerEntry]:
        result = await self.db.execute(
            select(CommissionLedgerEntry).where(
                CommissionLedgerEntry.source_invoice_id == source_invoice_id,
                CommissionLedgerEntry.tier == tier,
                CommissionLedgerEntry.beneficiary_id == beneficiary_id,
            )
        )
        return result.scalar_one_or_none()

    # ==================== Create ====================

    async def create(self, draft: CommissionDraft) -> CommissionLedgerEntry:
        """
        Insert a new PENDING entry and commit it.

        Raises DuplicateSuppressed carrying the stored entry when one already
        exists for the same key, including when a concurrent insert wins.
        """
        if not draft.beneficiary_id:
            raise ValidationError("beneficiary_id is required")

        existing = await self.find_by_key(*draft.key)
        if existing is not None:
            raise DuplicateSuppressed("Commission entry already exists", existing=existing)

        percentage = CommissionCalculator.validate_percent(draft.percentage_applied)
        amount = CommissionCalculator.amount_for(draft.base_amount, percentage)
        now = self.clock()
        entry = CommissionLedgerEntry(
            id=uuid.uuid4(),
            tier=draft.tier.value,
            source_invoice_id=draft.source_invoice_id,
            source_ref=draft.source_ref,
            source_confirmed_at=draft.source_confirmed_at,
            beneficiary_id=draft.beneficiary_id,
            base_amount=quantize_money(draft.base_amount),
            percentage_applied=percentage,
            amount=amount,
            reference_month=draft.reference_month,
            settings_snapshot=draft.settings_snapshot,
            status=CommissionStatus.PENDING.value,
            available_at=now + timedelta(days=draft.lock_days),
            created_at=now,
            updated_at=now,
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost the race on the unique key; the other writer's row stands
            await self.db.rollback()
            existing = await self.find_by_key(*draft.key)
            if existing is None:
                raise
            raise DuplicateSuppressed("Commission entry already exists", existing=existing)

        await AuditService(self.db).log(
            action="CREATE",
            entity_type="COMMISSION_ENTRY",
            entity_id=entry.id,
            actor_id="system",
            new_values={
                "tier": entry.tier,
                "beneficiary_id": entry.beneficiary_id,
                "amount": str(entry.amount),
                "source_invoice_id": entry.source_invoice_id,
            },
            description=f"{entry.tier} commission for invoice {entry.source_invoice_id}",
        )
        await self.db.commit()

        logger.info(
            f"Commission created: invoice={entry.source_invoice_id} tier={entry.tier} "
            f"beneficiary={entry.beneficiary_id} amount={entry.amount}"
        )
        return entry

    async def create_if_absent(self, draft: CommissionDraft) -> Tuple[CommissionLedgerEntry, bool]:
        """Create an entry, or return the existing one. The flag is True when created."""
        try:
            return await self.create(draft), True
        except DuplicateSuppressed as e:
            logger.info(
                f"Duplicate commission suppressed: invoice={draft.source_invoice_id} "
                f"tier={draft.tier.value} beneficiary={draft.beneficiary_id}"
            )
            return e.existing, False

    # ==================== Transitions ====================

    async def transition(
        self,
        entry_id: uuid.UUID,
        new_status,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> CommissionLedgerEntry:
        """
        Move a PENDING entry to PAID or CANCELLED.

        The write is conditional on the status read, so of two concurrent
        requests exactly one succeeds and the other gets InvalidStateError.
        """
        if not actor_id:
            raise ValidationError("actor_id is required")
        target = validate_target(new_status)

        entry = await self.get_entry(entry_id)
        current = entry.status
        validate_transition(current, target)

        now = self.clock()
        values = {"status": target, "updated_at": now}
        if target == CommissionStatus.PAID.value:
            values.update(paid_at=now, paid_by=actor_id)
        else:
            values.update(cancelled_at=now, cancelled_by=actor_id, status_reason=reason)

        result = await self.db.execute(
            update(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.id == entry_id,
                CommissionLedgerEntry.status == current,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidStateError(
                f"Commission entry {entry_id} changed status concurrently",
                entry_id=str(entry_id),
                requested_status=target,
            )

        action = get_transition_action(current, target)
        await AuditService(self.db).log_entry_transition(
            entry_id=entry_id,
            action=action,
            old_status=current,
            new_status=target,
            actor_id=actor_id,
            reason=reason,
        )
        await self.db.commit()
        await self.db.refresh(entry)

        logger.info(f"Commission {entry_id} {current} -> {target} by {actor_id}")
        return entry

    async def batch_transition(
        self,
        entry_ids: Sequence[uuid.UUID],
        new_status,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> BatchTransitionResult:
        """Transition each id independently; one failure never blocks the others."""
        if not entry_ids:
            raise ValidationError("At least one id is required")
        if len(entry_ids) > self.batch_max_size:
            raise ValidationError(
                f"Batch size {len(entry_ids)} exceeds the maximum of {self.batch_max_size}"
            )
        validate_target(new_status)

        results: List[BatchItemResult] = []
        for entry_id in entry_ids:
            try:
                await self.transition(entry_id, new_status, actor_id, reason)
                results.append(BatchItemResult(id=entry_id, success=True))
            except LedgerError as e:
                logger.warning(f"Batch transition skipped {entry_id}: {e.reason}")
                results.append(BatchItemResult(id=entry_id, success=False, reason=e.reason))
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Batch transition failed for {entry_id}: {e}")
                results.append(BatchItemResult(id=entry_id, success=False, reason="Processing error"))

        success_count = sum(1 for r in results if r.success)
        logger.info(
            f"Batch transition to {new_status}: {success_count}/{len(results)} succeeded"
        )
        return BatchTransitionResult(
            processed=len(results),
            success_count=success_count,
            fail_count=len(results) - success_count,
            results=results,
        )

    # ==================== Aggregates ====================

    async def _entries_for(self, beneficiary_id: str) -> Sequence[CommissionLedgerEntry]:
        result = await self.db.execute(
            select(CommissionLedgerEntry).where(
                CommissionLedgerEntry.beneficiary_id == beneficiary_id
            )
        )
        return result.scalars().all()

    def _balance(self, beneficiary_id: str, entries) -> BalanceResponse:
        now = self.clock()
        locked = available = paid = ZERO
        for entry in entries:
            if entry.status == CommissionStatus.PENDING.value:
                if now < as_utc(entry.available_at):
                    locked += entry.amount
                else:
                    available += entry.amount
            elif entry.status == CommissionStatus.PAID.value:
                paid += entry.amount
        return BalanceResponse(
            beneficiary_id=beneficiary_id,
            locked=quantize_money(locked),
            available=quantize_money(available),
            paid=quantize_money(paid),
        )

    async def balances_for(self, beneficiary_id: str) -> BalanceResponse:
        """
        Locked / available / paid sums.

        Availability is computed from available_at at query time; no job
        moves entries between buckets.
        """
        return self._balance(beneficiary_id, await self._entries_for(beneficiary_id))

    async def stats_for(self, beneficiary_id: str, min_withdrawal: Decimal) -> BeneficiaryStatsResponse:
        """Balances plus per-tier earnings; cancelled entries count nowhere."""
        entries = await self._entries_for(beneficiary_id)
        balance = self._balance(beneficiary_id, entries)

        earnings = {tier.value: ZERO for tier in CommissionTier}
        for entry in entries:
            if entry.status != CommissionStatus.CANCELLED.value:
                earnings[entry.tier] = earnings.get(entry.tier, ZERO) + entry.amount

        total = sum(earnings.values(), ZERO)
        return BeneficiaryStatsResponse(
            **balance.model_dump(),
            tier1_earnings=quantize_money(earnings[CommissionTier.TIER1.value]),
            tier2_earnings=quantize_money(earnings[CommissionTier.TIER2.value]),
            agent_earnings=quantize_money(earnings[CommissionTier.AGENT.value]),
            total_earnings=quantize_money(total),
            min_withdrawal=min_withdrawal,
            withdrawable=balance.available >= min_withdrawal,
        )

    # ==================== Listing ====================

    def _apply_filters(self, query, filters: CommissionEntryFilters):
        if filters.beneficiary_id:
            query = query.where(CommissionLedgerEntry.beneficiary_id == filters.beneficiary_id)
        if filters.tier:
            query = query.where(CommissionLedgerEntry.tier == filters.tier.value)
        if filters.status:
            query = query.where(CommissionLedgerEntry.status == filters.status.value)
        if filters.source_invoice_id:
            query = query.where(CommissionLedgerEntry.source_invoice_id == filters.source_invoice_id)
        # YYYY-MM compares correctly as text
        if filters.start_month:
            query = query.where(CommissionLedgerEntry.reference_month >= filters.start_month)
        if filters.end_month:
            query = query.where(CommissionLedgerEntry.reference_month <= filters.end_month)
        return query

    async def list_entries(
        self,
        filters: CommissionEntryFilters,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[Sequence[CommissionLedgerEntry], int]:
        query = self._apply_filters(select(CommissionLedgerEntry), filters)
        count_query = self._apply_filters(
            select(func.count()).select_from(CommissionLedgerEntry), filters
        )

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(
                CommissionLedgerEntry.created_at.desc(), CommissionLedgerEntry.id
            ).offset(skip).limit(limit)
        )
        return result.scalars().all(), total

    async def summarize(self, filters: CommissionEntryFilters) -> CommissionSummary:
        query = self._apply_filters(
            select(
                CommissionLedgerEntry.status,
                func.count(CommissionLedgerEntry.id),
                func.coalesce(func.sum(CommissionLedgerEntry.amount), 0),
            ).group_by(CommissionLedgerEntry.status),
            filters,
        )
        result = await self.db.execute(query)

        summary = CommissionSummary()
        for status, count, total in result.all():
            total = quantize_money(Decimal(str(total)))
            summary.entries_count += count
            if status == CommissionStatus.PENDING.value:
                summary.total_pending = total
            elif status == CommissionStatus.PAID.value:
                summary.total_paid = total
            elif status == CommissionStatus.CANCELLED.value:
                summary.total_cancelled = total
        summary.grand_total = summary.total_pending + summary.total_paid
        return summary
