import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from signage_ledger.exceptions import InvalidStateError, NotFoundError, ValidationError
from signage_ledger.models.audit_log import AuditLog
from signage_ledger.models.commission import CommissionLedgerEntry, CommissionStatus, CommissionTier
from signage_ledger.schemas.commission import CommissionDraft, CommissionEntryFilters
from signage_ledger.services.ledger_service import LedgerService

from tests.conftest import NOW


def make_draft(**overrides) -> CommissionDraft:
    values = dict(
        tier=CommissionTier.TIER1,
        source_invoice_id="inv-1",
        beneficiary_id="aff-1",
        source_ref="user-1",
        source_confirmed_at=NOW,
        base_amount=Decimal("1000.00"),
        percentage_applied=Decimal("10"),
        reference_month="2026-03",
        lock_days=30,
    )
    values.update(overrides)
    return CommissionDraft(**values)


@pytest.fixture
def ledger(db, clock):
    return LedgerService(db, clock=clock, batch_max_size=5)


async def count_entries(db) -> int:
    return (await db.execute(select(func.count()).select_from(CommissionLedgerEntry))).scalar()


class TestCreate:

    async def test_creates_pending_entry_with_frozen_values(self, ledger, clock):
        entry, created = await ledger.create_if_absent(make_draft())

        assert created is True
        assert entry.amount == Decimal("100.00")
        assert entry.percentage_applied == Decimal("10")
        assert entry.status == CommissionStatus.PENDING.value
        assert entry.available_at == NOW + timedelta(days=30)

    async def test_same_key_is_suppressed(self, ledger, db):
        first, _ = await ledger.create_if_absent(make_draft())
        second, created = await ledger.create_if_absent(make_draft(percentage_applied=Decimal("50")))

        assert created is False
        assert second.id == first.id
        assert second.amount == Decimal("100.00")
        assert await count_entries(db) == 1

    async def test_other_tier_or_beneficiary_is_a_new_entry(self, ledger, db):
        await ledger.create_if_absent(make_draft())
        await ledger.create_if_absent(make_draft(tier=CommissionTier.TIER2, beneficiary_id="aff-2"))
        await ledger.create_if_absent(make_draft(beneficiary_id="aff-3"))
        assert await count_entries(db) == 3

    async def test_lost_insert_race_returns_stored_entry(self, ledger, db, monkeypatch):
        stored, _ = await ledger.create_if_absent(make_draft())
        real_find = ledger.find_by_key
        calls = []

        async def stale_find(*key):
            # First lookup misses, as if the other writer had not committed yet
            calls.append(key)
            if len(calls) == 1:
                return None
            return await real_find(*key)

        monkeypatch.setattr(ledger, "find_by_key", stale_find)
        entry, created = await ledger.create_if_absent(make_draft())

        assert created is False
        assert entry.id == stored.id
        assert await count_entries(db) == 1

    async def test_invalid_percentage_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.create_if_absent(make_draft(percentage_applied=Decimal("101")))


class TestTransition:

    async def test_paid_then_cancel_fails(self, ledger, db):
        entry, _ = await ledger.create_if_absent(make_draft())
        paid = await ledger.transition(entry.id, CommissionStatus.PAID, "admin-1")

        assert paid.status == CommissionStatus.PAID.value
        assert paid.paid_by == "admin-1"
        assert paid.paid_at is not None

        with pytest.raises(InvalidStateError):
            await ledger.transition(entry.id, CommissionStatus.CANCELLED, "admin-1")

        reloaded = await ledger.get_entry(entry.id)
        assert reloaded.status == CommissionStatus.PAID.value

    async def test_cancel_records_reason_and_actor(self, ledger):
        entry, _ = await ledger.create_if_absent(make_draft())
        cancelled = await ledger.transition(entry.id, "CANCELLED", "admin-2", reason="refunded")

        assert cancelled.status == CommissionStatus.CANCELLED.value
        assert cancelled.cancelled_by == "admin-2"
        assert cancelled.status_reason == "refunded"

    async def test_paying_twice_fails(self, ledger):
        entry, _ = await ledger.create_if_absent(make_draft())
        await ledger.transition(entry.id, CommissionStatus.PAID, "admin-1")
        with pytest.raises(InvalidStateError):
            await ledger.transition(entry.id, CommissionStatus.PAID, "admin-1")

    async def test_pending_is_not_a_target(self, ledger):
        entry, _ = await ledger.create_if_absent(make_draft())
        with pytest.raises(ValidationError):
            await ledger.transition(entry.id, CommissionStatus.PENDING, "admin-1")

    async def test_unknown_entry(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.transition(uuid.uuid4(), CommissionStatus.PAID, "admin-1")

    async def test_actor_required(self, ledger):
        entry, _ = await ledger.create_if_absent(make_draft())
        with pytest.raises(ValidationError):
            await ledger.transition(entry.id, CommissionStatus.PAID, "")

    async def test_transition_is_audited(self, ledger, db):
        entry, _ = await ledger.create_if_absent(make_draft())
        await ledger.transition(entry.id, CommissionStatus.PAID, "admin-1")

        result = await db.execute(select(AuditLog).where(AuditLog.action == "MARK_PAID"))
        log = result.scalar_one()
        assert log.entity_id == entry.id
        assert log.actor_id == "admin-1"
        assert log.old_values == {"status": "PENDING"}


class TestBatchTransition:

    async def test_partial_success(self, ledger):
        a, _ = await ledger.create_if_absent(make_draft(source_invoice_id="inv-a"))
        b, _ = await ledger.create_if_absent(make_draft(source_invoice_id="inv-b"))
        c, _ = await ledger.create_if_absent(make_draft(source_invoice_id="inv-c"))
        await ledger.transition(c.id, CommissionStatus.CANCELLED, "admin-1")

        result = await ledger.batch_transition([a.id, b.id, c.id], CommissionStatus.PAID, "admin-1")

        assert result.processed == 3
        assert result.success_count == 2
        assert result.fail_count == 1
        failed = [r for r in result.results if not r.success]
        assert failed[0].id == c.id
        assert "terminal" in failed[0].reason
        assert (await ledger.get_entry(a.id)).status == CommissionStatus.PAID.value
        assert (await ledger.get_entry(b.id)).status == CommissionStatus.PAID.value

    async def test_unknown_id_does_not_abort_batch(self, ledger):
        a, _ = await ledger.create_if_absent(make_draft())
        missing = uuid.uuid4()

        result = await ledger.batch_transition([missing, a.id], CommissionStatus.PAID, "admin-1")

        assert result.success_count == 1
        assert result.results[0].success is False
        assert "not found" in result.results[0].reason

    async def test_batch_size_cap(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.batch_transition(
                [uuid.uuid4() for _ in range(6)], CommissionStatus.PAID, "admin-1"
            )

    async def test_empty_batch_rejected(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.batch_transition([], CommissionStatus.PAID, "admin-1")


class TestBalances:

    async def test_locked_available_paid(self, ledger, clock):
        locked, _ = await ledger.create_if_absent(make_draft(source_invoice_id="inv-1"))
        clock.advance(days=40)
        await ledger.create_if_absent(make_draft(source_invoice_id="inv-2", base_amount=Decimal("500")))
        clock.advance(days=10)
        # inv-1 unlocked 20 days ago, inv-2 still locked
        balance = await ledger.balances_for("aff-1")
        assert balance.available == Decimal("100.00")
        assert balance.locked == Decimal("50.00")
        assert balance.paid == Decimal("0.00")

        await ledger.transition(locked.id, CommissionStatus.PAID, "admin-1")
        balance = await ledger.balances_for("aff-1")
        assert balance.available == Decimal("0.00")
        assert balance.paid == Decimal("100.00")

    async def test_becomes_available_at_exact_instant(self, ledger, clock):
        await ledger.create_if_absent(make_draft())
        clock.advance(days=30)
        balance = await ledger.balances_for("aff-1")
        assert balance.available == Decimal("100.00")
        assert balance.locked == Decimal("0.00")

    async def test_cancelled_counts_nowhere(self, ledger):
        entry, _ = await ledger.create_if_absent(make_draft())
        await ledger.transition(entry.id, CommissionStatus.CANCELLED, "admin-1")

        stats = await ledger.stats_for("aff-1", Decimal("50"))
        assert stats.locked == stats.available == stats.paid == Decimal("0.00")
        assert stats.total_earnings == Decimal("0.00")

    async def test_stats_per_tier_and_withdrawable(self, ledger, clock):
        await ledger.create_if_absent(make_draft(source_invoice_id="inv-1"))
        await ledger.create_if_absent(make_draft(
            source_invoice_id="inv-2", tier=CommissionTier.TIER2, percentage_applied=Decimal("5"),
        ))
        stats = await ledger.stats_for("aff-1", Decimal("50"))
        assert stats.tier1_earnings == Decimal("100.00")
        assert stats.tier2_earnings == Decimal("50.00")
        assert stats.total_earnings == Decimal("150.00")
        assert stats.withdrawable is False

        clock.advance(days=31)
        stats = await ledger.stats_for("aff-1", Decimal("50"))
        assert stats.available == Decimal("150.00")
        assert stats.withdrawable is True


class TestListing:

    async def test_filters_and_summary(self, ledger):
        a, _ = await ledger.create_if_absent(make_draft(source_invoice_id="inv-1", reference_month="2026-01"))
        await ledger.create_if_absent(make_draft(source_invoice_id="inv-2", reference_month="2026-02"))
        await ledger.create_if_absent(make_draft(source_invoice_id="inv-3", beneficiary_id="aff-2"))
        await ledger.transition(a.id, CommissionStatus.PAID, "admin-1")

        items, total = await ledger.list_entries(CommissionEntryFilters(beneficiary_id="aff-1"))
        assert total == 2
        assert {e.source_invoice_id for e in items} == {"inv-1", "inv-2"}

        items, total = await ledger.list_entries(
            CommissionEntryFilters(start_month="2026-02", end_month="2026-03")
        )
        assert total == 2

        summary = await ledger.summarize(CommissionEntryFilters(beneficiary_id="aff-1"))
        assert summary.total_paid == Decimal("100.00")
        assert summary.total_pending == Decimal("100.00")
        assert summary.grand_total == Decimal("200.00")
        assert summary.entries_count == 2
