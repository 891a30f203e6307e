from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from signage_ledger.models.affiliate import AffiliateSettingsRecord
from signage_ledger.models.commission import CommissionLedgerEntry, CommissionStatus, CommissionTier
from signage_ledger.schemas.events import AffiliateSettingsSnapshot, InvoiceKind, PaymentConfirmed
from signage_ledger.services.commission_calculator import CommissionCalculator
from signage_ledger.services.commission_service import CommissionService

from tests.conftest import NOW, seed_affiliate_settings, seed_contract, seed_referrals


class StaticSettings:
    """Settings source that always returns the same snapshot."""

    def __init__(self, snapshot: AffiliateSettingsSnapshot):
        self._snapshot = snapshot

    async def snapshot(self) -> AffiliateSettingsSnapshot:
        return self._snapshot


def subscription_paid(invoice_id="inv-1", payer="D", amount="1000.00", **extra) -> PaymentConfirmed:
    return PaymentConfirmed(
        invoice_id=invoice_id,
        invoice_kind=InvoiceKind.SUBSCRIPTION,
        payer_ref=payer,
        amount=Decimal(amount),
        confirmed_at=NOW,
        **extra,
    )


def contract_paid(invoice_id="cinv-1", contract="ct-1", amount="2000.00") -> PaymentConfirmed:
    return PaymentConfirmed(
        invoice_id=invoice_id,
        invoice_kind=InvoiceKind.CONTRACT,
        payer_ref=contract,
        amount=Decimal(amount),
        confirmed_at=NOW,
    )


@pytest.fixture
def service(db, clock):
    return CommissionService(db, clock=clock)


async def all_entries(db):
    result = await db.execute(select(CommissionLedgerEntry).order_by(CommissionLedgerEntry.tier))
    return result.scalars().all()


class TestSubscriptionPayments:

    async def test_both_tiers_scenario(self, db, service):
        await seed_affiliate_settings(db, l1_percent="10", l2_percent="5", lock_days=30)
        await seed_referrals(db, {"D": "C", "C": "B"})

        outcome = await service.handle_payment_confirmed(subscription_paid())

        assert outcome.errors == []
        by_tier = {e.tier: e for e in outcome.created}
        assert by_tier[CommissionTier.TIER1].beneficiary_id == "C"
        assert by_tier[CommissionTier.TIER1].amount == Decimal("100.00")
        assert by_tier[CommissionTier.TIER2].beneficiary_id == "B"
        assert by_tier[CommissionTier.TIER2].amount == Decimal("50.00")
        for entry in outcome.created:
            assert entry.status == CommissionStatus.PENDING
            assert entry.available_at == NOW + timedelta(days=30)
            assert entry.reference_month == "2026-03"

    async def test_replayed_event_creates_nothing(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "C", "C": "B"})

        await service.handle_payment_confirmed(subscription_paid())
        outcome = await service.handle_payment_confirmed(subscription_paid())

        assert outcome.created == []
        assert len(outcome.suppressed) == 2
        assert len(await all_entries(db)) == 2

    async def test_depth_cutoff(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "C", "C": "B", "B": "A"})

        await service.handle_payment_confirmed(subscription_paid())

        beneficiaries = {e.beneficiary_id for e in await all_entries(db)}
        assert beneficiaries == {"C", "B"}

    async def test_self_referral_creates_nothing(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "D"})

        outcome = await service.handle_payment_confirmed(subscription_paid())

        assert outcome.entries == []
        assert outcome.skipped_reason
        assert await all_entries(db) == []

    async def test_disabled_program_is_skipped_quietly(self, db, service):
        await seed_affiliate_settings(db, enabled=False)
        await seed_referrals(db, {"D": "C"})

        outcome = await service.handle_payment_confirmed(subscription_paid())

        assert outcome.errors == []
        assert outcome.skipped_reason == "Affiliate program is disabled"
        assert await all_entries(db) == []

    async def test_rates_frozen_at_creation(self, db, service):
        await seed_affiliate_settings(db, l1_percent="10")
        await seed_referrals(db, {"D": "C"})
        await service.handle_payment_confirmed(subscription_paid(invoice_id="inv-1"))

        record = (await db.execute(select(CommissionLedgerEntry))).scalar_one()
        settings_row = await db.get(AffiliateSettingsRecord, 1)
        settings_row.l1_percent = Decimal("30")
        await db.commit()

        await service.handle_payment_confirmed(subscription_paid(invoice_id="inv-2"))
        entries = {e.source_invoice_id: e for e in await all_entries(db)}

        assert entries["inv-1"].percentage_applied == Decimal("10")
        assert entries["inv-1"].amount == Decimal("100.00")
        assert entries["inv-2"].percentage_applied == Decimal("30")
        assert record.settings_snapshot["l1_percent"] == "10.00"

    async def test_uses_config_defaults_without_settings_row(self, db, service):
        await seed_referrals(db, {"D": "C"})
        outcome = await service.handle_payment_confirmed(subscription_paid())
        # AFFILIATE_L1_PERCENT defaults to 20
        assert outcome.created[0].amount == Decimal("200.00")

    async def test_explicit_reference_month(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "C"})
        outcome = await service.handle_payment_confirmed(subscription_paid(reference_month="2026-02"))
        assert outcome.created[0].reference_month == "2026-02"

    async def test_negative_amount_is_reported_not_raised(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "C"})

        outcome = await service.handle_payment_confirmed(subscription_paid(amount="-1.00"))

        assert outcome.errors
        assert await all_entries(db) == []

    async def test_zero_amount_invoice_is_skipped(self, db, service):
        await seed_affiliate_settings(db)
        await seed_referrals(db, {"D": "C"})

        outcome = await service.handle_payment_confirmed(subscription_paid(amount="0"))

        assert outcome.errors == []
        assert outcome.skipped_reason == "Invoice amount is zero"
        assert await all_entries(db) == []

    async def test_fractional_percent_is_stored_as_applied(self, session_factory, clock):
        source = StaticSettings(AffiliateSettingsSnapshot(
            enabled=True,
            l1_percent=Decimal("12.345"),
            l2_percent=Decimal("5"),
            lock_days=30,
            min_withdrawal=Decimal("50.00"),
        ))
        async with session_factory() as db:
            await seed_referrals(db, {"D": "C"})
            service = CommissionService(db, settings_source=source, clock=clock)
            await service.handle_payment_confirmed(subscription_paid())

        async with session_factory() as db:
            entry = (await all_entries(db))[0]
            assert entry.percentage_applied == Decimal("12.35")
            assert entry.amount == Decimal("123.50")
            assert entry.amount == CommissionCalculator.amount_for(entry.base_amount, entry.percentage_applied)


class TestContractPayments:

    async def test_agent_commission_at_contract_rate(self, db, service):
        await seed_affiliate_settings(db, lock_days=15)
        await seed_contract(db, "ct-1", "agent-1", "8")

        outcome = await service.handle_payment_confirmed(contract_paid())

        entry = outcome.created[0]
        assert entry.tier == CommissionTier.AGENT
        assert entry.beneficiary_id == "agent-1"
        assert entry.amount == Decimal("160.00")
        assert entry.source_ref == "ct-1"
        assert entry.available_at == NOW + timedelta(days=15)

    async def test_inactive_agent_still_earns(self, db, service):
        await seed_contract(db, "ct-1", "agent-1", "8", agent_active=False)
        outcome = await service.handle_payment_confirmed(contract_paid())
        assert len(outcome.created) == 1

    async def test_disabled_affiliate_program_does_not_block_agents(self, db, service):
        await seed_affiliate_settings(db, enabled=False)
        await seed_contract(db, "ct-1", "agent-1", "8")
        outcome = await service.handle_payment_confirmed(contract_paid())
        assert len(outcome.created) == 1

    async def test_contract_without_agent_is_skipped(self, db, service):
        outcome = await service.handle_payment_confirmed(contract_paid(contract="ct-unknown"))
        assert outcome.created == []
        assert outcome.skipped_reason == "Contract has no sales agent"

    async def test_replayed_contract_invoice(self, db, service):
        await seed_contract(db, "ct-1", "agent-1", "8")
        await service.handle_payment_confirmed(contract_paid())
        outcome = await service.handle_payment_confirmed(contract_paid())
        assert outcome.created == []
        assert len(outcome.suppressed) == 1
