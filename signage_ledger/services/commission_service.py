"""
Payment-confirmed trigger.

Turns a confirmed invoice into ledger entries:
- SUBSCRIPTION invoices pay TIER1 / TIER2 affiliates of the paying user
- CONTRACT invoices pay the sales agent frozen on the contract

Commission failures are logged and reported in the outcome; they never
propagate into the payment flow that called us.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from signage_ledger.core.clock import Clock, reference_month, utc_now
from signage_ledger.exceptions import ConfigurationError, LedgerError, ValidationError
from signage_ledger.models.commission import CommissionTier
from signage_ledger.schemas.commission import (
    CommissionDraft,
    CommissionEntryResponse,
    PaymentOutcome,
)
from signage_ledger.schemas.events import (
    AffiliateSettingsSnapshot,
    InvoiceKind,
    PaymentConfirmed,
)
from signage_ledger.services.affiliate_chain_resolver import AffiliateChainResolver
from signage_ledger.services.commission_calculator import CommissionCalculator
from signage_ledger.services.ledger_service import LedgerService
from signage_ledger.services.lookups import (
    AffiliateSettingsSource,
    ContractSnapshotLookup,
    DatabaseAffiliateSettingsSource,
    DatabaseContractSnapshotLookup,
    DatabaseReferralLookup,
    ReferralLookup,
)

logger = logging.getLogger(__name__)


class CommissionService:
    """Creates the commission entries owed for a confirmed payment."""

    def __init__(
        self,
        db: AsyncSession,
        referral_lookup: Optional[ReferralLookup] = None,
        settings_source: Optional[AffiliateSettingsSource] = None,
        contract_lookup: Optional[ContractSnapshotLookup] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.ledger = LedgerService(db, clock=clock)
        self.resolver = AffiliateChainResolver(referral_lookup or DatabaseReferralLookup(db))
        self.settings_source = settings_source or DatabaseAffiliateSettingsSource(db)
        self.contract_lookup = contract_lookup or DatabaseContractSnapshotLookup(db)

    async def handle_payment_confirmed(self, event: PaymentConfirmed) -> PaymentOutcome:
        """Entry point for the gateway. Never raises."""
        try:
            if event.amount < 0:
                raise ValidationError(
                    f"Invoice amount must not be negative, got {event.amount}",
                    invoice_id=event.invoice_id,
                )
            if event.amount == 0:
                logger.info(f"No commission for invoice {event.invoice_id}: amount is zero")
                return PaymentOutcome(invoice_id=event.invoice_id, skipped_reason="Invoice amount is zero")
            if event.invoice_kind == InvoiceKind.SUBSCRIPTION:
                return await self.process_subscription_payment(event)
            return await self.process_contract_payment(event)
        except ConfigurationError as e:
            logger.info(f"Commission skipped for invoice {event.invoice_id}: {e.reason}")
            return PaymentOutcome(invoice_id=event.invoice_id, skipped_reason=e.reason)
        except LedgerError as e:
            logger.error(f"Commission processing failed for invoice {event.invoice_id}: {e.reason}")
            return PaymentOutcome(invoice_id=event.invoice_id, errors=[e.reason])
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error processing commissions for invoice {event.invoice_id}: {e}")
            return PaymentOutcome(invoice_id=event.invoice_id, errors=["Database error"])

    # ==================== Flows ====================

    @staticmethod
    def _check_settings(snapshot: AffiliateSettingsSnapshot) -> None:
        if not snapshot.enabled:
            raise ConfigurationError("Affiliate program is disabled")
        for name, value in (("l1_percent", snapshot.l1_percent), ("l2_percent", snapshot.l2_percent)):
            if value < 0 or value > 100:
                raise ConfigurationError(f"Affiliate {name} out of range: {value}")
        if snapshot.l1_percent + snapshot.l2_percent > 100:
            raise ConfigurationError("Affiliate tier percentages add up to more than 100")

    async def process_subscription_payment(self, event: PaymentConfirmed) -> PaymentOutcome:
        """TIER1 / TIER2 entries at the rates in effect right now."""
        # Read once; both tiers use the same snapshot
        snapshot = await self.settings_source.snapshot()
        self._check_settings(snapshot)

        outcome = PaymentOutcome(invoice_id=event.invoice_id)
        chain = await self.resolver.resolve(event.payer_ref)
        if chain.is_empty:
            outcome.skipped_reason = "No referrer for paying user"
            logger.info(f"No affiliate commission for invoice {event.invoice_id}: payer has no referrer")
            return outcome

        month = event.reference_month or reference_month(event.confirmed_at)
        tiers = [(CommissionTier.TIER1, chain.tier1, snapshot.l1_percent)]
        if chain.tier2:
            tiers.append((CommissionTier.TIER2, chain.tier2, snapshot.l2_percent))

        for tier, beneficiary_id, percent in tiers:
            draft = CommissionDraft(
                tier=tier,
                source_invoice_id=event.invoice_id,
                beneficiary_id=beneficiary_id,
                source_ref=event.payer_ref,
                source_confirmed_at=event.confirmed_at,
                base_amount=event.amount,
                percentage_applied=percent,
                reference_month=month,
                lock_days=snapshot.lock_days,
                settings_snapshot=snapshot.as_dict(),
            )
            await self._record(draft, outcome)
        return outcome

    async def process_contract_payment(self, event: PaymentConfirmed) -> PaymentOutcome:
        """
        One AGENT entry at the contract's frozen rate.

        The agent's current rate and active flag are not consulted.
        """
        outcome = PaymentOutcome(invoice_id=event.invoice_id)
        contract = await self.contract_lookup.get(event.payer_ref)
        if contract is None or not contract.sales_agent_id:
            outcome.skipped_reason = "Contract has no sales agent"
            logger.info(f"No agent commission for invoice {event.invoice_id}: contract {event.payer_ref} has no agent")
            return outcome

        CommissionCalculator.validate_percent(contract.rate_percent)
        # Lock period is global; the program's enabled flag only gates affiliates
        affiliate_settings = await self.settings_source.snapshot()
        draft = CommissionDraft(
            tier=CommissionTier.AGENT,
            source_invoice_id=event.invoice_id,
            beneficiary_id=contract.sales_agent_id,
            source_ref=contract.contract_id,
            source_confirmed_at=event.confirmed_at,
            base_amount=event.amount,
            percentage_applied=contract.rate_percent,
            reference_month=event.reference_month or reference_month(event.confirmed_at),
            lock_days=affiliate_settings.lock_days,
            settings_snapshot={**contract.as_dict(), "lock_days": affiliate_settings.lock_days},
        )
        await self._record(draft, outcome)
        return outcome

    async def _record(self, draft: CommissionDraft, outcome: PaymentOutcome) -> None:
        """Create one entry; a failure is reported without dropping the others."""
        try:
            entry, created = await self.ledger.create_if_absent(draft)
        except LedgerError as e:
            logger.error(
                f"Commission {draft.tier.value} for invoice {draft.source_invoice_id} failed: {e.reason}"
            )
            outcome.errors.append(f"{draft.tier.value}: {e.reason}")
            return
        response = CommissionEntryResponse.model_validate(entry)
        if created:
            outcome.created.append(response)
        else:
            outcome.suppressed.append(response)
