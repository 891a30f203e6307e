"""
Quote Engine for campaign pricing.

This service handles:
1. Geo filtering of terminals (great-circle distance)
2. Per-terminal unit price (tier multiplier, slot length)
3. Volume discount by screen count
4. Agent commission under the configured policy
5. Audience reach estimate

Pure: no database access. The persisted budget figures come from
campaign_budget_for().
"""
import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from signage_ledger.config import settings
from signage_ledger.core.clock import utc_now
from signage_ledger.exceptions import ValidationError
from signage_ledger.schemas.events import CampaignBudgetSnapshot
from signage_ledger.schemas.quote import (
    AgentCommissionPolicy,
    GeoFilter,
    PricingConfig,
    QuoteResult,
    Terminal,
    TerminalQuote,
    TerminalTier,
)
from signage_ledger.services.commission_calculator import CommissionCalculator, quantize_money

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def filter_terminals_by_radius(terminals: Iterable[Terminal], geo: GeoFilter) -> List[Terminal]:
    """Terminals within radius_km of the centre. Terminals without coordinates are dropped."""
    selected = []
    for terminal in terminals:
        if terminal.latitude is None or terminal.longitude is None:
            continue
        distance = haversine_km(geo.center_lat, geo.center_lng, terminal.latitude, terminal.longitude)
        if distance <= geo.radius_km:
            selected.append(terminal)
    return selected


class QuoteEngine:
    """Prices a campaign over a set of terminals."""

    PRICING_VERSION = "1.0.0"
    VIEW_RATE = Decimal("0.7")           # Share of passers-by who see the screen
    OVERLAP_FACTOR = Decimal("0.8")      # Same people passing several screens
    DAYS_PER_MONTH = 30

    def __init__(
        self,
        pricing: Optional[PricingConfig] = None,
        policy: Optional[AgentCommissionPolicy] = None,
    ):
        self.pricing = pricing or PricingConfig(
            base_price_per_play=settings.PRICING_BASE_PRICE_PER_PLAY,
            reference_slot_seconds=settings.PRICING_REFERENCE_SLOT_SECONDS,
            min_monthly_price=settings.PRICING_MIN_MONTHLY_PRICE,
        )
        self.policy = policy or AgentCommissionPolicy(settings.AGENT_COMMISSION_POLICY)

    def tier_multiplier(self, tier: Optional[TerminalTier]) -> Decimal:
        return self.pricing.tier_multipliers.get(tier or TerminalTier.BRONZE, Decimal("1"))

    def volume_discount_percent(self, terminal_count: int) -> Decimal:
        """Largest discount whose threshold the screen count reaches."""
        percent = Decimal("0")
        for tier in sorted(self.pricing.volume_discounts, key=lambda d: d.min_screens):
            if terminal_count >= tier.min_screens:
                percent = tier.discount_percent
        return percent

    def unit_price(self, tier: Optional[TerminalTier], slot_duration_sec: int) -> Decimal:
        slot_factor = Decimal(slot_duration_sec) / Decimal(self.pricing.reference_slot_seconds)
        return self.pricing.base_price_per_play * self.tier_multiplier(tier) * slot_factor

    def terminal_quote(
        self,
        terminal: Terminal,
        plays_per_day: int,
        duration_days: int,
        slot_duration_sec: int,
    ) -> TerminalQuote:
        unit = self.unit_price(terminal.tier, slot_duration_sec)
        total_plays = plays_per_day * duration_days

        daily = unit * plays_per_day
        min_daily = self.pricing.min_monthly_price / self.DAYS_PER_MONTH
        if daily < min_daily:
            daily = min_daily

        daily_reach = int((Decimal(terminal.average_daily_traffic) * self.VIEW_RATE).to_integral_value(ROUND_HALF_UP))
        return TerminalQuote(
            terminal_id=terminal.id,
            terminal_name=terminal.name,
            tier=terminal.tier or TerminalTier.BRONZE,
            plays_per_day=plays_per_day,
            total_plays=total_plays,
            unit_price=unit.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            daily_price=quantize_money(daily),
            total_price=quantize_money(daily * duration_days),
            estimated_daily_reach=daily_reach,
            estimated_total_reach=daily_reach * duration_days,
        )

    def quote(
        self,
        terminals: List[Terminal],
        plays_per_day: int,
        duration_days: int,
        slot_duration_sec: int = 15,
        commission_percent: Decimal = Decimal("0"),
        geo_filter: Optional[GeoFilter] = None,
        now: Optional[datetime] = None,
    ) -> QuoteResult:
        if plays_per_day < 1:
            raise ValidationError("plays_per_day must be at least 1")
        if duration_days < 1:
            raise ValidationError("duration_days must be at least 1")
        if slot_duration_sec < 1:
            raise ValidationError("slot_duration_sec must be at least 1")
        commission_percent = CommissionCalculator.validate_percent(commission_percent)

        selected = filter_terminals_by_radius(terminals, geo_filter) if geo_filter else list(terminals)
        if not selected:
            raise ValidationError("No terminals selected for the quote")

        lines = [
            self.terminal_quote(t, plays_per_day, duration_days, slot_duration_sec)
            for t in selected
        ]

        subtotal = quantize_money(sum((line.total_price for line in lines), Decimal("0")))
        discount_percent = self.volume_discount_percent(len(lines))
        discount_amount = quantize_money(subtotal * discount_percent / 100)
        discounted_total = subtotal - discount_amount

        commission = CommissionCalculator.amount_for(discounted_total, commission_percent)
        if self.policy == AgentCommissionPolicy.ADDED_TO_PRICE:
            client_total, operator_net = discounted_total + commission, discounted_total
        else:
            client_total, operator_net = discounted_total, discounted_total - commission

        daily_reach = sum(line.estimated_daily_reach for line in lines)
        if len(lines) > 1:
            daily_reach = int((Decimal(daily_reach) * self.OVERLAP_FACTOR).to_integral_value(ROUND_HALF_UP))

        result = QuoteResult(
            total_terminals=len(lines),
            total_plays=sum(line.total_plays for line in lines),
            total_days=duration_days,
            subtotal=subtotal,
            volume_discount_percent=discount_percent,
            volume_discount_amount=discount_amount,
            discounted_total=discounted_total,
            commission_percent=commission_percent,
            commission_amount=commission,
            policy=self.policy,
            client_total=client_total,
            operator_net=operator_net,
            monthly_equivalent=quantize_money(discounted_total / duration_days * self.DAYS_PER_MONTH),
            estimated_daily_reach=daily_reach,
            estimated_total_reach=daily_reach * duration_days,
            terminal_quotes=lines,
            calculated_at=now or utc_now(),
            pricing_version=self.PRICING_VERSION,
        )
        logger.debug(
            f"Quote: {result.total_terminals} terminals, {result.total_plays} plays, "
            f"total={result.discounted_total}"
        )
        return result

    @staticmethod
    def campaign_budget_for(
        result: QuoteResult,
        campaign_id: str,
        campaign_name: Optional[str] = None,
    ) -> CampaignBudgetSnapshot:
        """Budget and play goal a campaign is settled against."""
        return CampaignBudgetSnapshot(
            campaign_id=campaign_id,
            campaign_name=campaign_name,
            budget=result.discounted_total,
            goal_plays=result.total_plays,
        )
