"""Pydantic schemas for campaign pricing quotes."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from signage_ledger.schemas.base import BaseCreateSchema


class TerminalTier(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"


class AgentCommissionPolicy(str, Enum):
    """Where a sales agent's commission comes from."""
    DEDUCTED_FROM_REVENUE = "DEDUCTED_FROM_REVENUE"   # Client pays the quote, operator absorbs it
    ADDED_TO_PRICE = "ADDED_TO_PRICE"                 # Commission is charged on top of the quote


class Terminal(BaseModel):
    """A screen that can be booked."""
    id: str
    name: Optional[str] = None
    tier: Optional[TerminalTier] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    average_daily_traffic: int = 0


class VolumeDiscount(BaseModel):
    min_screens: int = Field(..., ge=1)
    discount_percent: Decimal = Field(..., ge=0, le=100)


DEFAULT_VOLUME_DISCOUNTS = [
    VolumeDiscount(min_screens=5, discount_percent=Decimal("5")),
    VolumeDiscount(min_screens=10, discount_percent=Decimal("10")),
    VolumeDiscount(min_screens=20, discount_percent=Decimal("15")),
    VolumeDiscount(min_screens=50, discount_percent=Decimal("20")),
]

DEFAULT_TIER_MULTIPLIERS = {
    TerminalTier.GOLD: Decimal("2.0"),
    TerminalTier.SILVER: Decimal("1.5"),
    TerminalTier.BRONZE: Decimal("1.0"),
}


class PricingConfig(BaseModel):
    base_price_per_play: Decimal = Field(Decimal("0.05"), ge=0)
    reference_slot_seconds: int = Field(15, ge=1)
    min_monthly_price: Decimal = Field(Decimal("0"), ge=0)
    tier_multipliers: dict[TerminalTier, Decimal] = Field(default_factory=lambda: dict(DEFAULT_TIER_MULTIPLIERS))
    volume_discounts: List[VolumeDiscount] = Field(default_factory=lambda: list(DEFAULT_VOLUME_DISCOUNTS))


class GeoFilter(BaseModel):
    center_lat: float = Field(..., ge=-90, le=90)
    center_lng: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(..., gt=0)


class QuoteRequest(BaseCreateSchema):
    terminals: List[Terminal] = Field(..., min_length=1)
    geo_filter: Optional[GeoFilter] = None
    plays_per_day: int = Field(..., ge=1)
    duration_days: int = Field(..., ge=1)
    slot_duration_sec: int = Field(15, ge=1)
    commission_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    pricing: Optional[PricingConfig] = None
    policy: Optional[AgentCommissionPolicy] = None
    # When set, the quoted figures become this campaign's contracted budget
    campaign_id: Optional[str] = Field(None, max_length=64)
    campaign_name: Optional[str] = Field(None, max_length=200)


class TerminalQuote(BaseModel):
    terminal_id: str
    terminal_name: Optional[str] = None
    tier: TerminalTier
    plays_per_day: int
    total_plays: int
    unit_price: Decimal
    daily_price: Decimal
    total_price: Decimal
    estimated_daily_reach: int
    estimated_total_reach: int


class QuoteResult(BaseModel):
    total_terminals: int
    total_plays: int
    total_days: int
    subtotal: Decimal
    volume_discount_percent: Decimal
    volume_discount_amount: Decimal
    discounted_total: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    policy: AgentCommissionPolicy
    client_total: Decimal
    operator_net: Decimal
    monthly_equivalent: Decimal
    estimated_daily_reach: int
    estimated_total_reach: int
    terminal_quotes: List[TerminalQuote]
    calculated_at: datetime
    pricing_version: str
