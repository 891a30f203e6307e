"""Time-value attribution: each play is worth budget / goal plays of its campaign."""
import logging
from decimal import Decimal
from typing import List, Optional

from signage_ledger.exceptions import ValidationError
from signage_ledger.schemas.events import UsageRecord
from signage_ledger.services.commission_calculator import to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PlayValueAttributor:
    """
    Converts usage into money.

    Values are returned unrounded; callers round once per settlement line.
    Anomalies (zero goal) are collected rather than raised.
    """

    def __init__(self):
        self.anomalies: List[str] = []

    def value_per_play(self, budget, goal_plays: int, campaign_id: Optional[str] = None) -> Decimal:
        budget = to_decimal(budget, "budget")
        if budget < 0:
            raise ValidationError(f"Campaign budget must not be negative, got {budget}")
        if goal_plays < 0:
            raise ValidationError(f"Campaign goal must not be negative, got {goal_plays}")

        if goal_plays == 0:
            message = f"Campaign {campaign_id or '?'} has a zero play goal; plays valued at 0"
            if message not in self.anomalies:
                self.anomalies.append(message)
                logger.warning(message)
            return ZERO
        return budget / Decimal(goal_plays)

    def value_of(self, usage_record: UsageRecord, campaign_budget, campaign_goal_plays: int) -> Decimal:
        return self.value_per_play(campaign_budget, campaign_goal_plays, usage_record.campaign_id)
