from datetime import datetime, timezone
from decimal import Decimal

import pytest

from signage_ledger.exceptions import ValidationError
from signage_ledger.schemas.events import UsageRecord
from signage_ledger.services.play_value_attributor import PlayValueAttributor

PLAY = UsageRecord(monitor_id="m-1", campaign_id="camp-1", occurred_at=datetime(2026, 3, 1, tzinfo=timezone.utc))


class TestValueOf:

    def test_budget_over_goal(self):
        assert PlayValueAttributor().value_of(PLAY, Decimal("1000"), 10000) == Decimal("0.1")

    def test_premium_campaign_plays_are_worth_more(self):
        attributor = PlayValueAttributor()
        cheap = attributor.value_of(PLAY, Decimal("100"), 10000)
        premium = attributor.value_of(PLAY, Decimal("500"), 10000)
        assert premium == cheap * 5

    def test_zero_goal_is_an_anomaly_not_an_error(self):
        attributor = PlayValueAttributor()

        assert attributor.value_of(PLAY, Decimal("1000"), 0) == Decimal("0")
        assert attributor.value_of(PLAY, Decimal("1000"), 0) == Decimal("0")
        assert len(attributor.anomalies) == 1
        assert "camp-1" in attributor.anomalies[0]

    def test_unrounded_value(self):
        value = PlayValueAttributor().value_per_play(Decimal("100"), 3)
        assert value * 3 == pytest.approx(Decimal("100"))
        assert value != Decimal("33.33")

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValidationError):
            PlayValueAttributor().value_of(PLAY, Decimal("-1"), 10)
        with pytest.raises(ValidationError):
            PlayValueAttributor().value_of(PLAY, Decimal("1"), -10)
