"""
Commission arithmetic.

All money is Decimal and rounded half-up to cents; floats are never used for
amounts. Float inputs are converted through their shortest repr so 0.1 stays 0.1.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from signage_ledger.exceptions import ValidationError

Number = Union[Decimal, int, str, float]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
# Percentages are stored with two decimal places
PERCENT_STEP = Decimal("0.01")


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """Convert an input to Decimal, rejecting bools, NaN and infinities."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Number) -> int:
    """Amount in cents as an integer."""
    return int(quantize_money(to_decimal(value)) * 100)


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


class CommissionCalculator:
    """
    Percentage -> amount math with validation.

    amount_for(base, percent) == round_half_up(base * percent / 100, 2)
    """

    MIN_PERCENT = Decimal("0")
    MAX_PERCENT = Decimal("100")

    @classmethod
    def validate_percent(cls, percent: Number) -> Decimal:
        value = to_decimal(percent, "percent")
        if value < cls.MIN_PERCENT or value > cls.MAX_PERCENT:
            raise ValidationError(
                f"percent must be between {cls.MIN_PERCENT} and {cls.MAX_PERCENT}, got {value}"
            )
        return value.quantize(PERCENT_STEP, rounding=ROUND_HALF_UP)

    @staticmethod
    def validate_base(base: Number) -> Decimal:
        value = to_decimal(base, "base amount")
        if value < 0:
            raise ValidationError(f"base amount must not be negative, got {value}")
        return value

    @classmethod
    def amount_for(cls, base: Number, percent: Number) -> Decimal:
        """Commission on `base` at `percent`, rounded to cents."""
        base_value = cls.validate_base(base)
        percent_value = cls.validate_percent(percent)
        # Decimal division by 100 is exact; rounding happens once, here
        return quantize_money(base_value * percent_value / HUNDRED)

    @classmethod
    def amount_for_minor_units(cls, base_cents: int, percent: Number) -> int:
        """Same as amount_for, on integer cents."""
        return to_minor_units(cls.amount_for(from_minor_units(base_cents), percent))
