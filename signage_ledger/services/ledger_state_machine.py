"""
Commission ledger state machine.

Every ledger status change goes through this module.

    PENDING -> PAID
    PENDING -> CANCELLED
    PAID, CANCELLED: terminal
"""
from typing import Dict, List

from signage_ledger.exceptions import InvalidStateError, ValidationError
from signage_ledger.models.commission import CommissionStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

LEDGER_TRANSITIONS: Dict[str, List[str]] = {
    CommissionStatus.PENDING.value: [
        CommissionStatus.PAID.value,        # Paid out
        CommissionStatus.CANCELLED.value,   # Cancelled (refund, fraud, etc.)
    ],
    CommissionStatus.PAID.value: [],        # Terminal state
    CommissionStatus.CANCELLED.value: [],   # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (CommissionStatus.PENDING.value, CommissionStatus.PAID.value): "MARK_PAID",
    (CommissionStatus.PENDING.value, CommissionStatus.CANCELLED.value): "CANCEL",
}

TARGET_STATUSES = (CommissionStatus.PAID.value, CommissionStatus.CANCELLED.value)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _value(status) -> str:
    return status.value if isinstance(status, CommissionStatus) else str(status)


def can_transition(current_status, new_status) -> bool:
    """Check if a transition is allowed."""
    return _value(new_status) in LEDGER_TRANSITIONS.get(_value(current_status), [])


def is_terminal(status) -> bool:
    return not LEDGER_TRANSITIONS.get(_value(status), [])


def get_transition_action(current_status, new_status) -> str:
    current, new = _value(current_status), _value(new_status)
    return TRANSITION_ACTIONS.get((current, new), f"{current} -> {new}")


def validate_target(new_status) -> str:
    """Only PAID and CANCELLED can be requested."""
    value = _value(new_status)
    if value not in TARGET_STATUSES:
        raise ValidationError(
            f"Target status must be one of {', '.join(TARGET_STATUSES)}, got '{value}'"
        )
    return value


def validate_transition(current_status, new_status) -> None:
    """
    Validate a status transition. Raises InvalidStateError if not allowed.

    Unlike most workflows a repeated status is not a no-op: paying an entry
    twice must fail.
    """
    current, new = _value(current_status), validate_target(new_status)

    if not can_transition(current, new):
        if is_terminal(current):
            raise InvalidStateError(
                f"Entry in '{current}' status cannot be modified. This is a terminal state.",
                current_status=current,
                requested_status=new,
            )
        raise InvalidStateError(
            f"Cannot change entry from '{current}' to '{new}'",
            current_status=current,
            requested_status=new,
        )
