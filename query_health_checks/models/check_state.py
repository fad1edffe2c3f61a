"""Check state and check type definitions."""

from enum import Enum


class CheckState(str, Enum):
    """Health states a check can be in."""

    NEW = "new"
    PASSING = "passing"
    FAILING = "failing"
    ERROR = "error"
    TIMED_OUT = "timed_out"
    DISABLED = "disabled"


# States reported by the failing checks notification
UNHEALTHY_STATES = frozenset(
    {CheckState.FAILING, CheckState.ERROR, CheckState.TIMED_OUT, CheckState.DISABLED}
)


class CheckType(str, Enum):
    """What a check considers unhealthy."""

    BAD_DATA = "bad_data"  # Any returned row is a failure
    MISSING_DATA = "missing_data"  # No returned rows is a failure
