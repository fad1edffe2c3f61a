"""Health predicates applied to the rows of a successful run."""

from typing import Callable

from query_health_checks.models.check import Check
from query_health_checks.models.check_state import CheckType
from query_health_checks.models.run_outcome import RunOutcome

# Returns True when the rows are healthy
HealthPredicate = Callable[[Check, RunOutcome], bool]


def is_healthy(check: Check, outcome: RunOutcome) -> bool:
    """Default predicate, driven by the check type.

    Args:
        check: The check that ran.
        outcome: A successful outcome.

    Returns:
        bool: True if the rows are healthy, False otherwise.
    """
    has_rows = bool(outcome.rows)
    if check.check_type == CheckType.BAD_DATA:
        return not has_rows
    elif check.check_type == CheckType.MISSING_DATA:
        return has_rows
    return False
