"""Runs the checks of a schedule tier."""

from typing import List, NamedTuple, Optional, Sequence

from loguru import logger

from query_health_checks.check_runner import CheckRunner
from query_health_checks.check_store import CheckStore
from query_health_checks.errors import UnknownScheduleError
from query_health_checks.models.run_outcome import RunOutcome


class DispatchResult(NamedTuple):
    """Outcome of one check run within a dispatch."""

    check_id: str
    outcome: RunOutcome
    tries: int


class ScheduleDispatcher:
    """Selects the checks of a tier and runs them one after another.

    Dispatches for different tiers share no lock and may overlap. If the same
    check is run by two overlapping dispatches, the last state written wins.
    """

    def __init__(
        self,
        store: CheckStore,
        runner: CheckRunner,
        schedules: Optional[Sequence[str]] = None,
        debug: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Where the checks are read.
            runner: Runs each selected check.
            schedules: The configured tiers. Any tier is accepted if None.
            debug: Enable debug logging.
        """
        self.store = store
        self.runner = runner
        self.schedules = list(schedules) if schedules is not None else None
        self.debug = debug

    def dispatch(self, schedule: Optional[str] = None) -> List[DispatchResult]:
        """Run every check on a schedule tier, in store order.

        Args:
            schedule: The tier to run. All checks are run if None.

        Returns:
            List[DispatchResult]: One result per check that ran.

        Raises:
            UnknownScheduleError: If the tier is not configured.
        """
        if schedule is not None and self.schedules is not None and schedule not in self.schedules:
            raise UnknownScheduleError(
                f"Unknown schedule {schedule!r}, expected one of: {', '.join(self.schedules)}"
            )

        checks = self.store.list_checks(schedule=schedule)
        logger.info(f"[DISPATCH] Running {len(checks)} check(s) for schedule {schedule or 'all'}")

        results: List[DispatchResult] = []
        for check in checks:
            query = self.store.get_query(check.query_id)
            if query is None:
                logger.warning(f"[DISPATCH] Skipping check {check.id}: query {check.query_id} not found")
                continue

            try:
                outcome, tries = self.runner.run(check, query)
            except Exception as e:
                logger.error(f"[DISPATCH] Error running check {check.id}: {e}")
                continue
            results.append(DispatchResult(check.id, outcome, tries))

        if self.debug:
            logger.debug(f"[DISPATCH] Finished schedule {schedule or 'all'}: {len(results)} run(s)")
        return results
