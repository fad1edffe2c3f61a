"""Check runner: retry loop, state transition and telemetry for one check."""

import time
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from loguru import logger

from query_health_checks.check_store import CheckStore
from query_health_checks.data_source import DataSource
from query_health_checks.error_classifier import ErrorClass, ErrorClassifier
from query_health_checks.errors import ConfigurationError, TransformHookError
from query_health_checks.health import HealthPredicate, is_healthy
from query_health_checks.models.check import Check
from query_health_checks.models.check_state import CheckState
from query_health_checks.models.query import Query
from query_health_checks.models.run_event import RunEvent
from query_health_checks.models.run_outcome import RunOutcome
from query_health_checks.notifications import NotificationSink
from query_health_checks.registry import DataSourceRegistry
from query_health_checks.result_cache import utc_now
from query_health_checks.telemetry import TelemetrySink

TransformHook = Callable[[DataSource, str], Any]


class CheckRunner:
    """Runs one check at a time against its query's data source.

    Timeouts and dropped connections are retried after a fixed backoff, up to
    max_attempts attempts. Every other error and every success ends the loop
    immediately. Backend failures never raise out of run().
    """

    def __init__(
        self,
        store: CheckStore,
        registry: DataSourceRegistry,
        classifier: Optional[ErrorClassifier] = None,
        telemetry: Optional[TelemetrySink] = None,
        sink: Optional[NotificationSink] = None,
        transform: Optional[TransformHook] = None,
        health_predicate: HealthPredicate = is_healthy,
        max_attempts: int = 3,
        backoff_seconds: float = 10,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        debug: bool = False,
    ) -> None:
        """Initialize the check runner.

        Args:
            store: Where checks and queries are read and state is written.
            registry: Resolves a query's data source.
            classifier: Decides whether an attempt's error is retried.
            telemetry: Receives one RunEvent per run.
            sink: Receives state change notifications.
            transform: Rewrites the statement before each attempt.
            health_predicate: Decides passing or failing from a successful outcome.
            max_attempts: The attempt budget per run.
            backoff_seconds: The wait after a transient failure.
            sleep: The blocking wait function.
            clock: Returns the current time.
            debug: Enable debug logging.
        """
        self.store = store
        self.registry = registry
        self.classifier = classifier or ErrorClassifier()
        self.telemetry = telemetry
        self.sink = sink
        self.transform = transform
        self.health_predicate = health_predicate
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.clock = clock
        self.debug = debug

    def run(self, check: Check, query: Optional[Query] = None) -> Tuple[RunOutcome, int]:
        """Run a check and record its new state.

        Args:
            check: The check to run.
            query: The check's query. Read from the store if None.

        Returns:
            Tuple[RunOutcome, int]: The final outcome and the attempts used.

        Raises:
            ConfigurationError: If the check's query does not exist.
        """
        if query is None:
            query = self.store.get_query(check.query_id)
            if query is None:
                raise ConfigurationError(f"Query {check.query_id} not found for check {check.id}")

        data_source = self.registry.get(query.data_source)
        started_at = self.clock()
        start = time.monotonic()

        if self.debug:
            logger.debug(f"[CHECK] Running check {check.id} on {data_source.id}")

        outcome, tries = self._run_attempts(query, data_source)

        outcome_state = self.derive_state(check, outcome, tries)
        # Externally disabled checks keep their state
        state = CheckState.DISABLED if check.state == CheckState.DISABLED else outcome_state
        updated = self.store.update_check(check.id, state, self.clock())

        logger.info(
            f"[CHECK] query={query.name} state={state.value} rows={outcome.row_count} error={outcome.error}"
        )

        if self.telemetry:
            self.telemetry.record(
                RunEvent(
                    check_id=check.id,
                    query_id=query.id,
                    query_name=query.name,
                    state_was=check.state,
                    state=state,
                    outcome_state=outcome_state,
                    rows=outcome.row_count,
                    error=outcome.error,
                    tries=tries,
                    started_at=started_at,
                    duration=time.monotonic() - start,
                )
            )

        self._notify_state_change(check, updated, query, outcome)
        return outcome, tries

    def _run_attempts(self, query: Query, data_source: DataSource) -> Tuple[RunOutcome, int]:
        outcome = RunOutcome()
        tries = 0
        while tries < self.max_attempts:
            tries += 1
            try:
                statement = self._transform_statement(data_source, query.statement)
            except TransformHookError as e:
                logger.error(f"[CHECK] query={query.name} {e}")
                return RunOutcome(error=str(e)), tries

            # Checks always bypass the cache
            outcome = data_source.run_statement(statement, refresh_cache=True)
            error_class = self.classifier.classify(outcome.error)

            if error_class == ErrorClass.TIMEOUT:
                logger.info(f"[TIMEOUT] query={query.name} attempt={tries}")
            elif error_class == ErrorClass.CONNECTION_LOST:
                self._reconnect(data_source, query)
                logger.info(f"[RECONNECT] query={query.name} attempt={tries}")
            else:
                break

            self.sleep(self.backoff_seconds)

        return outcome, tries

    def _transform_statement(self, data_source: DataSource, statement: str) -> str:
        if self.transform is None:
            return statement
        try:
            transformed = self.transform(data_source, statement)
        except Exception as e:
            raise TransformHookError(f"Statement transform failed: {e}") from e
        # A hook that returns nothing leaves the statement unchanged
        return statement if transformed is None else transformed

    def _reconnect(self, data_source: DataSource, query: Query) -> None:
        try:
            data_source.reconnect()
        except Exception as e:
            # The next attempt fails again and is classified on its own
            logger.warning(f"[RECONNECT] query={query.name} reconnect to {data_source.id} failed: {e}")

    def derive_state(self, check: Check, outcome: RunOutcome, tries: int) -> CheckState:
        """Derive a check state from a run's final outcome.

        Args:
            check: The check that ran.
            outcome: The final outcome.
            tries: The attempts used.

        Returns:
            CheckState: passing/failing on success, timed_out or error otherwise.
        """
        if outcome.error is None:
            return CheckState.PASSING if self.health_predicate(check, outcome) else CheckState.FAILING
        if outcome.error == self.classifier.timeout_message and tries >= self.max_attempts:
            return CheckState.TIMED_OUT
        return CheckState.ERROR

    def _notify_state_change(
        self, check: Check, updated: Check, query: Query, outcome: RunOutcome
    ) -> None:
        if self.sink is None or updated.state == check.state:
            return
        if updated.state == CheckState.DISABLED:
            return
        if check.state == CheckState.NEW and updated.state == CheckState.PASSING:
            return

        for recipient in updated.split_emails():
            try:
                self.sink.send_state_change(recipient, updated, query, outcome)
            except Exception as e:
                logger.error(f"[NOTIFY] State change for {check.id} to {recipient} failed: {e}")
