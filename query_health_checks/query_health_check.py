#!/usr/bin/env python3
"""Query Health Check Manager.

Runs scheduled SQL checks against the configured data sources, records their
state and notifies recipients of unhealthy checks.
"""

import sys
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from tabulate import tabulate

from query_health_checks.check_runner import CheckRunner
from query_health_checks.config_manager import ConfigManager
from query_health_checks.error_classifier import ErrorClassifier
from query_health_checks.failure_notifier import FailureNotifier
from query_health_checks.inventory import CheckInventory
from query_health_checks.models.check import Check
from query_health_checks.models.check_state import CheckState
from query_health_checks.notifications import (
    EmailNotificationSink,
    LogNotificationSink,
    NotificationSink,
)
from query_health_checks.registry import DataSourceRegistry
from query_health_checks.result_cache import ResultCache
from query_health_checks.schedule_dispatcher import DispatchResult, ScheduleDispatcher
from query_health_checks.telemetry import FanoutTelemetrySink, LoggingTelemetrySink, RunHistory


# -----------------------------------------------------------------------
# Colors
# -----------------------------------------------------------------------
class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[32m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    RESET = "\033[0m"


STATE_COLORS = {
    CheckState.NEW: Colors.BLUE,
    CheckState.PASSING: Colors.GREEN,
    CheckState.FAILING: Colors.RED,
    CheckState.ERROR: Colors.RED,
    CheckState.TIMED_OUT: Colors.YELLOW,
    CheckState.DISABLED: Colors.BLUE,
}


def colored_state(state: CheckState) -> str:
    return f"{STATE_COLORS[state]}{state.value.replace('_', ' ').upper()}{Colors.RESET}"


# -----------------------------------------------------------------------
# Health Check Class
# -----------------------------------------------------------------------
class QueryHealthCheck:
    """Manager wiring the check engine together from configuration."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        checks_path: Optional[str] = None,
        state_path: Optional[str] = None,
        debug: bool = False,
        config_manager: Optional[ConfigManager] = None,
        inventory: Optional[CheckInventory] = None,
        registry: Optional[DataSourceRegistry] = None,
        sink: Optional[NotificationSink] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the query health check manager.

        Args:
            config_path (str): Path to the query_checks.yaml settings file.
            checks_path (str): Path to the checks.yaml inventory file.
            state_path (str): Path to the YAML file persisting check state.
            debug (bool): Enable debug logging.
            config_manager: Settings to use instead of loading config_path.
            inventory: Inventory to use instead of loading checks_path.
            registry: Data source registry to use instead of building one from settings.
            sink: Notification sink. E-mail if SMTP is configured, logging otherwise.
            sleep: The blocking wait between retry attempts.
        """
        self.debug = debug

        # Setup logging
        logger.remove()
        if self.debug:
            logger.add(sys.stderr, level="DEBUG")
        else:
            logger.add(sys.stderr, level="INFO")

        if self.debug:
            logger.debug(f"[INIT] QueryHealthCheck initialized: debug={debug}")

        self.config_manager = config_manager or ConfigManager(config_path)
        settings = self.config_manager.settings
        if self.debug:
            logger.debug(
                f"[CONFIG] Settings loaded, data sources: {', '.join(settings.data_sources)}"
            )

        self.inventory = inventory or CheckInventory(checks_path, state_path)
        if self.debug:
            logger.debug(
                f"[INIT] Check inventory loaded, queries: {len(self.inventory.queries)}, checks: {len(self.inventory.checks)}"
            )

        self.classifier = ErrorClassifier().with_patterns(self.config_manager.get_error_patterns())
        self.cache = ResultCache()
        self.registry = registry or DataSourceRegistry(
            self.config_manager.get_data_sources(),
            cache=self.cache,
            classifier=self.classifier,
            debug=debug,
        )

        self.history = RunHistory()
        self.sink = sink or self._build_sink()
        self.runner = CheckRunner(
            store=self.inventory,
            registry=self.registry,
            classifier=self.classifier,
            telemetry=FanoutTelemetrySink([LoggingTelemetrySink(), self.history]),
            sink=self.sink,
            transform=self.config_manager.get_transform_hook(),
            max_attempts=settings.retry.max_attempts,
            backoff_seconds=settings.retry.backoff_seconds,
            sleep=sleep,
            debug=debug,
        )
        self.dispatcher = ScheduleDispatcher(
            self.inventory, self.runner, settings.check_schedules, debug=debug
        )
        self.notifier = FailureNotifier(self.inventory, self.sink, debug=debug)

    def _build_sink(self) -> NotificationSink:
        settings = self.config_manager.settings
        if settings.smtp and settings.from_email:
            if self.debug:
                logger.debug(f"[NOTIFY] Sending e-mail through {settings.smtp.host}:{settings.smtp.port}")
            return EmailNotificationSink(
                settings.smtp, settings.from_email, self.inventory.get_query
            )
        logger.info("[NOTIFY] SMTP not configured, notifications are logged only")
        return LogNotificationSink()

    def close(self) -> None:
        """Wait for queued notifications and close all connections."""
        self.sink.close()
        self.registry.close_all()

    # Check Methods
    # =====================================================================
    def run_checks(self, schedule: Optional[str] = None) -> List[DispatchResult]:
        """Run the checks of a schedule tier.

        Args:
            schedule (str, optional): The tier to run. If None, run all checks.

        Returns:
            List[DispatchResult]: The result of each check run.
        """
        return self.dispatcher.dispatch(schedule)

    def send_failing_checks(self) -> Dict[str, List[Check]]:
        """Notify every recipient of their unhealthy checks."""
        return self.notifier.notify_failing()

    def list_checks(self) -> List[Dict[str, str]]:
        """List all configured checks.

        Returns:
            List[Dict]: Checks with id, query, data source, schedule, type, state and recipients.
        """
        result = []
        for check in self.inventory.list_checks():
            query = self.inventory.get_query(check.query_id)
            result.append(
                {
                    "id": check.id,
                    "query": query.name if query else check.query_id,
                    "data_source": query.data_source if query else "",
                    "schedule": check.schedule,
                    "check_type": check.check_type.value,
                    "state": check.state.value,
                    "emails": ", ".join(check.split_emails()),
                }
            )
        return result

    def print_checks(self) -> None:
        """Print all configured checks in tabular format, grouped by schedule."""
        checks = self.list_checks()

        if not checks:
            print("No checks configured.")
            return

        print("\n" + "=" * 120)
        print("Configured Checks")
        print("=" * 120)

        schedules: Dict[str, List[Dict[str, str]]] = {}
        for check in checks:
            schedules.setdefault(check["schedule"], []).append(check)

        headers = ["Check ID", "Query", "Data Source", "Type", "State", "Recipients"]

        for schedule, schedule_checks in schedules.items():
            print(f"\nEvery {schedule}")
            print("-" * 120)

            table_data = [
                [
                    check["id"],
                    check["query"],
                    check["data_source"],
                    check["check_type"],
                    colored_state(CheckState(check["state"])),
                    check["emails"],
                ]
                for check in schedule_checks
            ]

            print(
                tabulate(
                    table_data,
                    headers=headers,
                    tablefmt="pretty",
                    colalign=("left", "left", "left", "left", "center", "left"),
                )
            )

        print("\n" + "=" * 120)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the runs of this process.

        Returns:
            Dict: Run count per resulting state, plus total.
        """
        return self.history.get_summary()

    def print_results(self) -> None:
        """Print the runs of this process in tabular format with color coding."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        print(f"\n{'=' * 100}")
        print("Query Health Check Report")
        print(f"{'=' * 100}")
        print(f"Generated: {timestamp}")
        print(f"Data Source(s): {', '.join(self.registry.get_ids())}")
        print(f"{'=' * 100}")

        headers = ["Check", "Query", "Was", "State", "Rows", "Tries", "Error"]
        table_data = []
        for event in self.history.events:
            table_data.append(
                [
                    event.check_id,
                    event.query_name,
                    event.state_was.value,
                    colored_state(event.state),
                    "N/A" if event.rows is None else event.rows,
                    event.tries,
                    (event.error or "")[:60],
                ]
            )

        if table_data:
            print(
                tabulate(
                    table_data,
                    headers=headers,
                    tablefmt="pretty",
                    colalign=("left", "left", "left", "center", "right", "right", "left"),
                )
            )
        else:
            print("No checks ran.")

        summary = self.get_summary()
        print("\n" + "=" * 100)
        print("SUMMARY")
        print("=" * 100)
        unhealthy = summary["total"] - summary["passing"] - summary["new"]
        if unhealthy == 0:
            color = Colors.GREEN
            status_text = "HEALTHY"
        elif unhealthy <= summary["total"] // 2:
            color = Colors.YELLOW
            status_text = "DEGRADED"
        else:
            color = Colors.RED
            status_text = "UNHEALTHY"

        print(
            f"  {color}{summary['passing']}/{summary['total']} passing - {status_text}{Colors.RESET}"
        )
        for state in (CheckState.FAILING, CheckState.ERROR, CheckState.TIMED_OUT, CheckState.DISABLED):
            if summary[state.value]:
                print(f"  {colored_state(state)}: {summary[state.value]}")


if __name__ == "__main__":
    """Run all checks when executed as a script."""
    try:
        health_check = QueryHealthCheck(debug=True)
        health_check.run_checks()
        health_check.print_results()
        health_check.send_failing_checks()
        health_check.close()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        sys.exit(1)
