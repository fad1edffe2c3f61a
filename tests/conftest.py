"""Shared test fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import pytest
from loguru import logger

from query_health_checks.backends import Backend
from query_health_checks.check_runner import CheckRunner
from query_health_checks.inventory import CheckInventory
from query_health_checks.models.check import Check
from query_health_checks.models.data_source_config import DataSourceConfig
from query_health_checks.models.query import Query
from query_health_checks.models.run_event import RunEvent
from query_health_checks.models.run_outcome import RunOutcome
from query_health_checks.notifications import NotificationSink
from query_health_checks.registry import DataSourceRegistry
from query_health_checks.result_cache import ResultCache
from query_health_checks.telemetry import TelemetrySink

PG_TIMEOUT = "canceling statement due to statement timeout"
PG_CONNECTION_LOST = "server closed the connection unexpectedly\n\tThis probably means the server terminated abnormally"


class FakeBackend(Backend):
    """Backend that plays back a script of results and errors."""

    def __init__(self, config: DataSourceConfig) -> None:
        super().__init__(config)
        self.script: List[Any] = []
        self.statements: List[str] = []
        self.connects = 0
        self.closed: List[str] = []
        self.alive = True

    def connect(self) -> str:
        self.connects += 1
        self.alive = True
        return f"conn-{self.connects}"

    def execute(self, connection: str, statement: str) -> Tuple[List[str], List[tuple]]:
        self.statements.append(statement)
        result = self.script.pop(0) if self.script else (["id"], [])
        if isinstance(result, Exception):
            if str(result).startswith("server closed"):
                self.alive = False
            raise result
        return result

    def is_alive(self, connection: str) -> bool:
        return self.alive

    def close(self, connection: str) -> None:
        self.closed.append(connection)


class RecordingTelemetry(TelemetrySink):
    def __init__(self) -> None:
        self.events: List[RunEvent] = []

    def record(self, event: RunEvent) -> None:
        self.events.append(event)


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.failing: List[Tuple[str, List[Check]]] = []
        self.changes: List[Tuple[str, Check, Query, RunOutcome]] = []

    def send_failing_checks(self, recipient: str, checks: List[Check]) -> None:
        self.failing.append((recipient, list(checks)))

    def send_state_change(self, recipient: str, check: Check, query: Query, outcome: RunOutcome) -> None:
        self.changes.append((recipient, check, query, outcome))


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


INVENTORY: Dict[str, Any] = {
    "queries": {
        "late_orders": {
            "name": "Late orders",
            "statement": "SELECT id FROM orders WHERE shipped_at IS NULL",
            "data_source": "main",
        },
        "signups": {
            "name": "Signups today",
            "statement": "SELECT id FROM users WHERE created_at > current_date",
            "data_source": "main",
        },
    },
    "checks": [
        {
            "id": "late_orders_hourly",
            "query_id": "late_orders",
            "schedule": "1 hour",
            "emails": "ops@example.com, DBA@example.com",
        },
        {
            "id": "signups_daily",
            "query_id": "signups",
            "schedule": "1 day",
            "check_type": "missing_data",
            "emails": ["growth@example.com"],
        },
        {
            "id": "late_orders_frequent",
            "query_id": "late_orders",
            "schedule": "5 minutes",
        },
    ],
}


@pytest.fixture(autouse=True)
def reset_logger():
    """Put loguru back on the current stderr, QueryHealthCheck replaces its sinks."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="DEBUG")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ds_config() -> DataSourceConfig:
    return DataSourceConfig(id="main", adapter="postgres", timeout=15)


@pytest.fixture
def backend(ds_config: DataSourceConfig) -> FakeBackend:
    return FakeBackend(ds_config)


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(clock=clock)


@pytest.fixture
def registry(ds_config: DataSourceConfig, backend: FakeBackend, cache: ResultCache) -> DataSourceRegistry:
    return DataSourceRegistry({"main": ds_config}, cache=cache, backend_factory=lambda config: backend)


@pytest.fixture
def inventory() -> CheckInventory:
    return CheckInventory.from_dict(INVENTORY)


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def runner(
    inventory: CheckInventory,
    registry: DataSourceRegistry,
    telemetry: RecordingTelemetry,
    sink: RecordingSink,
    sleeps: List[float],
    clock: FakeClock,
) -> CheckRunner:
    return CheckRunner(
        store=inventory,
        registry=registry,
        telemetry=telemetry,
        sink=sink,
        sleep=sleeps.append,
        clock=clock,
    )
