"""Tests for schedule tier dispatch."""

import threading

import pytest

from query_health_checks.errors import UnknownScheduleError
from query_health_checks.schedule_dispatcher import ScheduleDispatcher

SCHEDULES = ["5 minutes", "1 hour", "1 day"]


@pytest.fixture
def dispatcher(inventory, runner):
    return ScheduleDispatcher(inventory, runner, SCHEDULES)


class TestDispatch:
    def test_tier_selects_only_its_checks(self, dispatcher, telemetry):
        results = dispatcher.dispatch("1 hour")

        assert [r.check_id for r in results] == ["late_orders_hourly"]
        assert [e.check_id for e in telemetry.events] == ["late_orders_hourly"]

    def test_no_tier_selects_all_in_store_order(self, dispatcher):
        results = dispatcher.dispatch()

        assert [r.check_id for r in results] == [
            "late_orders_hourly",
            "signups_daily",
            "late_orders_frequent",
        ]
        assert all(r.tries == 1 for r in results)

    def test_unknown_tier(self, dispatcher):
        with pytest.raises(UnknownScheduleError):
            dispatcher.dispatch("1 week")

    def test_any_tier_without_configured_schedules(self, inventory, runner):
        dispatcher = ScheduleDispatcher(inventory, runner)

        assert dispatcher.dispatch("1 week") == []

    def test_checks_run_sequentially(self, dispatcher, backend):
        active = []
        overlaps = []
        execute = backend.execute

        def tracking_execute(connection, statement):
            overlaps.append(len(active))
            active.append(statement)
            try:
                return execute(connection, statement)
            finally:
                active.pop()

        backend.execute = tracking_execute
        dispatcher.dispatch()

        assert overlaps == [0, 0, 0]

    def test_missing_query_is_skipped(self, dispatcher, inventory):
        del inventory.queries["signups"]

        results = dispatcher.dispatch()

        assert "signups_daily" not in [r.check_id for r in results]
        assert len(results) == 2

    def test_failing_run_does_not_stop_dispatch(self, dispatcher, runner, inventory):
        def broken_predicate(check, outcome):
            if check.id == "late_orders_hourly":
                raise ValueError("bad predicate")
            return True

        runner.health_predicate = broken_predicate

        results = dispatcher.dispatch()

        assert [r.check_id for r in results] == ["signups_daily", "late_orders_frequent"]


def test_tiers_do_not_wait_for_each_other(inventory, runner, backend):
    """A slow daily dispatch does not block an hourly one."""
    dispatcher = ScheduleDispatcher(inventory, runner, SCHEDULES)
    release = threading.Event()
    execute = backend.execute

    def slow_daily(connection, statement):
        if "users" in statement:
            release.wait(timeout=5)
        return execute(connection, statement)

    backend.execute = slow_daily
    daily = threading.Thread(target=dispatcher.dispatch, args=("1 day",))
    daily.start()
    try:
        results = dispatcher.dispatch("1 hour")
        assert [r.check_id for r in results] == ["late_orders_hourly"]
        assert daily.is_alive()
    finally:
        release.set()
        daily.join()
