import time
from threading import Event

from fleet_manager.timers import PeriodicTask, build_health_tasks

from fakes import build_manager, build_settings


def test_zero_intervals_are_not_scheduled():
    settings = build_settings(
        health_checks_basic_interval=0,
        health_checks_advanced_interval=2,
        alerts_check_interval=0,
    )
    manager = build_manager({"net-1": ["r-a"]}, settings=settings)

    tasks = build_health_tasks(manager, settings, Event(), reaper_interval=15)

    intervals = {task.name: task.interval for task in tasks}
    assert intervals == {
        "health-advanced": 120.0,
        "health-data-refresh": 600.0,
        "health-results-fetch": 600.0,
        "aggregation-reaper": 15.0,
    }


def test_failing_tick_keeps_running():
    calls = []

    def action():
        calls.append(1)
        raise RuntimeError("boom")

    stop_event = Event()
    task = PeriodicTask("flaky", action, 0.05, stop_event, run_immediately=True)
    task.start()
    try:
        deadline = time.time() + 2
        while len(calls) < 3 and time.time() < deadline:
            time.sleep(0.02)
    finally:
        stop_event.set()
        task.join(timeout=1)

    assert len(calls) >= 3
    assert not task.is_alive()
