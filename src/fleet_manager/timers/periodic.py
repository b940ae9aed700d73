"""Periodic tasks driving the health check tiers and housekeeping."""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Callable, List, Optional

from appliance_fleet import settings
from appliance_fleet.config import HealthTier
from appliance_fleet.manager import ApplianceManager
from appliance_fleet.settings import SettingsResolver

LOG = logging.getLogger(__name__)

MINUTE = 60.0


class PeriodicTask(Thread):
    """Run ``action`` every ``interval`` seconds until ``stop_event`` is set."""

    def __init__(
        self,
        name: str,
        action: Callable[[], object],
        interval: float,
        stop_event: Event,
        *,
        run_immediately: bool = False,
    ) -> None:
        super().__init__(daemon=True, name=name)
        self._action = action
        self._interval = interval
        self._stop_event = stop_event
        self._run_immediately = run_immediately

    @property
    def interval(self) -> float:
        return self._interval

    def run(self) -> None:
        LOG.info("Starting %s (interval=%ss)", self.name, self._interval)
        if not self._run_immediately:
            self._stop_event.wait(self._interval)
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self._interval)
        LOG.info("Stopped %s", self.name)

    def tick(self) -> None:
        try:
            self._action()
        except Exception:
            LOG.exception("%s tick failed; retrying on the next interval", self.name)


def build_health_tasks(
    manager: ApplianceManager,
    settings_resolver: SettingsResolver,
    stop_event: Event,
    *,
    reaper_interval: float = 30.0,
) -> List[PeriodicTask]:
    """Create one task per timer; intervals of zero are not scheduled."""

    engine = manager.health
    schedule = [
        ("health-basic", lambda: engine.run_checks(HealthTier.BASIC),
         settings.BASIC_INTERVAL, MINUTE),
        ("health-advanced", lambda: engine.run_checks(HealthTier.ADVANCED),
         settings.ADVANCED_INTERVAL, MINUTE),
        ("health-data-refresh", engine.refresh_data,
         settings.DATA_REFRESH_INTERVAL, MINUTE),
        ("health-results-fetch", engine.fetch_results,
         settings.RESULTS_FETCH_INTERVAL, MINUTE),
        ("router-alerts", engine.check_alerts,
         settings.ALERTS_CHECK_INTERVAL, 1.0),
    ]

    tasks: List[PeriodicTask] = []
    for name, action, key, unit in schedule:
        interval = float(settings_resolver.resolve(key)) * unit
        task = _task_or_none(name, action, interval, stop_event)
        if task is not None:
            tasks.append(task)

    reaper = _task_or_none(
        "aggregation-reaper", manager.aggregation.expire_idle, reaper_interval, stop_event
    )
    if reaper is not None:
        tasks.append(reaper)
    return tasks


def _task_or_none(
    name: str, action: Callable[[], object], interval: float, stop_event: Event
) -> Optional[PeriodicTask]:
    if interval <= 0:
        LOG.info("%s disabled (interval is zero)", name)
        return None
    return PeriodicTask(name, action, interval, stop_event)
