"""Periodic router health checking and automatic restart decisions.

Detection happens on the routers: the basic and advanced tiers are
triggered here but executed by the router-local agent, which accumulates
results.  Decisions happen here: every result fetch appends the new runs
to a bounded per-router window and evaluates
:func:`appliance_fleet.policy.evaluate` against it.

Each tick method is driven by its own timer; a failing router never aborts
the tick for the others.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from . import policy, settings
from .config import (
    CheckOutcome,
    HealthCheckResult,
    HealthTier,
    RestartDecision,
    RouterInstance,
    RouterState,
)
from .errors import FleetError
from .events import EventSink, FleetEvent, RouterAlertRaised, RouterRestartRequested, RouterUnreachable
from .executor import (
    GET_HEALTH_CHECK_RESULTS,
    GET_ROUTER_ALERTS,
    RUN_HEALTH_CHECKS,
    SET_HEALTH_CHECK_CONFIG,
    Command,
    CommandExecutor,
    CommandResult,
    CommandStatus,
)
from .fleet import RouterFleet
from .orchestrator import RouterOrchestrator
from .settings import SettingsResolver

LOG = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_results(
    router_id: str, payload: Mapping[str, Any], fetched_at: datetime
) -> Tuple[List[HealthCheckResult], Optional[int]]:
    """Convert a ``get_health_check_results`` answer into result records.

    Expected shape::

        {"basic": {"last_run": "...", "checks": {"dns": {"success": true}}},
         "advanced": {...},
         "free_disk_mb": 512}
    """

    results: List[HealthCheckResult] = []
    for tier in HealthTier:
        section = payload.get(tier.value)
        if not section:
            continue
        if not isinstance(section, Mapping):
            raise ValueError(f"'{tier.value}' results must be a mapping")
        raw_checks = section.get("checks", {})
        if not isinstance(raw_checks, Mapping):
            raise ValueError(f"'{tier.value}.checks' must be a mapping")
        checks = {}
        for name, entry in raw_checks.items():
            if isinstance(entry, Mapping):
                passed = bool(entry.get("success", False))
                details = str(entry.get("details", ""))
            else:
                passed, details = bool(entry), ""
            checks[str(name)] = CheckOutcome(str(name), passed, details)
        last_run = section.get("last_run")
        results.append(
            HealthCheckResult(
                router_id=router_id,
                tier=tier,
                fetched_at=fetched_at,
                last_run=str(last_run) if last_run is not None else None,
                checks=checks,
                free_disk_mb=_as_int(payload.get("free_disk_mb")),
            )
        )
    return results, _as_int(payload.get("free_disk_mb"))


def health_settings(resolver: SettingsResolver, router: RouterInstance) -> Dict[str, Any]:
    """Settings pushed to a router's agent on every data refresh."""

    def value(key: settings.ConfigKey) -> Any:
        return resolver.resolve(key, zone_id=router.zone_id, cluster_id=router.cluster_id)

    return {
        "enabled": bool(value(settings.HEALTH_CHECKS_ENABLED)),
        "basic_interval": int(value(settings.BASIC_INTERVAL)),
        "advanced_interval": int(value(settings.ADVANCED_INTERVAL)),
        "excluded_checks": list(value(settings.CHECKS_TO_EXCLUDE)),
        "free_disk_threshold_mb": int(value(settings.FREE_DISK_THRESHOLD)),
        "service_monitoring": bool(value(settings.SERVICE_MONITORING)),
    }


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


class _RouterHistory:
    def __init__(self, size: int) -> None:
        self.size = size
        self.tiers: Dict[HealthTier, Deque[HealthCheckResult]] = {
            tier: deque(maxlen=size) for tier in HealthTier
        }
        self.disk: Deque[int] = deque(maxlen=size)
        # Survives reset() so a run fetched before a restart is not recounted.
        self.last_runs: Dict[HealthTier, Optional[str]] = {tier: None for tier in HealthTier}

    def reset(self) -> None:
        for window in self.tiers.values():
            window.clear()
        self.disk.clear()

    def resize(self, size: int) -> None:
        if size == self.size:
            return
        self.size = size
        self.tiers = {tier: deque(items, maxlen=size) for tier, items in self.tiers.items()}
        self.disk = deque(self.disk, maxlen=size)

    def add(self, result: HealthCheckResult) -> bool:
        if result.last_run is not None and self.last_runs[result.tier] == result.last_run:
            return False
        self.last_runs[result.tier] = result.last_run
        self.tiers[result.tier].append(result)
        return True


class HealthCheckEngine:
    def __init__(
        self,
        fleet: RouterFleet,
        executor: CommandExecutor,
        orchestrator: RouterOrchestrator,
        settings_resolver: SettingsResolver,
        *,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fleet = fleet
        self._executor = executor
        self._orchestrator = orchestrator
        self._settings = settings_resolver
        self._events = events
        self._clock = clock
        self._histories: Dict[str, _RouterHistory] = {}
        self._decisions: Dict[str, RestartDecision] = {}
        self._alert_marks: Dict[str, str] = {}
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Timer ticks
    # ------------------------------------------------------------------
    def run_checks(self, tier: HealthTier) -> Dict[str, CommandStatus]:
        """Ask every monitored router to run the ``tier`` checks now."""

        routers = self._monitored()

        def build(router: RouterInstance) -> Command:
            return Command(RUN_HEALTH_CHECKS, {
                "tier": tier.value,
                "exclude": list(self._value(settings.CHECKS_TO_EXCLUDE, router)),
            })

        results = self._executor.execute_many(routers, build)
        for router in routers:
            self._note_reachability(router, results[router.router_id])
        return {rid: r.status for rid, r in results.items()}

    def refresh_data(self) -> Dict[str, CommandStatus]:
        """Push scheduling and threshold settings to every monitored router."""

        routers = self._monitored()
        results = self._executor.execute_many(
            routers, lambda router: Command(SET_HEALTH_CHECK_CONFIG, self.router_settings(router))
        )
        for router in routers:
            result = results[router.router_id]
            self._note_reachability(router, result)
            if result.status is CommandStatus.FAILURE:
                LOG.warning(
                    "Router %s rejected health check settings: %s",
                    router.router_id,
                    result.details,
                )
        return {rid: r.status for rid, r in results.items()}

    def fetch_results(self) -> Dict[str, RestartDecision]:
        """Pull accumulated results and act on the restart policy."""

        routers = self._monitored()
        decisions = self._executor.fan_out(routers, self._fetch_one)
        return {rid: d for rid, d in decisions.items() if d is not None}

    def check_alerts(self) -> Dict[str, int]:
        routers = self._monitored()

        def build(router: RouterInstance) -> Command:
            with self._lock:
                since = self._alert_marks.get(router.router_id)
            return Command(GET_ROUTER_ALERTS, {"since": since})

        results = self._executor.execute_many(routers, build)
        counts: Dict[str, int] = {}
        for router in routers:
            result = results[router.router_id]
            self._note_reachability(router, result)
            if not result.ok:
                continue
            alerts = list(result.payload.get("alerts") or [])
            mark = result.payload.get("last_alert_time")
            if mark is not None:
                with self._lock:
                    self._alert_marks[router.router_id] = str(mark)
            counts[router.router_id] = len(alerts)
            if alerts:
                LOG.warning("Router %s raised %d alert(s)", router.router_id, len(alerts))
                self._publish(RouterAlertRaised(router.router_id, alerts))
        return counts

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------
    def history(self, router_id: str, tier: HealthTier) -> List[HealthCheckResult]:
        with self._lock:
            entry = self._histories.get(router_id)
            return list(entry.tiers[tier]) if entry else []

    def last_decision(self, router_id: str) -> Optional[RestartDecision]:
        with self._lock:
            return self._decisions.get(router_id)

    def forget(self, router_id: str) -> None:
        with self._lock:
            self._histories.pop(router_id, None)
            self._decisions.pop(router_id, None)
            self._alert_marks.pop(router_id, None)

    def router_settings(self, router: RouterInstance) -> Dict[str, Any]:
        return health_settings(self._settings, router)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _value(self, key: settings.ConfigKey, router: RouterInstance) -> Any:
        return self._settings.resolve(key, zone_id=router.zone_id, cluster_id=router.cluster_id)

    def _monitored(self) -> List[RouterInstance]:
        routers = []
        for router in self._fleet.list():
            if router.state not in (RouterState.RUNNING, RouterState.UNREACHABLE):
                continue
            if not self._value(settings.HEALTH_CHECKS_ENABLED, router):
                LOG.debug("Health checks disabled for router %s", router.router_id)
                continue
            routers.append(router)
        return routers

    def _note_reachability(self, router: RouterInstance, result: CommandResult) -> None:
        reachable = result.status is not CommandStatus.UNREACHABLE
        was_unreachable = router.state is RouterState.UNREACHABLE
        self._fleet.annotate(router.router_id, reachable=reachable)
        if not reachable and not was_unreachable:
            self._publish(RouterUnreachable(router.router_id, result.details))

    def _fetch_one(self, router: RouterInstance) -> Optional[RestartDecision]:
        result = self._executor.execute(router, Command(GET_HEALTH_CHECK_RESULTS))
        self._note_reachability(router, result)
        if result.status is CommandStatus.UNREACHABLE:
            return None
        if result.status is CommandStatus.FAILURE:
            LOG.warning(
                "Router %s failed to return health check results: %s",
                router.router_id,
                result.details,
            )
            return None

        fetched_at = self._clock()
        try:
            records, free_disk = parse_results(router.router_id, result.payload, fetched_at)
        except (TypeError, ValueError) as exc:
            LOG.warning("Router %s returned malformed health results: %s", router.router_id, exc)
            return None

        threshold = int(self._value(settings.CONSECUTIVE_FAILURES, router))
        window = max(int(self._value(settings.RESULTS_HISTORY, router)), threshold, 1)
        excluded = self._value(settings.CHECKS_TO_EXCLUDE, router)
        disk_threshold = int(self._value(settings.FREE_DISK_THRESHOLD, router))

        with self._lock:
            entry = self._histories.get(router.router_id)
            if entry is None:
                entry = self._histories[router.router_id] = _RouterHistory(window)
            entry.resize(window)
            for record in records:
                entry.add(record)
            if free_disk is not None:
                entry.disk.append(free_disk)
            snapshot = {tier: list(items) for tier, items in entry.tiers.items()}
            disk_samples = list(entry.disk)

        decision = policy.evaluate(
            router.router_id,
            snapshot,
            disk_samples,
            triggers=self._value(settings.FAILURES_TO_RESTART, router),
            excluded=excluded,
            threshold=threshold,
            disk_threshold_mb=disk_threshold,
        )
        failing = self._currently_failing(records, free_disk, excluded, disk_threshold)
        self._fleet.annotate(
            router.router_id,
            reachable=True,
            status="failing" if failing else "healthy",
            checked_at=fetched_at,
        )
        with self._lock:
            self._decisions[router.router_id] = decision

        if decision.restart:
            self._request_restart(router, decision)
        return decision

    @staticmethod
    def _currently_failing(
        records: List[HealthCheckResult],
        free_disk: Optional[int],
        excluded: Any,
        disk_threshold: int,
    ) -> bool:
        skip = set(policy.normalise_checks(excluded))
        for record in records:
            if any(name.lower() not in skip for name in record.failed_checks()):
                return True
        return (
            free_disk is not None
            and free_disk < disk_threshold
            and policy.DISK_CHECK not in skip
        )

    def _request_restart(self, router: RouterInstance, decision: RestartDecision) -> None:
        reason = "failed health checks: " + ", ".join(decision.reasons)
        LOG.warning("Router %s: %s; requesting restart", router.router_id, reason)
        self._publish(RouterRestartRequested(router.router_id, decision.reasons))
        try:
            self._orchestrator.restart(router, reason)
        except FleetError as exc:
            LOG.warning(
                "Restart of router %s deferred to the next fetch: %s", router.router_id, exc
            )
            return
        # Start the window afresh so the pre-restart failures do not re-fire.
        with self._lock:
            entry = self._histories.get(router.router_id)
            if entry is not None:
                entry.reset()

    def _publish(self, event: FleetEvent) -> None:
        if self._events is None:
            return
        try:
            self._events.handle(event)
        except Exception:
            LOG.exception("Event listener failed on %r", event)
