"""Named tunables consumed by the engine.

Each :class:`ConfigKey` declares a default and the narrowest scope at which it
may be overridden.  The engine never reads values directly; it asks a
resolver (see ``fleet_integration.config_extensions.ScopedSettings``) to
resolve a key for a router's zone and cluster.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Tuple


class Scope(Enum):
    GLOBAL = "Global"
    ZONE = "Zone"
    CLUSTER = "Cluster"


@dataclass(frozen=True)
class ConfigKey:
    name: str
    kind: str  # one of "int", "bool", "str", "list"
    default: Any
    scope: Scope
    help: str = ""
    choices: Optional[Tuple[str, ...]] = None


class SettingsResolver(Protocol):
    def resolve(
        self,
        key: ConfigKey,
        zone_id: Optional[str] = None,
        cluster_id: Optional[str] = None,
    ) -> Any:
        ...


GROUP = "router"

HEALTH_CHECKS_ENABLED = ConfigKey(
    "health_checks_enabled", "bool", True, Scope.ZONE,
    "If true, router health checks are performed periodically.",
)
BASIC_INTERVAL = ConfigKey(
    "health_checks_basic_interval", "int", 3, Scope.GLOBAL,
    "Interval (minutes) of basic router health checks. Zero disables them.",
)
ADVANCED_INTERVAL = ConfigKey(
    "health_checks_advanced_interval", "int", 15, Scope.GLOBAL,
    "Interval (minutes) of advanced router health checks. Zero disables them.",
)
DATA_REFRESH_INTERVAL = ConfigKey(
    "health_checks_data_refresh_interval", "int", 10, Scope.GLOBAL,
    "Interval (minutes) at which health check settings are pushed to routers.",
)
RESULTS_FETCH_INTERVAL = ConfigKey(
    "health_checks_results_fetch_interval", "int", 10, Scope.GLOBAL,
    "Interval (minutes) at which health check results are fetched and the "
    "restart policy is evaluated.",
)
FAILURES_TO_RESTART = ConfigKey(
    "health_checks_failures_to_restart", "list", [], Scope.ZONE,
    "Health checks whose failure restarts the router. Empty never restarts; "
    "'any' restarts on any failure.",
)
CONSECUTIVE_FAILURES = ConfigKey(
    "health_checks_consecutive_failures", "int", 2, Scope.ZONE,
    "Consecutive failed fetch cycles of a trigger check before a restart.",
)
RESULTS_HISTORY = ConfigKey(
    "health_checks_results_history", "int", 5, Scope.GLOBAL,
    "Number of fetched result sets retained per router and tier.",
)
CHECKS_TO_EXCLUDE = ConfigKey(
    "health_checks_to_exclude", "list", [], Scope.CLUSTER,
    "Health checks excluded from scheduling and from restart evaluation.",
)
FREE_DISK_THRESHOLD = ConfigKey(
    "health_checks_free_disk_space_threshold", "int", 100, Scope.ZONE,
    "Free disk space (MB) below which the router is considered failing.",
)
ALERTS_CHECK_INTERVAL = ConfigKey(
    "alerts_check_interval", "int", 1800, Scope.GLOBAL,
    "Interval (seconds) to check for alerts raised by routers.",
)
SERVICE_MONITORING = ConfigKey(
    "service_monitoring_enabled", "bool", True, Scope.ZONE,
    "Enable service monitoring inside the router.",
)
COMMAND_TIMEOUT = ConfigKey(
    "command_timeout", "int", 120, Scope.GLOBAL,
    "Seconds to wait for a router command before treating it as unreachable.",
)
GRACEFUL_STOP_TIMEOUT = ConfigKey(
    "graceful_stop_timeout", "int", 60, Scope.GLOBAL,
    "Seconds to wait for router services to shut down before forcing a stop.",
)
AGGREGATION_SESSION_TIMEOUT = ConfigKey(
    "aggregation_session_timeout", "int", 300, Scope.GLOBAL,
    "Seconds an aggregation session may stay idle before it is discarded.",
)
DNS_BASIC_ZONE_UPDATES = ConfigKey(
    "dns_basic_zone_updates", "str", "all", Scope.GLOBAL,
    "Which routers receive DNS updates in a basic zone: 'all' or 'pod'.",
    choices=("all", "pod"),
)

ALL_KEYS = (
    HEALTH_CHECKS_ENABLED,
    BASIC_INTERVAL,
    ADVANCED_INTERVAL,
    DATA_REFRESH_INTERVAL,
    RESULTS_FETCH_INTERVAL,
    FAILURES_TO_RESTART,
    CONSECUTIVE_FAILURES,
    RESULTS_HISTORY,
    CHECKS_TO_EXCLUDE,
    FREE_DISK_THRESHOLD,
    ALERTS_CHECK_INTERVAL,
    SERVICE_MONITORING,
    COMMAND_TIMEOUT,
    GRACEFUL_STOP_TIMEOUT,
    AGGREGATION_SESSION_TIMEOUT,
    DNS_BASIC_ZONE_UPDATES,
)
