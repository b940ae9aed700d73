"""Data structures shared by the fleet coordination engine.

These dataclasses describe routers, health check results and batch outcomes
without tying the engine to a particular persistence layer.  The external
directory and provisioning collaborators hand us plain values; everything
mutable is owned by :class:`appliance_fleet.fleet.RouterFleet`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence


class RouterState(Enum):
    """Lifecycle states a virtual router can be in."""

    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    UNREACHABLE = "Unreachable"


@dataclass
class RouterInstance:
    """A single virtual router appliance registered with the fleet.

    Attributes
    ----------
    router_id:
        Unique identifier of the router VM.
    network_id:
        The tenant network the router serves.
    state:
        Current lifecycle state.  Only the orchestrator (terminal transitions)
        and the health engine (reachability annotations) change it.
    zone_id / cluster_id:
        Placement used to resolve zone and cluster scoped configuration.
    address:
        Management address used by the command channel.
    last_health_check:
        Timestamp of the last successful health result fetch.
    health_status:
        Free-form annotation maintained by the health engine.
    """

    router_id: str
    network_id: str
    state: RouterState = RouterState.RUNNING
    zone_id: Optional[str] = None
    cluster_id: Optional[str] = None
    address: Optional[str] = None
    last_health_check: Optional[datetime] = None
    health_status: str = "unknown"


class HealthTier(Enum):
    BASIC = "basic"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class CheckOutcome:
    name: str
    passed: bool
    details: str = ""


@dataclass(frozen=True)
class HealthCheckResult:
    """One tier's worth of check results for a router, as fetched."""

    router_id: str
    tier: HealthTier
    fetched_at: datetime
    last_run: Optional[str]
    checks: Mapping[str, CheckOutcome]
    free_disk_mb: Optional[int] = None

    def failed_checks(self) -> List[str]:
        return [name for name, outcome in self.checks.items() if not outcome.passed]


@dataclass(frozen=True)
class RestartDecision:
    """Derived verdict of the restart policy for one router."""

    router_id: str
    restart: bool
    reasons: Sequence[str] = ()


@dataclass(frozen=True)
class Operation:
    """A configuration change queued inside an aggregation session.

    The engine never looks inside ``payload``; the router agent interprets
    ``kind`` (e.g. ``dhcp_entry``, ``remote_access_vpn``).
    """

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "payload": dict(self.payload)}


class OutcomeStatus(Enum):
    APPLIED = "Applied"
    FAILED = "Failed"
    UNREACHABLE = "Unreachable"


@dataclass(frozen=True)
class RouterOutcome:
    router_id: str
    status: OutcomeStatus
    reason: str = ""
    code: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status is OutcomeStatus.APPLIED


class BatchOutcome(Mapping[str, RouterOutcome]):
    """Ordered per-router result map returned by ``complete``.

    Partial success is representable and is never collapsed into a single
    boolean here; callers choose how strict to be.
    """

    def __init__(self, outcomes: Sequence[RouterOutcome] = ()) -> None:
        self._outcomes: Dict[str, RouterOutcome] = {o.router_id: o for o in outcomes}

    def __getitem__(self, router_id: str) -> RouterOutcome:
        return self._outcomes[router_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __repr__(self) -> str:
        inner = ", ".join(f"{rid}: {o.status.value}" for rid, o in self._outcomes.items())
        return f"BatchOutcome({{{inner}}})"

    def statuses(self) -> Dict[str, OutcomeStatus]:
        return {rid: o.status for rid, o in self._outcomes.items()}

    @property
    def all_applied(self) -> bool:
        return bool(self._outcomes) and all(o.applied for o in self._outcomes.values())

    @property
    def any_applied(self) -> bool:
        return any(o.applied for o in self._outcomes.values())

    def failed(self) -> List[RouterOutcome]:
        return [o for o in self._outcomes.values() if o.status is OutcomeStatus.FAILED]

    def unreachable(self) -> List[RouterOutcome]:
        return [o for o in self._outcomes.values() if o.status is OutcomeStatus.UNREACHABLE]


@dataclass(frozen=True)
class RemoteAccessVpn:
    """Remote-access VPN service definition for a tenant network."""

    vpn_id: str
    network_id: str
    local_ip: str
    ip_range: str
    pre_shared_key: Optional[str] = None
    vpn_type: str = "l2tp"

    def as_payload(self, create: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "vpn_id": self.vpn_id,
            "local_ip": self.local_ip,
            "ip_range": self.ip_range,
            "vpn_type": self.vpn_type,
            "create": create,
        }
        if create and self.pre_shared_key:
            payload["pre_shared_key"] = self.pre_shared_key
        return payload


@dataclass(frozen=True)
class CallContext:
    """Calling user/account recorded on audited lifecycle operations."""

    user: str
    account: str
