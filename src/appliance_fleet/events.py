"""Event primitives published by the health check engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence, Union


@dataclass(frozen=True)
class RouterRestartRequested:
    """The restart policy fired for ``router_id``."""

    router_id: str
    reasons: Sequence[str]


@dataclass(frozen=True)
class RouterAlertRaised:
    router_id: str
    alerts: Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class RouterUnreachable:
    router_id: str
    details: Optional[str] = None


FleetEvent = Union[RouterRestartRequested, RouterAlertRaised, RouterUnreachable]


class EventSink(Protocol):
    def handle(self, event: FleetEvent) -> None:
        ...
