"""Listener registry fanning health engine events out to adapters."""

from __future__ import annotations

import logging
from typing import Dict

from appliance_fleet.events import (
    FleetEvent,
    RouterAlertRaised,
    RouterRestartRequested,
    RouterUnreachable,
)

from .drivers import FleetListener

LOG = logging.getLogger(__name__)


class ListenerRegistry:
    """Dispatch fleet events to registered listeners.

    One listener failing does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, FleetListener] = {}

    def register(self, name: str, listener: FleetListener) -> None:
        if name in self._listeners:
            raise ValueError(f"listener '{name}' already registered")
        self._listeners[name] = listener

    def unregister(self, name: str) -> None:
        self._listeners.pop(name, None)

    def handle(self, event: FleetEvent) -> None:
        if isinstance(event, RouterRestartRequested):
            self._dispatch(event, lambda l: l.on_restart_requested(event.router_id, event.reasons))
        elif isinstance(event, RouterAlertRaised):
            self._dispatch(event, lambda l: l.on_router_alerts(event.router_id, event.alerts))
        elif isinstance(event, RouterUnreachable):
            self._dispatch(event, lambda l: l.on_router_unreachable(event.router_id, event.details))
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")

    def _dispatch(self, event: FleetEvent, call) -> None:
        for name, listener in self._listeners.items():
            try:
                call(listener)
            except Exception:
                LOG.exception("listener %s failed handling %r", name, event)
