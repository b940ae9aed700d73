"""Listener that records fleet events in the service log."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from .base import FleetListener

LOG = logging.getLogger(__name__)


class LoggingListener(FleetListener):
    def on_restart_requested(self, router_id: str, reasons: Sequence[str]) -> None:
        LOG.warning("Restart requested for router %s: %s", router_id, ", ".join(reasons))

    def on_router_alerts(self, router_id: str, alerts: Sequence[Mapping[str, Any]]) -> None:
        for alert in alerts:
            LOG.warning(
                "Router %s alert at %s: %s",
                router_id,
                alert.get("time", "?"),
                alert.get("message", alert),
            )

    def on_router_unreachable(self, router_id: str, details: Optional[str]) -> None:
        LOG.warning("Router %s is unreachable: %s", router_id, details or "no details")
