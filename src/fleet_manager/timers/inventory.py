"""File-based inventory watcher keeping the fleet store in sync."""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Dict, List, Optional

from appliance_fleet.config import RouterInstance
from appliance_fleet.fleet import RouterFleet
from appliance_fleet.health import HealthCheckEngine
from fleet_integration.drivers import InventoryDirectory

LOG = logging.getLogger(__name__)


class InventoryWatcher(Thread):
    """Poll the inventory file and register/deregister routers."""

    def __init__(
        self,
        directory: InventoryDirectory,
        fleet: RouterFleet,
        interval: float,
        stop_event: Event,
        *,
        health: Optional[HealthCheckEngine] = None,
    ) -> None:
        super().__init__(daemon=True, name="inventory-watcher")
        self._directory = directory
        self._fleet = fleet
        self._interval = interval
        self._stop_event = stop_event
        self._health = health
        self._known: Dict[str, str] = {}

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("inventory watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        networks = self._directory.load()
        if networks is None:
            return

        desired: Dict[str, RouterInstance] = {
            router.router_id: router for routers in networks.values() for router in routers
        }
        for router_id, router in desired.items():
            if self._known.get(router_id) != router.network_id:
                LOG.debug("router %s now serves network %s", router_id, router.network_id)
            self._fleet.register(router)

        removed: List[str] = sorted(set(self._known) - set(desired))
        for router_id in removed:
            LOG.debug("router %s removed from inventory", router_id)
            self._fleet.deregister(router_id)
            if self._health is not None:
                self._health.forget(router_id)

        self._known = {rid: r.network_id for rid, r in desired.items()}
