"""Network directory backed by a JSON inventory file.

Layout::

    {"networks": [
        {"network_id": "net-1",
         "routers": [{"router_id": "r-1", "address": "169.254.3.10",
                      "zone": "zone-1", "cluster": "cluster-a",
                      "state": "Running"}]}]}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Sequence

from appliance_fleet.config import RouterInstance, RouterState
from appliance_fleet.interfaces import NetworkDirectory

LOG = logging.getLogger(__name__)


def _parse_router(network_id: str, entry: Mapping[str, Any]) -> RouterInstance:
    router_id = entry.get("router_id")
    if not router_id:
        raise ValueError(f"router entry in network '{network_id}' missing 'router_id'")
    state_raw = entry.get("state", RouterState.RUNNING.value)
    try:
        state = RouterState(state_raw)
    except ValueError:
        raise ValueError(f"router '{router_id}' has unknown state '{state_raw}'") from None
    return RouterInstance(
        router_id=str(router_id),
        network_id=network_id,
        state=state,
        zone_id=entry.get("zone"),
        cluster_id=entry.get("cluster"),
        address=entry.get("address"),
    )


def parse_inventory(payload: Mapping[str, Any]) -> Dict[str, List[RouterInstance]]:
    networks = payload.get("networks")
    if networks is None:
        raise ValueError("inventory missing 'networks' key")
    if not isinstance(networks, list):
        raise ValueError("'networks' must be a list")

    inventory: Dict[str, List[RouterInstance]] = {}
    owners: Dict[str, str] = {}
    for network in networks:
        network_id = network.get("network_id")
        if network_id is None:
            continue
        network_id = str(network_id)
        routers = [_parse_router(network_id, r) for r in network.get("routers", [])]
        for router in routers:
            if router.router_id in owners:
                raise ValueError(
                    f"router '{router.router_id}' listed under networks "
                    f"'{owners[router.router_id]}' and '{network_id}'"
                )
            owners[router.router_id] = network_id
        inventory[network_id] = routers
    return inventory


class InventoryDirectory(NetworkDirectory):
    """Serve network membership from the last successfully loaded inventory."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._networks: Dict[str, List[RouterInstance]] = {}
        self._owners: Dict[str, str] = {}
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[Dict[str, List[RouterInstance]]]:
        """Re-read the inventory; keep the previous state when it is invalid."""

        if not self._path.exists():
            LOG.debug("inventory file %s does not exist yet", self._path)
            return None
        try:
            payload = json.loads(self._path.read_text())
        except json.JSONDecodeError as exc:
            LOG.warning("failed to parse inventory file %s: %s", self._path, exc)
            return None
        try:
            networks = parse_inventory(payload)
        except ValueError as exc:
            LOG.warning("invalid inventory file %s: %s", self._path, exc)
            return None

        with self._lock:
            self._networks = networks
            self._owners = {
                r.router_id: network_id for network_id, routers in networks.items() for r in routers
            }
        return networks

    def router_ids_for_network(self, network_id: str) -> Sequence[str]:
        with self._lock:
            return [r.router_id for r in self._networks.get(network_id, [])]

    def network_for_router(self, router_id: str) -> Optional[str]:
        with self._lock:
            return self._owners.get(router_id)
