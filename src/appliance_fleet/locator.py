"""Resolve the routers currently serving a tenant network."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .config import RouterInstance
from .errors import InvalidTargetSet
from .fleet import RouterFleet
from .interfaces import NetworkDirectory

LOG = logging.getLogger(__name__)


class RouterLocator:
    """Read-only view combining the network directory with the fleet store.

    Membership changes on failover and scale events, so the directory is
    consulted on every call.
    """

    def __init__(self, directory: NetworkDirectory, fleet: RouterFleet) -> None:
        self._directory = directory
        self._fleet = fleet

    def routers_for_network(self, network_id: str) -> List[RouterInstance]:
        routers: List[RouterInstance] = []
        for router_id in self._directory.router_ids_for_network(network_id):
            router = self._fleet.find(router_id)
            if router is None:
                LOG.warning(
                    "Directory lists router %s for network %s but it is not registered",
                    router_id,
                    network_id,
                )
                continue
            routers.append(router)
        return routers

    def network_for_router(self, router_id: str) -> Optional[str]:
        return self._directory.network_for_router(router_id)

    def validate(self, network_id: str, routers: Sequence[RouterInstance]) -> None:
        """Reject empty sets and routers owned by another network."""

        if not routers:
            raise InvalidTargetSet(f"no routers supplied for network '{network_id}'")
        seen = set()
        for router in routers:
            if router.router_id in seen:
                raise InvalidTargetSet(
                    f"router '{router.router_id}' listed twice", router_id=router.router_id
                )
            seen.add(router.router_id)
            owner = self._directory.network_for_router(router.router_id)
            if owner != network_id:
                raise InvalidTargetSet(
                    f"router '{router.router_id}' belongs to network '{owner}', "
                    f"not '{network_id}'",
                    router_id=router.router_id,
                )
