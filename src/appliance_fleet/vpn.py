"""Remote-access VPN lifecycle across a network's router set."""

from __future__ import annotations

import logging
from typing import Sequence

from .aggregation import AggregationController
from .config import (
    BatchOutcome,
    Operation,
    OutcomeStatus,
    RemoteAccessVpn,
    RouterInstance,
    RouterOutcome,
)

LOG = logging.getLogger(__name__)

VPN_OPERATION = "remote_access_vpn"
NOT_FOUND = "NOT_FOUND"


class VpnLifecycleManager:
    """Apply VPN service configuration identically to every router.

    Both operations go through one aggregation session so redundant routers
    receive the same batch; any router that did not apply it is reported in
    the returned :class:`~appliance_fleet.config.BatchOutcome`.
    """

    def __init__(self, aggregation: AggregationController) -> None:
        self._aggregation = aggregation

    def start_remote_access_vpn(
        self,
        network_id: str,
        vpn: RemoteAccessVpn,
        routers: Sequence[RouterInstance],
    ) -> BatchOutcome:
        outcome = self._apply(network_id, vpn, routers, create=True)
        if not outcome.all_applied:
            LOG.warning(
                "Remote access VPN %s diverged on network %s: %r", vpn.vpn_id, network_id, outcome
            )
        return outcome

    def delete_remote_access_vpn(
        self,
        network_id: str,
        vpn: RemoteAccessVpn,
        routers: Sequence[RouterInstance],
    ) -> BatchOutcome:
        outcome = self._apply(network_id, vpn, routers, create=False)
        # A router without the VPN is already in the desired state.
        return BatchOutcome([
            RouterOutcome(o.router_id, OutcomeStatus.APPLIED, reason="vpn already absent",
                          code=o.code)
            if o.status is OutcomeStatus.FAILED and o.code == NOT_FOUND
            else o
            for o in outcome.values()
        ])

    def _apply(
        self,
        network_id: str,
        vpn: RemoteAccessVpn,
        routers: Sequence[RouterInstance],
        *,
        create: bool,
    ) -> BatchOutcome:
        action = "start" if create else "delete"
        self._aggregation.prepare(network_id, routers, caller=f"vpn.{action}")
        try:
            self._aggregation.queue(network_id, Operation(VPN_OPERATION, vpn.as_payload(create)))
        except Exception:
            self._aggregation.abort(network_id)
            raise
        outcome = self._aggregation.complete(network_id, routers)
        LOG.info("Remote access VPN %s %s on network %s: %r", vpn.vpn_id, action, network_id, outcome)
        return outcome
