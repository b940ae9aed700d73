"""Facade exposing the appliance manager operations to callers."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from . import settings
from .aggregation import AggregationController
from .config import (
    BatchOutcome,
    CallContext,
    Operation,
    RemoteAccessVpn,
    RouterInstance,
)
from .errors import ResourceUnavailable
from .events import EventSink
from .executor import CommandExecutor
from .fleet import RouterFleet
from .health import HealthCheckEngine
from .interfaces import (
    CommandChannel,
    DnsUpdateProvider,
    LifecycleDriver,
    NetworkDirectory,
)
from .locator import RouterLocator
from .orchestrator import RouterOrchestrator
from .settings import SettingsResolver
from .vpn import VpnLifecycleManager

LOG = logging.getLogger(__name__)

REMOVE_DHCP_SUBNET = "remove_dhcp_subnet"


class ApplianceManager:
    """Wires the engine components together around one fleet store."""

    def __init__(
        self,
        directory: NetworkDirectory,
        channel: CommandChannel,
        lifecycle: LifecycleDriver,
        settings_resolver: SettingsResolver,
        *,
        fleet: Optional[RouterFleet] = None,
        events: Optional[EventSink] = None,
        dns_updates: Optional[DnsUpdateProvider] = None,
        identity: Optional[Callable[[], CallContext]] = None,
        max_workers: int = 8,
    ) -> None:
        self._settings = settings_resolver
        self._dns_updates = dns_updates
        self._identity = identity
        self.fleet = fleet or RouterFleet()
        self.locator = RouterLocator(directory, self.fleet)
        self.executor = CommandExecutor(
            channel,
            timeout=float(settings_resolver.resolve(settings.COMMAND_TIMEOUT)),
            max_workers=max_workers,
        )
        self.aggregation = AggregationController(
            self.locator,
            self.fleet,
            self.executor,
            idle_timeout=float(settings_resolver.resolve(settings.AGGREGATION_SESSION_TIMEOUT)),
        )
        self.orchestrator = RouterOrchestrator(
            self.fleet,
            self.executor,
            lifecycle,
            graceful_timeout=float(settings_resolver.resolve(settings.GRACEFUL_STOP_TIMEOUT)),
        )
        self.vpn = VpnLifecycleManager(self.aggregation)
        self.health = HealthCheckEngine(
            self.fleet, self.executor, self.orchestrator, settings_resolver, events=events
        )

    # ------------------------------------------------------------------
    # Router set lookup
    # ------------------------------------------------------------------
    def get_routers_for_network(self, network_id: str) -> List[RouterInstance]:
        return self.locator.routers_for_network(network_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def stop(
        self,
        router: RouterInstance,
        forced: bool,
        calling_user: Optional[str] = None,
        calling_account: Optional[str] = None,
    ) -> RouterInstance:
        if calling_user is None or calling_account is None:
            context = self._identity() if self._identity else None
            if context is None:
                raise ValueError("stop requires a calling user and account")
            calling_user = calling_user or context.user
            calling_account = calling_account or context.account
            LOG.debug(
                "Stop of router %s attributed to %s/%s from the identity context",
                router.router_id,
                calling_user,
                calling_account,
            )
        return self.orchestrator.stop(router, forced, calling_user, calling_account)

    # ------------------------------------------------------------------
    # Remote access VPN
    # ------------------------------------------------------------------
    def start_remote_access_vpn(
        self, network_id: str, vpn: RemoteAccessVpn, routers: Sequence[RouterInstance]
    ) -> BatchOutcome:
        return self.vpn.start_remote_access_vpn(network_id, vpn, routers)

    def delete_remote_access_vpn(
        self, network_id: str, vpn: RemoteAccessVpn, routers: Sequence[RouterInstance]
    ) -> BatchOutcome:
        return self.vpn.delete_remote_access_vpn(network_id, vpn, routers)

    # ------------------------------------------------------------------
    # Aggregated execution
    # ------------------------------------------------------------------
    def prepare_aggregated_execution(
        self,
        network_id: str,
        routers: Sequence[RouterInstance],
        caller: Optional[str] = None,
    ) -> str:
        return self.aggregation.prepare(network_id, routers, caller=caller)

    def queue_operation(self, network_id: str, operation: Operation) -> int:
        return self.aggregation.queue(network_id, operation)

    def complete_aggregated_execution(
        self, network_id: str, routers: Sequence[RouterInstance]
    ) -> BatchOutcome:
        return self.aggregation.complete(network_id, routers)

    def remove_dhcp_support_for_subnet(
        self, network_id: str, routers: Sequence[RouterInstance], subnet: Optional[str] = None
    ) -> BatchOutcome:
        """Drop DHCP service for ``subnet`` (or the whole network) on every router."""

        payload = {"network_id": network_id}
        if subnet:
            payload["subnet"] = subnet
        self.aggregation.prepare(network_id, routers, caller="dhcp.remove_subnet")
        try:
            self.aggregation.queue(network_id, Operation(REMOVE_DHCP_SUBNET, payload))
        except Exception:
            self.aggregation.abort(network_id)
            raise
        outcome = self.aggregation.complete(network_id, routers)
        if outcome.failed() or outcome.unreachable():
            LOG.warning("DHCP removal for network %s incomplete: %r", network_id, outcome)
        if not outcome.any_applied:
            raise ResourceUnavailable(
                f"no router of network '{network_id}' removed DHCP support: {outcome!r}"
            )
        return outcome

    # ------------------------------------------------------------------
    # DNS
    # ------------------------------------------------------------------
    def get_dns_basic_zone_update(self) -> str:
        if self._dns_updates is not None:
            return self._dns_updates.basic_zone_update()
        return str(self._settings.resolve(settings.DNS_BASIC_ZONE_UPDATES))
