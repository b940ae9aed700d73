"""Abstract interfaces for the collaborators the engine depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from .config import RouterInstance


@dataclass(frozen=True)
class CommandAnswer:
    """Typed reply from a router's management agent."""

    success: bool
    details: str = ""
    code: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)


class NetworkDirectory(ABC):
    """Resolves network membership of routers."""

    @abstractmethod
    def router_ids_for_network(self, network_id: str) -> Sequence[str]:
        """Return the ordered router ids currently serving ``network_id``."""

    @abstractmethod
    def network_for_router(self, router_id: str) -> Optional[str]:
        """Return the network owning ``router_id`` or ``None``."""


class CommandChannel(ABC):
    """Delivers commands to a router's management agent.

    Implementations raise :class:`appliance_fleet.errors.AgentUnavailable`
    (or ``ConnectionError``/``OSError``) when the command could not be
    delivered.
    """

    @abstractmethod
    def send(self, router: RouterInstance, name: str, args: Mapping[str, Any]) -> CommandAnswer:
        """Send command ``name`` with ``args`` and return the agent's answer."""


class LifecycleDriver(ABC):
    """Powers router VMs on and off through the provisioning layer."""

    @abstractmethod
    def stop(self, router: RouterInstance, forced: bool) -> None:
        """Stop the router VM."""

    @abstractmethod
    def start(self, router: RouterInstance) -> None:
        """Start the router VM."""


class DnsUpdateProvider(ABC):
    @abstractmethod
    def basic_zone_update(self) -> str:
        """Return the current DNS-update descriptor for a basic zone."""
