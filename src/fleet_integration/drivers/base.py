"""Abstract interfaces for listeners managed by :class:`ListenerRegistry`."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence


class FleetListener(ABC):
    """Base class for adapters reacting to health engine events."""

    @abstractmethod
    def on_restart_requested(self, router_id: str, reasons: Sequence[str]) -> None:
        """The restart policy fired for ``router_id``."""

    @abstractmethod
    def on_router_alerts(self, router_id: str, alerts: Sequence[Mapping[str, Any]]) -> None:
        """``router_id`` reported new alerts."""

    def on_router_unreachable(self, router_id: str, details: Optional[str]) -> None:
        """``router_id`` stopped answering its management channel."""
