"""Exceptions raised by the fleet coordination engine."""

from __future__ import annotations

from typing import Optional


class FleetError(Exception):
    """Base class for all engine errors."""

    retryable = False

    def __init__(self, message: str, *, router_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.router_id = router_id


class InvalidTargetSet(FleetError):
    """Router set is empty or inconsistent with the network."""


class AgentUnavailable(FleetError):
    """A command could not be delivered to the router's management agent."""

    retryable = True


class ResourceUnavailable(FleetError):
    """The command was delivered but the router cannot satisfy it right now."""

    retryable = True


class ConcurrentOperation(FleetError):
    """Another lifecycle operation is already in flight on the router."""

    retryable = True


class SessionNotFound(FleetError):
    """No open aggregation session exists for the network."""


class UnknownRouter(FleetError):
    """The router id is not registered with the fleet."""
