"""Listener and collaborator drivers for the appliance fleet."""

from .base import FleetListener  # noqa: F401
from .inventory import InventoryDirectory  # noqa: F401
from .logging_listener import LoggingListener  # noqa: F401
from .script_channel import ScriptCommandChannel  # noqa: F401
from .script_lifecycle import ScriptLifecycleDriver  # noqa: F401

__all__ = [
    "FleetListener",
    "InventoryDirectory",
    "LoggingListener",
    "ScriptCommandChannel",
    "ScriptLifecycleDriver",
]
