"""Integration helpers wiring the fleet engine to its surroundings.

Holds the oslo.config option registration and scoped resolution, the event
listener registry, and concrete collaborator drivers (subprocess command
channel, JSON inventory directory) used by the standalone manager and the
tests.
"""

from .config_extensions import ScopedSettings, build_conf, register_fleet_opts  # noqa: F401
from .registry import ListenerRegistry  # noqa: F401

__all__ = [
    "ListenerRegistry",
    "ScopedSettings",
    "build_conf",
    "register_fleet_opts",
]
