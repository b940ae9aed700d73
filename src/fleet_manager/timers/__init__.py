"""Timer threads used by the fleet manager."""

from .inventory import InventoryWatcher  # noqa: F401
from .periodic import PeriodicTask, build_health_tasks  # noqa: F401

__all__ = ["InventoryWatcher", "PeriodicTask", "build_health_tasks"]
