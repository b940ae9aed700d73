"""Fleet manager runtime helpers."""

from .config import ManagerConfig, load_config  # noqa: F401

__all__ = [
    "ManagerConfig",
    "load_config",
]
