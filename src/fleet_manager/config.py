"""YAML configuration loader for the fleet manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import yaml


@dataclass
class InventoryConfig:
    path: Path
    interval: float = 30.0


@dataclass
class ChannelConfig:
    command: Sequence[str]
    timeout: float = 120.0


@dataclass
class LifecycleConfig:
    commands: Dict[str, List[str]]
    timeout: float = 300.0


@dataclass
class ManagerConfig:
    inventory: InventoryConfig
    channel: ChannelConfig
    lifecycle: LifecycleConfig
    router: Dict[str, Any] = field(default_factory=dict)
    zones: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    clusters: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    config_files: List[str] = field(default_factory=list)
    workers: int = 8
    reaper_interval: float = 30.0


def _mapping(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {}) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def _command(value: Any, name: str) -> List[str]:
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, list) or not value:
        raise ValueError(f"'{name}' must be a non-empty list or string")
    return [str(part) for part in value]


def _parse_scoped(section: Dict[str, Any], name: str) -> Dict[str, Dict[str, Any]]:
    scoped: Dict[str, Dict[str, Any]] = {}
    for scope_id, values in section.items():
        if not isinstance(values, dict):
            raise ValueError(f"'{name}.{scope_id}' must be a mapping")
        scoped[str(scope_id)] = values
    return scoped


def _parse_inventory(section: Dict[str, Any]) -> InventoryConfig:
    if "path" not in section:
        raise ValueError("'inventory' section requires 'path'")
    return InventoryConfig(
        path=Path(section["path"]),
        interval=float(section.get("interval", 30.0)),
    )


def _parse_channel(section: Dict[str, Any]) -> ChannelConfig:
    if "command" not in section:
        raise ValueError("'channel' section requires 'command'")
    return ChannelConfig(
        command=_command(section["command"], "channel.command"),
        timeout=float(section.get("timeout", 120.0)),
    )


def _parse_lifecycle(section: Dict[str, Any]) -> LifecycleConfig:
    commands = {}
    for action in ("start", "stop", "stop_forced"):
        if action not in section:
            raise ValueError(f"'lifecycle' section requires '{action}'")
        commands[action] = _command(section[action], f"lifecycle.{action}")
    return LifecycleConfig(commands=commands, timeout=float(section.get("timeout", 300.0)))


def load_config(path: Path) -> ManagerConfig:
    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("Manager configuration must be a mapping")

    config_files = data.get("config_files", [])
    if not isinstance(config_files, list):
        raise ValueError("'config_files' must be a list")

    return ManagerConfig(
        inventory=_parse_inventory(_mapping(data, "inventory")),
        channel=_parse_channel(_mapping(data, "channel")),
        lifecycle=_parse_lifecycle(_mapping(data, "lifecycle")),
        router=_mapping(data, "router"),
        zones=_parse_scoped(_mapping(data, "zones"), "zones"),
        clusters=_parse_scoped(_mapping(data, "clusters"), "clusters"),
        config_files=[str(p) for p in config_files],
        workers=int(data.get("workers", 8)),
        reaper_interval=float(data.get("reaper_interval", 30.0)),
    )
