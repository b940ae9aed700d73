"""oslo.config options for the appliance fleet and scoped resolution.

Every :class:`~appliance_fleet.settings.ConfigKey` is registered as an
oslo.config option in the ``router`` group, which supplies the global value
(default, config file or override).  Zone and cluster overrides are layered
on top by :class:`ScopedSettings`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from oslo_config import cfg

from appliance_fleet.settings import ALL_KEYS, GROUP, ConfigKey, Scope

_MISSING = object()


def _build_opt(key: ConfigKey) -> cfg.Opt:
    if key.kind == "int":
        return cfg.IntOpt(key.name, default=key.default, min=0, help=key.help)
    if key.kind == "bool":
        return cfg.BoolOpt(key.name, default=key.default, help=key.help)
    if key.kind == "list":
        return cfg.ListOpt(key.name, default=list(key.default), help=key.help)
    if key.kind == "str":
        return cfg.StrOpt(key.name, default=key.default, choices=key.choices, help=key.help)
    raise ValueError(f"Unsupported option kind '{key.kind}' for {key.name}")


fleet_opts: List[cfg.Opt] = [_build_opt(key) for key in ALL_KEYS]


def list_opts():
    """Entry point for oslo-config-generator."""

    return [(GROUP, fleet_opts)]


def register_fleet_opts(conf: cfg.ConfigOpts) -> None:
    conf.register_opts(fleet_opts, group=GROUP)


def build_conf(config_files: Sequence[str] = ()) -> cfg.ConfigOpts:
    """Return a parsed :class:`cfg.ConfigOpts` with the fleet options registered."""

    conf = cfg.ConfigOpts()
    register_fleet_opts(conf)
    conf(
        args=[],
        project="appliance-fleet",
        default_config_files=list(config_files),
        default_config_dirs=[],
    )
    return conf


def apply_global_overrides(conf: cfg.ConfigOpts, values: Mapping[str, Any]) -> None:
    """Set global values (e.g. from the runtime YAML file)."""

    known = {key.name for key in ALL_KEYS}
    for name, value in values.items():
        if name not in known:
            raise ValueError(f"Unknown router option '{name}'")
        conf.set_override(name, value, group=GROUP)


class ScopedSettings:
    """Resolve keys over the Cluster -> Zone -> Global hierarchy.

    A cluster override only applies to cluster-scoped keys; a zone override
    applies to zone- and cluster-scoped keys (a cluster lives in one zone).
    Everything else falls back to the global value held by oslo.config.
    """

    def __init__(
        self,
        conf: cfg.ConfigOpts,
        *,
        zones: Optional[Mapping[str, Mapping[str, Any]]] = None,
        clusters: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self._conf = conf
        self._keys: Dict[str, ConfigKey] = {key.name: key for key in ALL_KEYS}
        self._opts: Dict[str, cfg.Opt] = {opt.name: opt for opt in fleet_opts}
        self._zones = self._validate(zones or {}, (Scope.ZONE, Scope.CLUSTER), "zone")
        self._clusters = self._validate(clusters or {}, (Scope.CLUSTER,), "cluster")

    def _validate(
        self,
        overrides: Mapping[str, Mapping[str, Any]],
        allowed: Iterable[Scope],
        level: str,
    ) -> Dict[str, Dict[str, Any]]:
        allowed = tuple(allowed)
        checked: Dict[str, Dict[str, Any]] = {}
        for scope_id, values in overrides.items():
            if not isinstance(values, Mapping):
                raise ValueError(f"{level} '{scope_id}' overrides must be a mapping")
            converted: Dict[str, Any] = {}
            for name, value in values.items():
                key = self._keys.get(name)
                if key is None:
                    raise ValueError(f"Unknown router option '{name}' in {level} '{scope_id}'")
                if key.scope not in allowed:
                    raise ValueError(
                        f"Option '{name}' has {key.scope.value} scope and cannot be "
                        f"overridden per {level}"
                    )
                converted[name] = self._opts[name].type(value)
            checked[str(scope_id)] = converted
        return checked

    def resolve(
        self,
        key: ConfigKey,
        zone_id: Optional[str] = None,
        cluster_id: Optional[str] = None,
    ) -> Any:
        if key.scope is Scope.CLUSTER and cluster_id is not None:
            value = self._clusters.get(cluster_id, {}).get(key.name, _MISSING)
            if value is not _MISSING:
                return value
        if key.scope in (Scope.ZONE, Scope.CLUSTER) and zone_id is not None:
            value = self._zones.get(zone_id, {}).get(key.name, _MISSING)
            if value is not _MISSING:
                return value
        return getattr(getattr(self._conf, GROUP), key.name)

    def set_zone_override(self, zone_id: str, name: str, value: Any) -> None:
        self._zones.update(
            self._validate({zone_id: {**self._zones.get(zone_id, {}), name: value}},
                           (Scope.ZONE, Scope.CLUSTER), "zone")
        )

    def set_cluster_override(self, cluster_id: str, name: str, value: Any) -> None:
        self._clusters.update(
            self._validate({cluster_id: {**self._clusters.get(cluster_id, {}), name: value}},
                           (Scope.CLUSTER,), "cluster")
        )
