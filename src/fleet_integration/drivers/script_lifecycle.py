"""Lifecycle driver that powers router VMs through configured commands.

Commands are templates formatted with ``{router_id}`` and ``{address}``,
e.g. ``["virsh", "destroy", "{router_id}"]``.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Mapping, Sequence

from appliance_fleet.config import RouterInstance
from appliance_fleet.errors import AgentUnavailable, ResourceUnavailable
from appliance_fleet.interfaces import LifecycleDriver

LOG = logging.getLogger(__name__)

ACTIONS = ("start", "stop", "stop_forced")


class ScriptLifecycleDriver(LifecycleDriver):
    def __init__(self, commands: Mapping[str, Sequence[str]], *, timeout: float = 300.0) -> None:
        missing = [action for action in ACTIONS if not commands.get(action)]
        if missing:
            raise ValueError(f"lifecycle commands missing for: {', '.join(missing)}")
        self._commands = {action: list(commands[action]) for action in ACTIONS}
        self._timeout = timeout

    def stop(self, router: RouterInstance, forced: bool) -> None:
        self._run("stop_forced" if forced else "stop", router)

    def start(self, router: RouterInstance) -> None:
        self._run("start", router)

    def _run(self, action: str, router: RouterInstance) -> None:
        cmd: List[str] = [
            part.format(router_id=router.router_id, address=router.address or "")
            for part in self._commands[action]
        ]
        LOG.debug("Executing: %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd, check=False, text=True, capture_output=True, timeout=self._timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise AgentUnavailable(
                f"{action} of router '{router.router_id}' timed out", router_id=router.router_id
            ) from exc
        except OSError as exc:
            raise AgentUnavailable(
                f"{action} of router '{router.router_id}' failed to run: {exc}",
                router_id=router.router_id,
            ) from exc
        if proc.returncode != 0:
            raise ResourceUnavailable(
                f"{action} of router '{router.router_id}' failed (rc={proc.returncode}): "
                f"{proc.stderr.strip()}",
                router_id=router.router_id,
            )
        LOG.info("Router %s: %s completed", router.router_id, action)
