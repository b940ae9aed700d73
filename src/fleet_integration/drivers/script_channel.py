"""Command channel that talks to router agents through a helper process.

The configured command (typically ``ssh`` into the router's control
interface followed by the agent binary) receives one JSON request on stdin
and must print one JSON answer on stdout::

    request:  {"command": "apply_batch", "args": {...}}
    answer:   {"success": true, "details": "", "code": null, "payload": {...}}
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, List, Mapping, Sequence

from appliance_fleet.config import RouterInstance
from appliance_fleet.errors import AgentUnavailable
from appliance_fleet.interfaces import CommandAnswer, CommandChannel

LOG = logging.getLogger(__name__)

# ssh reports connection level failures with exit status 255.
SSH_CONNECT_FAILURE = 255


def run(cmd: List[str], stdin: str, timeout: float) -> subprocess.CompletedProcess[str]:
    LOG.debug("Executing: %s", " ".join(cmd))
    return subprocess.run(
        cmd, input=stdin, check=False, text=True, capture_output=True, timeout=timeout
    )


class ScriptCommandChannel(CommandChannel):
    def __init__(self, command: Sequence[str], *, timeout: float = 120.0) -> None:
        if not command:
            raise ValueError("channel command must not be empty")
        self._command = list(command)
        self._timeout = timeout

    def _render(self, router: RouterInstance) -> List[str]:
        if not router.address:
            raise AgentUnavailable(
                f"router '{router.router_id}' has no management address",
                router_id=router.router_id,
            )
        return [
            part.format(address=router.address, router_id=router.router_id)
            for part in self._command
        ]

    def send(self, router: RouterInstance, name: str, args: Mapping[str, Any]) -> CommandAnswer:
        cmd = self._render(router)
        request = json.dumps({"command": name, "args": dict(args)})
        try:
            proc = run(cmd, request, self._timeout)
        except subprocess.TimeoutExpired as exc:
            raise AgentUnavailable(
                f"{name} timed out after {exc.timeout}s", router_id=router.router_id
            ) from exc

        if proc.returncode == SSH_CONNECT_FAILURE or (proc.returncode != 0 and not proc.stdout):
            raise AgentUnavailable(
                f"{name} could not be delivered (rc={proc.returncode}): {proc.stderr.strip()}",
                router_id=router.router_id,
            )

        try:
            answer = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            LOG.warning("Router %s returned malformed answer to %s: %s", router.router_id, name, exc)
            return CommandAnswer(False, details=f"malformed answer: {exc}")
        if not isinstance(answer, dict):
            return CommandAnswer(False, details="answer must be a JSON object")

        payload = answer.get("payload") or {}
        return CommandAnswer(
            success=bool(answer.get("success", proc.returncode == 0)),
            details=str(answer.get("details", "")),
            code=answer.get("code"),
            payload=payload if isinstance(payload, dict) else {},
        )
