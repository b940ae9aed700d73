"""Send commands to router agents with bounded waits."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from threading import Thread
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TypeVar, Union

from .config import RouterInstance
from .errors import AgentUnavailable
from .interfaces import CommandAnswer, CommandChannel

LOG = logging.getLogger(__name__)

T = TypeVar("T")

PING = "ping"
APPLY_BATCH = "apply_batch"
SHUTDOWN_SERVICES = "shutdown_services"
RUN_HEALTH_CHECKS = "run_health_checks"
SET_HEALTH_CHECK_CONFIG = "set_health_check_config"
GET_HEALTH_CHECK_RESULTS = "get_health_check_results"
GET_ROUTER_ALERTS = "get_router_alerts"


@dataclass(frozen=True)
class Command:
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


class CommandStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class CommandResult:
    router_id: str
    status: CommandStatus
    details: str = ""
    code: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is CommandStatus.SUCCESS


class _ChannelCall(Thread):
    """One ``channel.send`` on its own thread so the wait starts with the call."""

    def __init__(self, channel: CommandChannel, router: RouterInstance, command: Command) -> None:
        super().__init__(daemon=True, name=f"router-cmd-{router.router_id}")
        self._channel = channel
        self._router = router
        self._command = command
        self.answer: Optional[CommandAnswer] = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.answer = self._channel.send(
                self._router, self._command.name, dict(self._command.args)
            )
        except Exception as exc:
            self.error = exc


class CommandExecutor:
    """Deliver single commands to routers and fan them out across a set.

    Every channel call runs on its own thread and is abandoned after
    ``timeout`` seconds; the router is then reported ``UNREACHABLE``.  A call
    that never returns only keeps its own thread alive.
    """

    def __init__(
        self,
        channel: CommandChannel,
        *,
        timeout: float = 120.0,
        max_workers: int = 8,
    ) -> None:
        self._channel = channel
        self._timeout = timeout
        self._max_workers = max_workers

    @property
    def timeout(self) -> float:
        return self._timeout

    def execute(
        self,
        router: RouterInstance,
        command: Command,
        *,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        wait = self._timeout if timeout is None else timeout
        LOG.debug("Router %s: sending %s", router.router_id, command.name)
        call = _ChannelCall(self._channel, router, command)
        call.start()
        call.join(wait)
        if call.is_alive():
            LOG.warning(
                "Router %s: %s timed out after %ss", router.router_id, command.name, wait
            )
            return CommandResult(router.router_id, CommandStatus.UNREACHABLE, "timed out")
        if isinstance(call.error, (AgentUnavailable, ConnectionError, OSError)):
            LOG.warning(
                "Router %s: %s not delivered: %s", router.router_id, command.name, call.error
            )
            return CommandResult(router.router_id, CommandStatus.UNREACHABLE, str(call.error))
        if call.error is not None:
            raise call.error

        answer: CommandAnswer = call.answer
        status = CommandStatus.SUCCESS if answer.success else CommandStatus.FAILURE
        if not answer.success:
            LOG.debug(
                "Router %s: %s rejected (%s): %s",
                router.router_id,
                command.name,
                answer.code,
                answer.details,
            )
        return CommandResult(
            router.router_id,
            status,
            details=answer.details,
            code=answer.code,
            payload=answer.payload,
        )

    def fan_out(
        self, routers: Sequence[RouterInstance], fn: Callable[[RouterInstance], T]
    ) -> Dict[str, T]:
        """Run ``fn`` for each router in parallel, keyed and ordered by router id."""

        if not routers:
            return {}
        workers = min(len(routers), self._max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="router-fan") as pool:
            futures = [(router.router_id, pool.submit(fn, router)) for router in routers]
            return {router_id: future.result() for router_id, future in futures}

    def execute_many(
        self,
        routers: Sequence[RouterInstance],
        command: Union[Command, Callable[[RouterInstance], Command]],
    ) -> Dict[str, CommandResult]:
        if callable(command):
            factory = command
        else:
            def factory(_router: RouterInstance) -> Command:
                return command  # type: ignore[return-value]

        return self.fan_out(routers, lambda router: self.execute(router, factory(router)))
