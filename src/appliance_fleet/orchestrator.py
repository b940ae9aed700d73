"""Controlled stop, start and restart of router appliances."""

from __future__ import annotations

import logging
from typing import Optional

from .config import RouterInstance, RouterState
from .errors import ResourceUnavailable
from .executor import SHUTDOWN_SERVICES, Command, CommandExecutor
from .fleet import RouterFleet
from .interfaces import LifecycleDriver

LOG = logging.getLogger(__name__)

SYSTEM_USER = "system"
SYSTEM_ACCOUNT = "system"


class RouterOrchestrator:
    """Serialises lifecycle operations per router.

    A second operation on a busy router fails immediately with
    :class:`~appliance_fleet.errors.ConcurrentOperation`; nothing queues.
    Once a stop has reached the lifecycle driver it is not cancelled.
    """

    def __init__(
        self,
        fleet: RouterFleet,
        executor: CommandExecutor,
        driver: LifecycleDriver,
        *,
        graceful_timeout: float = 60.0,
    ) -> None:
        self._fleet = fleet
        self._executor = executor
        self._driver = driver
        self._graceful_timeout = graceful_timeout

    def stop(
        self,
        router: RouterInstance,
        forced: bool,
        calling_user: str,
        calling_account: str,
    ) -> RouterInstance:
        LOG.info(
            "Stop of router %s requested by user %s (account %s), forced=%s",
            router.router_id,
            calling_user,
            calling_account,
            forced,
        )
        with self._fleet.exclusive(router.router_id, "stop") as current:
            return self._stop_locked(current, forced)

    def start(self, router: RouterInstance) -> RouterInstance:
        with self._fleet.exclusive(router.router_id, "start") as current:
            return self._start_locked(current)

    def restart(self, router: RouterInstance, reason: Optional[str] = None) -> RouterInstance:
        LOG.info(
            "Restarting router %s (user %s, account %s): %s",
            router.router_id,
            SYSTEM_USER,
            SYSTEM_ACCOUNT,
            reason or "requested",
        )
        with self._fleet.exclusive(router.router_id, "restart") as current:
            self._stop_locked(current, forced=False)
            return self._start_locked(current)

    # ------------------------------------------------------------------
    # Transitions, called with the router held exclusively
    # ------------------------------------------------------------------
    def _stop_locked(self, router: RouterInstance, forced: bool) -> RouterInstance:
        previous = router.state
        if previous is RouterState.STOPPED:
            LOG.info("Router %s is already stopped", router.router_id)
            return router
        if previous not in (RouterState.RUNNING, RouterState.UNREACHABLE):
            raise ResourceUnavailable(
                f"router '{router.router_id}' cannot be stopped while {previous.value}",
                router_id=router.router_id,
            )

        self._fleet.set_state(router.router_id, RouterState.STOPPING)
        try:
            force_power_off = forced
            if not forced:
                if previous is RouterState.UNREACHABLE:
                    LOG.warning(
                        "Router %s is unreachable; skipping graceful service shutdown",
                        router.router_id,
                    )
                    force_power_off = True
                else:
                    force_power_off = not self._shutdown_services(router)
            self._driver.stop(router, forced=force_power_off)
        except Exception:
            self._fleet.set_state(router.router_id, previous)
            raise

        return self._fleet.set_state(router.router_id, RouterState.STOPPED)

    def _shutdown_services(self, router: RouterInstance) -> bool:
        result = self._executor.execute(
            router, Command(SHUTDOWN_SERVICES), timeout=self._graceful_timeout
        )
        if result.ok:
            return True
        LOG.warning(
            "Router %s did not shut down services cleanly (%s: %s); forcing stop",
            router.router_id,
            result.status.value,
            result.details,
        )
        return False

    def _start_locked(self, router: RouterInstance) -> RouterInstance:
        if router.state is RouterState.RUNNING:
            return router
        if router.state is not RouterState.STOPPED:
            raise ResourceUnavailable(
                f"router '{router.router_id}' cannot be started while {router.state.value}",
                router_id=router.router_id,
            )
        self._fleet.set_state(router.router_id, RouterState.STARTING)
        try:
            self._driver.start(router)
        except Exception:
            self._fleet.set_state(router.router_id, RouterState.STOPPED)
            raise
        return self._fleet.set_state(router.router_id, RouterState.RUNNING)
