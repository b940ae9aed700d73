"""Owned registry of router instances with per-router exclusivity."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Dict, Iterator, List, Optional

from .config import RouterInstance, RouterState
from .errors import ConcurrentOperation, UnknownRouter

LOG = logging.getLogger(__name__)

# Health annotations must not override an in-progress or terminal transition.
_ORCHESTRATED_STATES = (RouterState.STARTING, RouterState.STOPPING, RouterState.STOPPED)


@dataclass
class _Entry:
    router: RouterInstance
    op_lock: Lock = field(default_factory=Lock)
    operation: Optional[str] = None


class RouterFleet:
    """Router store indexed by router id.

    Every lifecycle operation (start/stop/restart) and every aggregation
    commit runs inside :meth:`exclusive`, which never blocks: a busy router
    fails fast with :class:`ConcurrentOperation`.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._lock = Lock()

    def register(self, router: RouterInstance) -> RouterInstance:
        with self._lock:
            entry = self._entries.get(router.router_id)
            if entry is None:
                self._entries[router.router_id] = _Entry(router)
                LOG.info(
                    "Registered router %s for network %s", router.router_id, router.network_id
                )
                return router
            # Placement may change (migration); lifecycle state stays ours.
            current = entry.router
            current.network_id = router.network_id
            current.zone_id = router.zone_id
            current.cluster_id = router.cluster_id
            current.address = router.address
            return current

    def deregister(self, router_id: str) -> Optional[RouterInstance]:
        with self._lock:
            entry = self._entries.pop(router_id, None)
        if entry:
            LOG.info("Deregistered router %s", router_id)
            return entry.router
        return None

    def get(self, router_id: str) -> RouterInstance:
        return self._entry(router_id).router

    def find(self, router_id: str) -> Optional[RouterInstance]:
        with self._lock:
            entry = self._entries.get(router_id)
        return entry.router if entry else None

    def list(self, network_id: Optional[str] = None) -> List[RouterInstance]:
        with self._lock:
            routers = [e.router for e in self._entries.values()]
        if network_id is None:
            return routers
        return [r for r in routers if r.network_id == network_id]

    def _entry(self, router_id: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(router_id)
        if entry is None:
            raise UnknownRouter(f"router '{router_id}' is not registered", router_id=router_id)
        return entry

    # ------------------------------------------------------------------
    # Exclusivity
    # ------------------------------------------------------------------
    @contextmanager
    def exclusive(self, router_id: str, operation: str) -> Iterator[RouterInstance]:
        entry = self._entry(router_id)
        if not entry.op_lock.acquire(blocking=False):
            raise ConcurrentOperation(
                f"router '{router_id}' is busy with '{entry.operation}'",
                router_id=router_id,
            )
        entry.operation = operation
        LOG.debug("Router %s: acquired for %s", router_id, operation)
        try:
            yield entry.router
        finally:
            entry.operation = None
            entry.op_lock.release()
            LOG.debug("Router %s: released after %s", router_id, operation)

    def busy(self, router_id: str) -> Optional[str]:
        """Return the in-flight operation name, if any."""

        return self._entry(router_id).operation

    # ------------------------------------------------------------------
    # State mutation
    # ------------------------------------------------------------------
    def set_state(self, router_id: str, state: RouterState) -> RouterInstance:
        entry = self._entry(router_id)
        with self._lock:
            previous = entry.router.state
            entry.router.state = state
        if previous is not state:
            LOG.info("Router %s: %s -> %s", router_id, previous.value, state.value)
        return entry.router

    def annotate(
        self,
        router_id: str,
        *,
        reachable: bool,
        status: Optional[str] = None,
        checked_at: Optional[datetime] = None,
    ) -> RouterInstance:
        """Record a health observation without touching orchestrated states."""

        entry = self._entry(router_id)
        router = entry.router
        with self._lock:
            if status is not None:
                router.health_status = status
            if checked_at is not None:
                router.last_health_check = checked_at
            if router.state in _ORCHESTRATED_STATES or entry.operation is not None:
                return router
            previous = router.state
            router.state = RouterState.RUNNING if reachable else RouterState.UNREACHABLE
        if previous is not router.state:
            LOG.warning("Router %s: %s -> %s", router_id, previous.value, router.state.value)
        return router
