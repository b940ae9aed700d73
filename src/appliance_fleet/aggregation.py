"""Aggregated execution: batch configuration changes into one pass per router.

A caller opens a window with :meth:`AggregationController.prepare`, queues
any number of :class:`~appliance_fleet.config.Operation` objects and closes
the window with :meth:`AggregationController.complete`.  The queue lives
here, not on the routers, so a caller that never completes simply leaves a
session behind that :meth:`AggregationController.expire_idle` discards.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence

from .config import (
    BatchOutcome,
    Operation,
    OutcomeStatus,
    RouterInstance,
    RouterOutcome,
    RouterState,
)
from .errors import AgentUnavailable, ConcurrentOperation, SessionNotFound
from .executor import APPLY_BATCH, PING, Command, CommandExecutor, CommandStatus
from .fleet import RouterFleet
from .locator import RouterLocator

LOG = logging.getLogger(__name__)

_RESULT_STATUS = {
    CommandStatus.SUCCESS: OutcomeStatus.APPLIED,
    CommandStatus.FAILURE: OutcomeStatus.FAILED,
    CommandStatus.UNREACHABLE: OutcomeStatus.UNREACHABLE,
}


@dataclass
class AggregationSession:
    """Open batch window for one network."""

    session_id: str
    network_id: str
    caller: Optional[str]
    routers: List[RouterInstance]
    excluded: Dict[str, RouterOutcome]
    opened_at: float
    last_activity: float
    operations: List[Operation] = field(default_factory=list)

    def router_ids(self) -> List[str]:
        return [r.router_id for r in self.routers]


class AggregationController:
    def __init__(
        self,
        locator: RouterLocator,
        fleet: RouterFleet,
        executor: CommandExecutor,
        *,
        idle_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._locator = locator
        self._fleet = fleet
        self._executor = executor
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[str, AggregationSession] = {}
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Window lifecycle
    # ------------------------------------------------------------------
    def prepare(
        self,
        network_id: str,
        routers: Sequence[RouterInstance],
        caller: Optional[str] = None,
    ) -> str:
        self._locator.validate(network_id, routers)
        self.expire_idle()

        with self._lock:
            if network_id in self._sessions:
                existing = self._sessions[network_id]
                raise ConcurrentOperation(
                    f"aggregation session {existing.session_id} already open for "
                    f"network '{network_id}'"
                )
            # Reserve the slot while probing so a racing prepare fails fast.
            now = self._clock()
            session = AggregationSession(
                session_id=uuid.uuid4().hex,
                network_id=network_id,
                caller=caller,
                routers=[],
                excluded={},
                opened_at=now,
                last_activity=now,
            )
            self._sessions[network_id] = session

        try:
            self._admit(session, routers)
        except Exception:
            with self._lock:
                self._sessions.pop(network_id, None)
            raise

        LOG.info(
            "Opened aggregation session %s for network %s (routers=%s, excluded=%s)",
            session.session_id,
            network_id,
            session.router_ids(),
            sorted(session.excluded),
        )
        return session.session_id

    def _admit(self, session: AggregationSession, routers: Sequence[RouterInstance]) -> None:
        candidates = []
        for router in routers:
            if router.state in (RouterState.STOPPED, RouterState.STOPPING, RouterState.STARTING):
                session.excluded[router.router_id] = RouterOutcome(
                    router.router_id,
                    OutcomeStatus.FAILED,
                    reason=f"router is {router.state.value}",
                )
            else:
                candidates.append(router)

        probes = self._executor.execute_many(candidates, Command(PING))
        for router in candidates:
            result = probes[router.router_id]
            if result.status is CommandStatus.UNREACHABLE:
                LOG.warning(
                    "Router %s unreachable during prepare; excluded from session %s",
                    router.router_id,
                    session.session_id,
                )
                session.excluded[router.router_id] = RouterOutcome(
                    router.router_id, OutcomeStatus.UNREACHABLE, reason=result.details
                )
            else:
                session.routers.append(router)

        if not session.routers:
            raise AgentUnavailable(
                f"no router of network '{session.network_id}' is reachable"
            )

    def queue(self, network_id: str, operation: Operation) -> int:
        """Queue ``operation`` for every router in the open session."""

        self.expire_idle()
        with self._lock:
            session = self._open_session(network_id)
            session.operations.append(operation)
            session.last_activity = self._clock()
            pending = len(session.operations)
        LOG.debug("Network %s: queued %s (%d pending)", network_id, operation.kind, pending)
        return pending

    def complete(self, network_id: str, routers: Sequence[RouterInstance]) -> BatchOutcome:
        self._locator.validate(network_id, routers)
        self.expire_idle()
        with self._lock:
            session = self._open_session(network_id)
            del self._sessions[network_id]

        requested = [r.router_id for r in routers]
        members = {r.router_id: r for r in session.routers}
        targets = [members[rid] for rid in requested if rid in members]
        dropped = sorted(set(members) - set(requested))
        if dropped:
            LOG.warning(
                "Session %s: routers %s not listed on complete; their queue is discarded",
                session.session_id,
                dropped,
            )

        batch = Command(APPLY_BATCH, {
            "session_id": session.session_id,
            "operations": [op.as_dict() for op in session.operations],
        })
        applied = self._executor.fan_out(targets, lambda router: self._commit(router, batch))

        outcomes = []
        for rid in requested:
            if rid in applied:
                outcomes.append(applied[rid])
            elif rid in session.excluded:
                outcomes.append(session.excluded[rid])
            else:
                outcomes.append(
                    RouterOutcome(
                        rid, OutcomeStatus.FAILED, reason="router was not part of the session"
                    )
                )
        outcome = BatchOutcome(outcomes)
        if outcome.all_applied:
            LOG.info(
                "Session %s applied %d operations on %s",
                session.session_id,
                len(session.operations),
                requested,
            )
        else:
            LOG.warning("Session %s completed partially: %r", session.session_id, outcome)
        return outcome

    def _commit(self, router: RouterInstance, batch: Command) -> RouterOutcome:
        if not batch.args["operations"]:
            return RouterOutcome(router.router_id, OutcomeStatus.APPLIED, reason="nothing queued")
        try:
            with self._fleet.exclusive(router.router_id, "aggregation.commit"):
                result = self._executor.execute(router, batch)
        except ConcurrentOperation as exc:
            return RouterOutcome(router.router_id, OutcomeStatus.FAILED, reason=str(exc))
        except Exception as exc:
            LOG.exception("Router %s: batch %s failed", router.router_id, batch.args["session_id"])
            return RouterOutcome(router.router_id, OutcomeStatus.FAILED, reason=str(exc))
        return RouterOutcome(
            router.router_id,
            _RESULT_STATUS[result.status],
            reason=result.details,
            code=result.code,
        )

    def abort(self, network_id: str) -> Optional[AggregationSession]:
        with self._lock:
            session = self._sessions.pop(network_id, None)
        if session:
            LOG.info(
                "Aborted aggregation session %s (%d operations discarded)",
                session.session_id,
                len(session.operations),
            )
        return session

    def expire_idle(self) -> List[str]:
        """Discard sessions idle for longer than the timeout."""

        now = self._clock()
        expired: List[AggregationSession] = []
        with self._lock:
            for network_id, session in list(self._sessions.items()):
                if now - session.last_activity > self._idle_timeout:
                    expired.append(self._sessions.pop(network_id))
        for session in expired:
            LOG.warning(
                "Aggregation session %s for network %s expired after %.0fs idle; "
                "%d queued operations discarded",
                session.session_id,
                session.network_id,
                now - session.last_activity,
                len(session.operations),
            )
        return [s.session_id for s in expired]

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------
    def session_for(self, network_id: str) -> Optional[AggregationSession]:
        with self._lock:
            return self._sessions.get(network_id)

    def _open_session(self, network_id: str) -> AggregationSession:
        session = self._sessions.get(network_id)
        if session is None:
            raise SessionNotFound(f"no aggregation session open for network '{network_id}'")
        return session
