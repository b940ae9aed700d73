import pytest

from appliance_fleet.config import Operation, OutcomeStatus, RouterState
from appliance_fleet.errors import (
    AgentUnavailable,
    ConcurrentOperation,
    InvalidTargetSet,
    SessionNotFound,
)
from appliance_fleet.executor import APPLY_BATCH, PING
from appliance_fleet.interfaces import CommandAnswer

from fakes import FakeChannel, build_aggregation

NETWORKS = {"net-1": ["r-a", "r-b"], "net-2": ["r-c"]}


def test_batch_applies_once_per_router():
    channel = FakeChannel()
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    for i in range(3):
        controller.queue("net-1", Operation("dhcp_entry", {"mac": f"02:00:00:00:00:0{i}"}))
    outcome = controller.complete("net-1", routers)

    assert outcome.all_applied
    for router_id in ("r-a", "r-b"):
        batches = channel.sent(APPLY_BATCH, router_id)
        assert len(batches) == 1
        assert [op["kind"] for op in batches[0]["operations"]] == ["dhcp_entry"] * 3


def test_router_unreachable_during_prepare_is_excluded():
    channel = FakeChannel()
    channel.unreachable.add("r-a")
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    assert controller.session_for("net-1").router_ids() == ["r-b"]

    controller.queue("net-1", Operation("dns_entry", {"name": "vm-1"}))
    outcome = controller.complete("net-1", routers)

    assert outcome.statuses() == {
        "r-a": OutcomeStatus.UNREACHABLE,
        "r-b": OutcomeStatus.APPLIED,
    }
    assert channel.sent(APPLY_BATCH, "r-a") == []


def test_router_unreachable_before_complete():
    channel = FakeChannel()
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    channel.unreachable.add("r-a")
    outcome = controller.complete("net-1", routers)

    assert outcome["r-a"].status is OutcomeStatus.UNREACHABLE
    assert outcome["r-b"].status is OutcomeStatus.APPLIED
    assert not outcome.all_applied
    assert [o.router_id for o in outcome.unreachable()] == ["r-a"]


def test_rejected_batch_is_reported_failed():
    channel = FakeChannel()
    channel.on(APPLY_BATCH, CommandAnswer(False, details="disk full", code="ERROR"), "r-b")
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    outcome = controller.complete("net-1", routers)

    assert outcome["r-a"].applied
    assert outcome["r-b"].status is OutcomeStatus.FAILED
    assert outcome["r-b"].reason == "disk full"


def test_channel_error_fails_only_that_router():
    def explode(router_id, args):
        raise RuntimeError("agent protocol error")

    channel = FakeChannel()
    channel.on(APPLY_BATCH, explode, "r-a")
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    outcome = controller.complete("net-1", routers)

    assert outcome["r-a"].status is OutcomeStatus.FAILED
    assert outcome["r-a"].reason == "agent protocol error"
    assert outcome["r-b"].applied


def test_invalid_target_sets_are_rejected_before_contact():
    channel = FakeChannel()
    controller, fleet, locator = build_aggregation(NETWORKS, channel)

    with pytest.raises(InvalidTargetSet):
        controller.prepare("net-1", [])

    with pytest.raises(InvalidTargetSet):
        controller.prepare("net-1", [fleet.get("r-a"), fleet.get("r-c")])

    assert channel.calls == []
    assert controller.session_for("net-1") is None


def test_total_unreachability_raises():
    channel = FakeChannel()
    channel.unreachable.update({"r-a", "r-b"})
    controller, _, locator = build_aggregation(NETWORKS, channel)

    with pytest.raises(AgentUnavailable):
        controller.prepare("net-1", locator.routers_for_network("net-1"))

    assert controller.session_for("net-1") is None


def test_sessions_do_not_nest():
    controller, _, locator = build_aggregation(NETWORKS, FakeChannel())
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers, caller="first")
    with pytest.raises(ConcurrentOperation):
        controller.prepare("net-1", routers, caller="second")

    # A different network is independent.
    controller.prepare("net-2", locator.routers_for_network("net-2"))


def test_idle_session_expires():
    now = [1000.0]
    channel = FakeChannel()
    controller, _, locator = build_aggregation(
        NETWORKS, channel, idle_timeout=60, clock=lambda: now[0]
    )
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))

    now[0] += 61
    assert len(controller.expire_idle()) == 1

    with pytest.raises(SessionNotFound):
        controller.complete("net-1", routers)
    assert channel.sent(APPLY_BATCH) == []

    # The network can be prepared again.
    controller.prepare("net-1", routers)


def test_complete_without_prepare():
    controller, _, locator = build_aggregation(NETWORKS, FakeChannel())

    with pytest.raises(SessionNotFound):
        controller.complete("net-1", locator.routers_for_network("net-1"))


def test_busy_router_fails_commit():
    channel = FakeChannel()
    controller, fleet, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    with fleet.exclusive("r-a", "stop"):
        outcome = controller.complete("net-1", routers)

    assert outcome["r-a"].status is OutcomeStatus.FAILED
    assert "stop" in outcome["r-a"].reason
    assert outcome["r-b"].applied
    assert channel.sent(APPLY_BATCH, "r-a") == []


def test_empty_batch_sends_nothing():
    channel = FakeChannel()
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    outcome = controller.complete("net-1", routers)

    assert outcome.all_applied
    assert channel.sent(APPLY_BATCH) == []
    assert len(channel.sent(PING)) == 2


def test_stopped_router_is_not_admitted():
    channel = FakeChannel()
    controller, fleet, locator = build_aggregation(NETWORKS, channel)
    fleet.set_state("r-b", RouterState.STOPPED)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    outcome = controller.complete("net-1", routers)

    assert outcome["r-a"].applied
    assert outcome["r-b"].status is OutcomeStatus.FAILED
    assert channel.sent(PING, "r-b") == []


def test_abort_discards_queue():
    channel = FakeChannel()
    controller, _, locator = build_aggregation(NETWORKS, channel)
    routers = locator.routers_for_network("net-1")

    controller.prepare("net-1", routers)
    controller.queue("net-1", Operation("dhcp_entry", {}))
    session = controller.abort("net-1")

    assert session is not None
    assert len(session.operations) == 1
    with pytest.raises(SessionNotFound):
        controller.queue("net-1", Operation("dhcp_entry", {}))
