import pytest

from appliance_fleet.config import (
    CallContext,
    Operation,
    OutcomeStatus,
    RemoteAccessVpn,
    RouterState,
)
from appliance_fleet.errors import ResourceUnavailable
from appliance_fleet.executor import APPLY_BATCH
from appliance_fleet.interfaces import CommandAnswer, DnsUpdateProvider
from appliance_fleet.manager import REMOVE_DHCP_SUBNET

from fakes import FakeChannel, FakeLifecycle, build_manager, build_settings

NETWORKS = {"net-1": ["r-a", "r-b"], "net-2": ["r-c"]}


class StaticDnsProvider(DnsUpdateProvider):
    def basic_zone_update(self) -> str:
        return "pod"


def test_get_routers_for_network():
    manager = build_manager(NETWORKS)

    assert [r.router_id for r in manager.get_routers_for_network("net-1")] == ["r-a", "r-b"]
    assert manager.get_routers_for_network("net-unknown") == []


def test_aggregated_execution_round_trip():
    channel = FakeChannel()
    manager = build_manager(NETWORKS, channel=channel)
    routers = manager.get_routers_for_network("net-1")

    manager.prepare_aggregated_execution("net-1", routers, caller="dhcp")
    assert manager.queue_operation("net-1", Operation("dhcp_entry", {"ip": "10.0.0.5"})) == 1
    assert manager.queue_operation("net-1", Operation("dns_entry", {"name": "vm"})) == 2
    outcome = manager.complete_aggregated_execution("net-1", routers)

    assert outcome.all_applied
    assert len(channel.sent(APPLY_BATCH)) == 2


def test_stop_uses_identity_when_caller_missing():
    lifecycle = FakeLifecycle()
    manager = build_manager(
        NETWORKS, lifecycle=lifecycle, identity=lambda: CallContext("admin", "acct-1")
    )

    router = manager.stop(manager.fleet.get("r-a"), True)

    assert router.state is RouterState.STOPPED
    assert lifecycle.stops == [("r-a", True)]


def test_stop_without_caller_is_rejected():
    manager = build_manager(NETWORKS)

    with pytest.raises(ValueError):
        manager.stop(manager.fleet.get("r-a"), False)


def test_remove_dhcp_support_for_subnet():
    channel = FakeChannel()
    manager = build_manager(NETWORKS, channel=channel)
    routers = manager.get_routers_for_network("net-1")

    outcome = manager.remove_dhcp_support_for_subnet("net-1", routers, subnet="10.0.0.0/24")

    assert outcome.all_applied
    [operation] = channel.sent(APPLY_BATCH, "r-a")[0]["operations"]
    assert operation == {
        "kind": REMOVE_DHCP_SUBNET,
        "payload": {"network_id": "net-1", "subnet": "10.0.0.0/24"},
    }
    assert manager.aggregation.session_for("net-1") is None


def test_remove_dhcp_support_fails_when_nothing_applied():
    channel = FakeChannel()
    channel.on(APPLY_BATCH, CommandAnswer(False, details="dnsmasq reload failed"))
    manager = build_manager(NETWORKS, channel=channel)

    with pytest.raises(ResourceUnavailable):
        manager.remove_dhcp_support_for_subnet("net-1", manager.get_routers_for_network("net-1"))


def test_vpn_through_facade():
    manager = build_manager(NETWORKS)
    routers = manager.get_routers_for_network("net-2")
    vpn = RemoteAccessVpn("vpn-1", "net-2", "198.51.100.4", "10.9.0.2-10.9.0.9")

    assert manager.start_remote_access_vpn("net-2", vpn, routers).all_applied
    outcome = manager.delete_remote_access_vpn("net-2", vpn, routers)
    assert outcome.statuses() == {"r-c": OutcomeStatus.APPLIED}


def test_dns_basic_zone_update():
    assert build_manager(NETWORKS).get_dns_basic_zone_update() == "all"
    assert (
        build_manager(NETWORKS, settings=build_settings(dns_basic_zone_updates="pod"))
        .get_dns_basic_zone_update()
        == "pod"
    )
    assert (
        build_manager(NETWORKS, dns_updates=StaticDnsProvider()).get_dns_basic_zone_update()
        == "pod"
    )


def test_command_timeout_comes_from_settings():
    manager = build_manager(NETWORKS, settings=build_settings(command_timeout=7))

    assert manager.executor.timeout == 7.0
