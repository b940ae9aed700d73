import json
import time
from pathlib import Path
from threading import Event

import pytest

from appliance_fleet.config import RouterState
from appliance_fleet.fleet import RouterFleet
from fleet_integration.drivers import InventoryDirectory
from fleet_integration.drivers.inventory import parse_inventory
from fleet_manager.timers import InventoryWatcher


def write_inventory(path: Path, networks) -> None:
    path.write_text(json.dumps({"networks": networks}))


def test_parse_inventory():
    networks = parse_inventory({
        "networks": [
            {
                "network_id": "net-1",
                "routers": [
                    {"router_id": "r-1", "address": "169.254.3.10", "zone": "z1",
                     "cluster": "c1"},
                    {"router_id": "r-2", "state": "Stopped"},
                ],
            }
        ]
    })

    r1, r2 = networks["net-1"]
    assert (r1.zone_id, r1.cluster_id, r1.address) == ("z1", "c1", "169.254.3.10")
    assert r1.state is RouterState.RUNNING
    assert r2.state is RouterState.STOPPED


def test_parse_inventory_rejects_shared_router():
    with pytest.raises(ValueError):
        parse_inventory({
            "networks": [
                {"network_id": "net-1", "routers": [{"router_id": "r-1"}]},
                {"network_id": "net-2", "routers": [{"router_id": "r-1"}]},
            ]
        })


def test_directory_keeps_last_good_inventory(tmp_path: Path):
    path = tmp_path / "inventory.json"
    directory = InventoryDirectory(path)
    assert directory.load() is None

    write_inventory(path, [{"network_id": "net-1", "routers": [{"router_id": "r-1"}]}])
    assert directory.load() is not None
    assert directory.router_ids_for_network("net-1") == ["r-1"]
    assert directory.network_for_router("r-1") == "net-1"

    path.write_text("{not json")
    assert directory.load() is None
    assert directory.router_ids_for_network("net-1") == ["r-1"]


def test_watcher_syncs_fleet(tmp_path: Path):
    path = tmp_path / "inventory.json"
    write_inventory(path, [
        {"network_id": "net-1", "routers": [{"router_id": "r-1"}, {"router_id": "r-2"}]},
    ])
    fleet = RouterFleet()
    stop_event = Event()
    watcher = InventoryWatcher(InventoryDirectory(path), fleet, 0.1, stop_event)

    watcher.start()
    try:
        deadline = time.time() + 2
        while len(fleet.list()) < 2 and time.time() < deadline:
            time.sleep(0.05)
        assert sorted(r.router_id for r in fleet.list("net-1")) == ["r-1", "r-2"]

        write_inventory(path, [
            {"network_id": "net-1", "routers": [{"router_id": "r-1"}]},
        ])
        deadline = time.time() + 2
        while fleet.find("r-2") is not None and time.time() < deadline:
            time.sleep(0.05)
        assert fleet.find("r-2") is None
    finally:
        stop_event.set()
        watcher.join(timeout=1)


def test_poll_keeps_lifecycle_state(tmp_path: Path):
    path = tmp_path / "inventory.json"
    write_inventory(path, [
        {"network_id": "net-1", "routers": [{"router_id": "r-1", "zone": "z1"}]},
    ])
    fleet = RouterFleet()
    watcher = InventoryWatcher(InventoryDirectory(path), fleet, 30, Event())

    watcher.poll()
    fleet.set_state("r-1", RouterState.STOPPED)
    write_inventory(path, [
        {"network_id": "net-1", "routers": [{"router_id": "r-1", "zone": "z2"}]},
    ])
    watcher.poll()

    router = fleet.get("r-1")
    assert router.state is RouterState.STOPPED
    assert router.zone_id == "z2"
