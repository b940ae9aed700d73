import time
from threading import Event, Thread

import pytest

from appliance_fleet.config import RouterInstance
from appliance_fleet.executor import PING, Command, CommandExecutor, CommandStatus
from appliance_fleet.interfaces import CommandAnswer, CommandChannel


class SlowChannel(CommandChannel):
    def __init__(self, delay: float, hang_for=()):
        self.delay = delay
        self.hang_for = set(hang_for)
        self.release = Event()

    def send(self, router, name, args):
        if router.router_id in self.hang_for:
            self.release.wait(10)
        time.sleep(self.delay)
        return CommandAnswer(True)


class BrokenChannel(CommandChannel):
    def send(self, router, name, args):
        raise RuntimeError("agent protocol error")


def _routers(count):
    return [RouterInstance(f"r-{i}", "net-1") for i in range(count)]


def test_concurrent_calls_do_not_queue_behind_each_other():
    executor = CommandExecutor(SlowChannel(0.3), timeout=1.0, max_workers=2)
    statuses = {}

    def call(router):
        statuses[router.router_id] = executor.execute(router, Command(PING)).status

    threads = [Thread(target=call, args=(router,)) for router in _routers(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert statuses == {f"r-{i}": CommandStatus.SUCCESS for i in range(6)}


def test_hung_calls_do_not_starve_other_routers():
    channel = SlowChannel(0.0, hang_for={"r-0", "r-1", "r-2"})
    executor = CommandExecutor(channel, timeout=0.3, max_workers=2)
    try:
        results = executor.execute_many(_routers(6), Command(PING))
        assert [results[f"r-{i}"].status for i in range(3)] == [CommandStatus.UNREACHABLE] * 3
        assert results["r-0"].details == "timed out"

        again = executor.execute_many(_routers(6)[3:], Command(PING))
        assert all(result.ok for result in again.values())
    finally:
        channel.release.set()


def test_fan_out_keeps_router_order():
    executor = CommandExecutor(SlowChannel(0.0), timeout=1.0)

    results = executor.execute_many(_routers(4), Command(PING))

    assert list(results) == ["r-0", "r-1", "r-2", "r-3"]


def test_unexpected_channel_error_propagates():
    executor = CommandExecutor(BrokenChannel(), timeout=1.0)

    with pytest.raises(RuntimeError):
        executor.execute(RouterInstance("r-0", "net-1"), Command(PING))
