import sys

import pytest

from appliance_fleet.config import RouterInstance
from appliance_fleet.errors import AgentUnavailable, ResourceUnavailable
from fleet_integration.drivers import ScriptCommandChannel, ScriptLifecycleDriver

ROUTER = RouterInstance("r-1", "net-1", address="169.254.3.10")

ECHO_AGENT = (
    "import json, sys; req = json.load(sys.stdin); "
    "print(json.dumps(dict(success=True, details=sys.argv[1], "
    "payload=dict(command=req['command'], args=req['args']))))"
)


def python(code: str, *extra: str):
    return [sys.executable, "-c", code, *extra]


def test_channel_round_trip():
    channel = ScriptCommandChannel(python(ECHO_AGENT, "{address}"), timeout=10)

    answer = channel.send(ROUTER, "ping", {"probe": 1})

    assert answer.success
    assert answer.details == "169.254.3.10"
    assert answer.payload == {"command": "ping", "args": {"probe": 1}}


def test_channel_connect_failure_is_unreachable():
    channel = ScriptCommandChannel(python("import sys; sys.exit(255)"), timeout=10)

    with pytest.raises(AgentUnavailable):
        channel.send(ROUTER, "ping", {})


def test_channel_silent_failure_is_unreachable():
    channel = ScriptCommandChannel(python("import sys; sys.exit(3)"), timeout=10)

    with pytest.raises(AgentUnavailable):
        channel.send(ROUTER, "ping", {})


def test_channel_timeout_is_unreachable():
    channel = ScriptCommandChannel(python("import time; time.sleep(5)"), timeout=0.5)

    with pytest.raises(AgentUnavailable):
        channel.send(ROUTER, "ping", {})


def test_channel_malformed_answer_is_a_failure():
    channel = ScriptCommandChannel(python("print('not json')"), timeout=10)

    answer = channel.send(ROUTER, "ping", {})

    assert not answer.success
    assert "malformed" in answer.details


def test_channel_requires_address():
    channel = ScriptCommandChannel(python(ECHO_AGENT, "{address}"), timeout=10)

    with pytest.raises(AgentUnavailable):
        channel.send(RouterInstance("r-2", "net-1"), "ping", {})


def test_lifecycle_driver():
    ok = python("import sys; sys.exit(0)")
    driver = ScriptLifecycleDriver(
        {"start": ok, "stop": python("import sys; sys.exit(1)"), "stop_forced": ok},
        timeout=10,
    )

    driver.start(ROUTER)
    driver.stop(ROUTER, forced=True)
    with pytest.raises(ResourceUnavailable):
        driver.stop(ROUTER, forced=False)


def test_lifecycle_driver_missing_binary():
    missing = ["/nonexistent/virsh", "destroy", "{router_id}"]
    driver = ScriptLifecycleDriver(
        {"start": missing, "stop": missing, "stop_forced": missing}, timeout=10
    )

    with pytest.raises(AgentUnavailable):
        driver.stop(ROUTER, forced=True)


def test_lifecycle_driver_requires_every_action():
    with pytest.raises(ValueError):
        ScriptLifecycleDriver({"start": ["true"]})
