import pytest
from fastapi.testclient import TestClient

import web_server
from host_state import Metrics, PollResult
from polling import PollingStateMachine


@pytest.fixture
def machine(hosts):
    m = PollingStateMachine(hosts, lambda _hosts: None, log=lambda *a, **k: None)
    m.on_tick(0.0)
    m.on_cycle_complete({
        "A": PollResult.success(Metrics(cpu=23.5, disk=40.0, mem=55.2)),
        "B": PollResult.failure("timeout"),
    }, 0.0)
    web_server.set_machine(m)
    yield m
    web_server.set_machine(None)


@pytest.fixture
def client():
    return TestClient(web_server.app)


def test_state_lists_visible_hosts(machine, client):
    body = client.get("/api/state").json()

    assert body["debug"] is False
    assert body["cycle"]["generation"] == 1
    assert body["cycle"]["collecting"] is False
    assert [h["name"] for h in body["hosts"]] == ["A"]
    assert body["hosts"][0]["values"] == {"cpu": 23.5, "disk": 40.0, "mem": 55.2}
    assert body["hosts"][0]["status"] == "valid"


def test_state_in_debug_mode_includes_failing_host(machine, client):
    machine.debug_mode = True
    hosts = client.get("/api/state").json()["hosts"]

    assert [h["name"] for h in hosts] == ["A", "B"]
    assert hosts[1]["status"] == "invalid"
    assert hosts[1]["error"] == "timeout"
    assert hosts[1]["values"] is None


def test_host_lookup_ignores_visibility(machine, client):
    body = client.get("/api/hosts/B").json()
    assert body["error"] == "timeout"
    assert body["ever_resolved"] is False


def test_stale_values_flagged(machine, client):
    machine.on_tick(10.0)
    machine.on_cycle_complete({"A": PollResult.failure("refused"), "B": PollResult.failure("x")}, 10.0)
    body = client.get("/api/hosts/A").json()

    assert body["stale"] is True
    assert body["values"]["cpu"] == 23.5
    assert body["error"] == "refused"


def test_unknown_host_is_404(machine, client):
    assert client.get("/api/hosts/nope").status_code == 404


def test_state_before_init_is_503(client):
    web_server.set_machine(None)
    assert client.get("/api/state").status_code == 503


def test_websocket_sends_state_on_connect(machine, client):
    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()
    assert [h["name"] for h in message["hosts"]] == ["A"]
