"""Fake SSH executor and shared fixtures."""

import threading

import pytest

from constants import CPU_IDLE_CMD, DISK_USED_CMD, MEM_USED_CMD
from host_state import HostSpec
from ssh_executor import CommandFailure, ConnectionFailure


def outputs(cpu_idle="76.5", disk="40", mem="55.2"):
    """Probe outputs as a host would print them."""
    return {CPU_IDLE_CMD: cpu_idle + "\n", DISK_USED_CMD: disk + "\n", MEM_USED_CMD: mem + "\n"}


class FakeSession:
    def __init__(self, script, log):
        self.script = script
        self.log = log
        self.closed = False

    def run(self, command):
        self.log.append(command)
        out = self.script[command]
        if isinstance(out, Exception):
            raise out
        return out

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeExecutor:
    """Scripted executor: name -> probe outputs dict, or an exception for open()."""

    def __init__(self, script, gates=None):
        self.script = script
        self.gates = gates or {}
        self.sessions = {}
        self.commands = {}
        self._lock = threading.Lock()

    def open(self, host):
        gate = self.gates.get(host.name)
        if gate is not None:
            gate.wait(timeout=5)
        behaviour = self.script[host.name]
        if isinstance(behaviour, Exception):
            raise behaviour
        with self._lock:
            log = self.commands.setdefault(host.name, [])
            session = FakeSession(behaviour, log)
            self.sessions[host.name] = session
        return session


@pytest.fixture
def hosts():
    return [
        HostSpec(name="A", address="10.0.0.1", username="u", password="p"),
        HostSpec(name="B", address="10.0.0.2:2222", username="u", password="p"),
    ]


@pytest.fixture
def fake_executor():
    return FakeExecutor


@pytest.fixture
def probe_outputs():
    return outputs


@pytest.fixture
def connection_failure():
    return ConnectionFailure


@pytest.fixture
def command_failure():
    return CommandFailure
