"""Fan-out collection of CPU / disk / memory ratios across the fleet.

Each host gets its own worker: open a session, run the three probes in
order on it, parse all three or report an error. Workers record into an
accumulator private to the cycle; collect() returns only after every
worker has finished, so a hung host holds the whole cycle until its
transport gives up.

All threads are daemons: quitting abandons a wedged cycle instead of
waiting for it at interpreter exit.
"""

import contextlib
import math
import threading
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from constants import CPU_IDLE_CMD, DISK_USED_CMD, MEM_USED_CMD
from host_state import HostSpec, Metrics, PollResult
from ssh_executor import CommandFailure, ConnectionFailure


class ProbeParseError(ValueError):
    """Probe output was not a finite decimal number."""


def parse_percentage(output: str) -> float:
    """Parse trimmed probe output as a decimal number."""
    text = output.strip()
    try:
        value = float(text)
    except ValueError:
        raise ProbeParseError(f"not a number: {text!r}") from None
    if not math.isfinite(value):
        raise ProbeParseError(f"not a finite number: {text!r}")
    return value


class _Accumulator:
    """Per-cycle result map shared by that cycle's workers only."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: dict[str, PollResult] = {}

    def record(self, name: str, result: PollResult):
        with self._lock:
            self._results[name] = result

    def freeze(self) -> Mapping[str, PollResult]:
        with self._lock:
            return MappingProxyType(dict(self._results))


class FleetCollector:
    """Runs one full collection cycle over a host list.

    executor: anything with open(HostSpec) -> session, where the session has
              run(command) -> str and close().
    max_workers: optional bound on simultaneous sessions (default: one per host).
    """

    PROBES = (
        ("cpu", CPU_IDLE_CMD),
        ("disk", DISK_USED_CMD),
        ("mem", MEM_USED_CMD),
    )

    def __init__(self, executor, max_workers: Optional[int] = None):
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.executor = executor
        self.max_workers = max_workers

    def collect(self, hosts: Sequence[HostSpec]) -> Mapping[str, PollResult]:
        """Query every host concurrently; exactly one result per host."""
        acc = _Accumulator()
        if not hosts:
            return acc.freeze()

        if self.max_workers is not None:
            gate = threading.BoundedSemaphore(self.max_workers)
        else:
            gate = contextlib.nullcontext()

        workers = [
            threading.Thread(target=self._probe_into, args=(host, acc, gate),
                             name=f"probe-{host.name}", daemon=True)
            for host in hosts
        ]
        for t in workers:
            t.start()
        # Barrier: every worker has recorded before we hand the map back
        for t in workers:
            t.join()
        return acc.freeze()

    def collect_in_background(self, hosts: Sequence[HostSpec],
                              on_done: Callable[[Mapping[str, PollResult]], None]):
        """Run collect() on a daemon thread and hand the map to on_done.

        on_done runs on that thread. If collect() itself raises, every host
        gets a failure so the caller always hears back exactly once.
        """
        hosts = tuple(hosts)

        def run():
            try:
                results = self.collect(hosts)
            except Exception as e:
                results = {h.name: PollResult.failure(f"collection failed: {e}") for h in hosts}
            on_done(results)

        t = threading.Thread(target=run, name="collect-cycle", daemon=True)
        t.start()
        return t

    def _probe_into(self, host: HostSpec, acc: _Accumulator, gate):
        try:
            with gate:
                result = self.probe_host(host)
        except Exception as e:
            # One host must never cost the cycle its coverage
            result = PollResult.failure(f"unexpected error: {e}")
        acc.record(host.name, result)

    def probe_host(self, host: HostSpec) -> PollResult:
        """Open a session to one host and run the three probes on it."""
        try:
            session = self.executor.open(host)
        except ConnectionFailure as e:
            return PollResult.failure(str(e))

        values = {}
        with session:
            for probe, command in self.PROBES:
                try:
                    values[probe] = parse_percentage(session.run(command))
                except (CommandFailure, ProbeParseError) as e:
                    # All-or-nothing: anything parsed so far is dropped
                    return PollResult.failure(f"{probe} probe: {e}")

        return PollResult.success(Metrics(
            cpu=100.0 - values["cpu"],
            disk=values["disk"],
            mem=values["mem"],
        ))
