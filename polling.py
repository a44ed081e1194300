"""Single-flight polling state machine behind the dashboard.

The machine owns every HostDisplayState and the one CycleState. It is
driven from a single loop:

  - on_tick(now) on every UI timer firing; dispatches a collection cycle
    when idle and the poll interval has elapsed
  - on_cycle_complete(results, now) once per dispatched cycle, with the
    collector's full result map; merges and returns to idle
  - snapshot() for the renderer, in configuration order

Collection itself runs elsewhere. The injected dispatch callable gets the
host tuple and is responsible for running the collector off the loop and
delivering its result back to on_cycle_complete on the loop.
"""

from dataclasses import replace
from typing import Callable, Mapping, Optional, Sequence

from constants import POLL_INTERVAL
from host_state import CycleState, HostDisplayState, HostSpec, HostStatus, PollResult


def _print_log(text: str, style: str = "", _debug: bool = False):
    if not _debug:
        print(f"  {text}")


class PollingStateMachine:
    """Decides when to collect, merges results, exposes a render snapshot."""

    def __init__(self, hosts: Sequence[HostSpec],
                 dispatch: Callable[[tuple], object],
                 poll_interval: float = POLL_INTERVAL,
                 debug: bool = False,
                 retain_stale: bool = True,
                 log: Optional[Callable] = None):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.hosts = tuple(hosts)
        self.debug_mode = debug
        self.retain_stale = retain_stale
        self.cycle = CycleState(poll_interval=poll_interval)
        self._dispatch = dispatch
        self._log = log or _print_log
        self._states = {h.name: HostDisplayState(name=h.name) for h in self.hosts}
        self._stopped = False

    # ---- Global state ----

    @property
    def collecting(self) -> bool:
        return self.cycle.in_flight

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self):
        """Quit signal: no further cycles; a late result will be discarded."""
        self._stopped = True

    # ---- Transitions ----

    def on_tick(self, now: float) -> bool:
        """Start a cycle if idle and due. Returns True if one was dispatched."""
        if self._stopped or self.cycle.in_flight:
            return False
        if not self.cycle.due(now):
            return False

        self.cycle.in_flight = True
        self.cycle.generation += 1
        self._log(f"Cycle {self.cycle.generation}: polling {len(self.hosts)} host(s)",
                  _debug=True)
        try:
            self._dispatch(self.hosts)
        except Exception:
            self.cycle.in_flight = False
            raise
        return True

    def on_cycle_complete(self, results: Mapping[str, PollResult], now: float) -> bool:
        """Merge one cycle's results. Returns False if the result was discarded."""
        if not self.cycle.in_flight:
            raise RuntimeError("cycle result delivered with no cycle in flight")

        if self._stopped:
            self.cycle.in_flight = False
            self._log(f"Cycle {self.cycle.generation}: result after shutdown, discarded",
                      _debug=True)
            return False

        for host in self.hosts:
            result = results.get(host.name) or PollResult.failure("no result")
            self._merge_host(self._states[host.name], result, now)

        self.cycle.last_completed_at = now
        self.cycle.in_flight = False
        return True

    def _merge_host(self, state: HostDisplayState, result: PollResult, now: float):
        previous = state.status
        first_success = result.ok and not state.ever_resolved
        state.apply(result, now)

        if first_success:
            self._log(f"{state.name}: online", style="green")
        elif previous is HostStatus.VALID and state.status is HostStatus.INVALID:
            self._log(f"{state.name}: {state.last_error}", style="bold red")
        elif previous is HostStatus.INVALID and state.status is HostStatus.VALID:
            self._log(f"{state.name}: recovered", style="green")
        elif state.status is HostStatus.INVALID:
            self._log(f"{state.name}: {state.last_error}", style="red", _debug=True)

    # ---- Read side ----

    def states(self) -> list[HostDisplayState]:
        """Copies of every host's state in configuration order, unfiltered."""
        return [replace(self._states[h.name]) for h in self.hosts]

    def state(self, name: str) -> HostDisplayState:
        return replace(self._states[name])

    def snapshot(self) -> list[HostDisplayState]:
        """Copies of the displayable hosts in configuration order."""
        return [s for s in self.states() if s.visible(self.debug_mode)]
