"""Data classes for configured hosts, poll results and per-host display state."""

import enum
from dataclasses import dataclass
from typing import Optional

from constants import DEFAULT_SSH_PORT


@dataclass(frozen=True)
class HostSpec:
    """One configured host. Loaded once at startup, never mutated."""
    name: str                  # Unique key used everywhere else
    address: str               # "host", "host:port" or "[v6]:port"
    username: str = ""
    password: str = ""
    port: int = DEFAULT_SSH_PORT

    def endpoint(self) -> tuple[str, int]:
        """Split the address into (hostname, port), honouring an inline port."""
        addr = self.address.strip()
        if addr.startswith("["):
            host, _, rest = addr[1:].partition("]")
            if rest.startswith(":") and rest[1:].isdigit():
                return host, int(rest[1:])
            return host, self.port
        if addr.count(":") == 1:
            host, _, port = addr.partition(":")
            if port.isdigit():
                return host, int(port)
        return addr, self.port


@dataclass(frozen=True)
class Metrics:
    cpu: float    # %
    disk: float   # %
    mem: float    # %


@dataclass(frozen=True)
class PollResult:
    """Outcome of one host for one cycle: either all three numbers or an error.

    Build with success() / failure(); a result never carries both.
    """
    metrics: Optional[Metrics] = None
    error: Optional[str] = None

    def __post_init__(self):
        if (self.metrics is None) == (self.error is None):
            raise ValueError("PollResult needs exactly one of metrics or error")

    @classmethod
    def success(cls, metrics: Metrics) -> "PollResult":
        return cls(metrics=metrics)

    @classmethod
    def failure(cls, reason: str) -> "PollResult":
        return cls(error=reason or "unknown error")

    @property
    def ok(self) -> bool:
        return self.error is None


class HostStatus(enum.Enum):
    UNRESOLVED = "unresolved"   # No cycle has completed for this host yet
    VALID = "valid"             # Last completed cycle succeeded
    INVALID = "invalid"         # Last completed cycle failed


@dataclass
class HostDisplayState:
    """Cumulative view of one host, mutated only by the merge step."""
    name: str
    status: HostStatus = HostStatus.UNRESOLVED
    ever_resolved: bool = False            # Succeeded at least once
    last_values: Optional[Metrics] = None  # Last known-good numbers
    last_error: Optional[str] = None
    has_received_first_cycle: bool = False
    updated_at: Optional[float] = None

    def apply(self, result: PollResult, now: float):
        """Fold one cycle's result into this host's state."""
        self.has_received_first_cycle = True
        self.updated_at = now
        if result.ok:
            self.last_values = result.metrics
            self.last_error = None
            self.ever_resolved = True
            self.status = HostStatus.VALID
        else:
            # last_values stays as the last-known-good numbers
            self.last_error = result.error
            self.status = HostStatus.INVALID

    def visible(self, debug: bool) -> bool:
        """Only hosts that have answered at least once, unless debugging."""
        return debug or self.ever_resolved

    def shown_values(self, retain_stale: bool = True) -> Optional[Metrics]:
        """Numbers the renderer should display under the stale-value policy."""
        if self.status is HostStatus.VALID:
            return self.last_values
        if self.status is HostStatus.INVALID and retain_stale:
            return self.last_values
        return None


@dataclass
class CycleState:
    """Global collection-cycle bookkeeping, owned by the polling loop."""
    poll_interval: float
    in_flight: bool = False
    last_completed_at: Optional[float] = None
    generation: int = 0        # Number of cycles dispatched so far

    def due(self, now: float) -> bool:
        if self.last_completed_at is None:
            return True
        return now - self.last_completed_at >= self.poll_interval
