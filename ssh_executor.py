"""Remote command execution over SSH (paramiko).

One SSHSession per host per cycle: open, run the probe commands in
sequence, close. No retries, no pooling; the connect timeout is the only
bound unless a per-command timeout is configured.
"""

from typing import Optional

import paramiko

from constants import CONNECT_TIMEOUT
from host_state import HostSpec


class ConnectionFailure(Exception):
    """Session could not be opened: unreachable, auth rejected or timed out."""


class CommandFailure(Exception):
    """A command could not be run or exited non-zero."""


def _reason(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


class SSHSession:
    """An open connection to one host."""

    def __init__(self, client: paramiko.SSHClient, host: HostSpec,
                 command_timeout: Optional[float] = None):
        self._client = client
        self.host = host
        self.command_timeout = command_timeout

    def run(self, command: str) -> str:
        """Run one command and return its stdout."""
        try:
            _stdin, stdout, stderr = self._client.exec_command(
                command, timeout=self.command_timeout)
            output = stdout.read().decode("utf-8", errors="replace")
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise CommandFailure(_reason(e)) from e
        if status != 0:
            err = stderr.read().decode("utf-8", errors="replace").strip()
            raise CommandFailure(f"exit status {status}" + (f": {err}" if err else ""))
        return output

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class SSHExecutor:
    """Opens password-authenticated sessions to configured hosts."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT,
                 command_timeout: Optional[float] = None):
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def open(self, host: HostSpec) -> SSHSession:
        hostname, port = host.endpoint()
        client = paramiko.SSHClient()
        # Host keys are not verified
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname,
                port=port,
                username=host.username,
                password=host.password,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise ConnectionFailure(_reason(e)) from e
        return SSHSession(client, host, self.command_timeout)
