"""Hosts file loader.

The file is YAML with a single ``hosts`` list::

    hosts:
      - name: web-1
        hostname: 10.0.0.11:22
        user: monitor
        password: secret

Entries keep their file order; that order is the display order.
"""

from pathlib import Path
from typing import Union

import yaml

from constants import DEFAULT_SSH_PORT
from host_state import HostSpec


class ConfigError(Exception):
    """Hosts file could not be loaded. Fatal before the dashboard starts."""


def load_hosts(path: Union[str, Path]) -> list[HostSpec]:
    """Read and validate the hosts file, returning HostSpecs in file order."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    return parse_hosts(data, source=str(path))


def parse_hosts(data, source: str = "<config>") -> list[HostSpec]:
    """Build HostSpecs from already-decoded config data."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping with a 'hosts' list")
    entries = data.get("hosts") or []
    if not isinstance(entries, list):
        raise ConfigError(f"{source}: 'hosts' must be a list")

    hosts = []
    seen = set()
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"{source}: host #{idx + 1} is not a mapping")
        name = str(entry.get("name") or "").strip()
        address = str(entry.get("hostname") or "").strip()
        if not name:
            raise ConfigError(f"{source}: host #{idx + 1} has no name")
        if not address:
            raise ConfigError(f"{source}: host '{name}' has no hostname")
        if name in seen:
            raise ConfigError(f"{source}: duplicate host name '{name}'")
        seen.add(name)

        port = entry.get("port", DEFAULT_SSH_PORT)
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ConfigError(f"{source}: host '{name}' has invalid port {port!r}")
        if not 0 < port < 65536:
            raise ConfigError(f"{source}: host '{name}' port {port} out of range")

        hosts.append(HostSpec(
            name=name,
            address=address,
            username=str(entry.get("user") or ""),
            password=str(entry.get("password") or ""),
            port=port,
        ))
    return hosts
