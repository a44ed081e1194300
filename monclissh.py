#!/usr/bin/env python3
"""
SSH fleet monitor: CPU, disk and memory use of every configured host,
refreshed in the terminal.

Usage:
    python monclissh.py                          # TUI, hosts from configs/hosts.yaml
    python monclissh.py -t 500ms                 # Poll every 500 ms
    python monclissh.py --debug                  # Also show hosts that never answered
    python monclissh.py --config my_hosts.yaml   # Another hosts file
    python monclissh.py --web                    # TUI plus JSON/WebSocket view
    python monclissh.py --web-only               # Web view only, no TUI

Every poll cycle opens one SSH session per host, runs three probe
commands on it and closes it again.
"""

import argparse
import asyncio
import re
import sys
import time

from collector import FleetCollector
from constants import CONNECT_TIMEOUT, DEFAULT_CONFIG_PATH, POLL_INTERVAL, TICK_INTERVAL
from hosts_config import ConfigError, load_hosts
from polling import PollingStateMachine
from ssh_executor import SSHExecutor

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def parse_duration(text: str) -> float:
    """'2', '2s', '1.5s', '500ms', '1m' -> seconds. Must be positive."""
    match = _DURATION_RE.match(text)
    if not match:
        raise argparse.ArgumentTypeError(f"invalid duration '{text}' (e.g. 2s, 500ms)")
    seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise argparse.ArgumentTypeError("duration must be positive")
    return seconds


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer '{text}'")
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Terminal dashboard of CPU, disk and memory use across SSH hosts")
    parser.add_argument("-t", "--interval", type=parse_duration, default=POLL_INTERVAL,
                        help="update interval for server metrics (e.g. 1s, 500ms; default 2s)")
    parser.add_argument("--debug", action="store_true",
                        help="show hosts with errors even if never loaded successfully")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH,
                        help=f"hosts file (default {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--connect-timeout", type=parse_duration, default=CONNECT_TIMEOUT,
                        help="SSH connect timeout (default 5s)")
    parser.add_argument("--command-timeout", type=parse_duration, default=None,
                        help="per-probe timeout (default: none)")
    parser.add_argument("--max-sessions", type=_positive_int, default=None,
                        help="limit simultaneous SSH sessions (default: one per host)")
    parser.add_argument("--clear-stale", action="store_true",
                        help="hide last known values while a host is failing")
    parser.add_argument("--web", action="store_true",
                        help="serve the JSON/WebSocket view alongside the TUI")
    parser.add_argument("--web-only", action="store_true",
                        help="web view only, no TUI")
    parser.add_argument("--web-host", default="127.0.0.1",
                        help="web view bind address (default 127.0.0.1)")
    parser.add_argument("--web-port", type=int, default=8000,
                        help="web view port (default 8000)")
    return parser


def main(argv=None) -> int:
    """Entry point: load hosts, then run the TUI or the headless web view."""
    args = build_parser().parse_args(argv)

    try:
        hosts = load_hosts(args.config)
    except ConfigError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    executor = SSHExecutor(connect_timeout=args.connect_timeout,
                           command_timeout=args.command_timeout)
    collector = FleetCollector(executor, max_workers=args.max_sessions)

    if args.web_only:
        _run_web_only(args, hosts, collector)
        return 0

    from tui_app import MonitorApp

    app = MonitorApp(
        hosts,
        collector,
        poll_interval=args.interval,
        debug=args.debug,
        retain_stale=not args.clear_stale,
        web_port=args.web_port if args.web else None,
        web_host=args.web_host,
    )
    app.run()
    return 0


def _run_web_only(args, hosts, collector: FleetCollector):
    """Drive the state machine from a plain asyncio loop with uvicorn as renderer."""
    import uvicorn
    import web_server

    async def serve():
        loop = asyncio.get_running_loop()

        def dispatch(cycle_hosts):
            collector.collect_in_background(cycle_hosts, on_done)

        def on_done(results):
            try:
                loop.call_soon_threadsafe(deliver, results)
            except RuntimeError:
                # Loop already closed: the cycle outlived quit and is dropped
                pass

        def deliver(results):
            # Runs on the loop, so the merge stays single-threaded
            if machine.on_cycle_complete(results, time.monotonic()):
                asyncio.ensure_future(web_server.broadcast_state())

        machine = PollingStateMachine(
            hosts, dispatch,
            poll_interval=args.interval,
            debug=args.debug,
            retain_stale=not args.clear_stale,
        )
        web_server.set_machine(machine)

        server = uvicorn.Server(uvicorn.Config(
            web_server.app, host=args.web_host, port=args.web_port, log_level="info"))

        async def ticker():
            while True:
                machine.on_tick(time.monotonic())
                await asyncio.sleep(TICK_INTERVAL)

        tick_task = asyncio.ensure_future(ticker())
        try:
            await server.serve()
        finally:
            machine.stop()
            tick_task.cancel()

    print("\n" + "=" * 50)
    print("  monclissh - Web Only Mode")
    print("=" * 50)
    print(f"  Hosts:     {len(hosts)} (every {args.interval:g}s)")
    print(f"  API:       http://{args.web_host}:{args.web_port}/api/state")
    print(f"  WebSocket: ws://{args.web_host}:{args.web_port}/ws")
    print()

    asyncio.run(serve())


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nGoodbye!")
