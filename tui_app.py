"""Textual TUI for the SSH fleet monitor."""

import time
from typing import Optional, Sequence

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.message import Message
from textual.widgets import Footer, Header, RichLog, Static

import web_server
from collector import FleetCollector
from constants import (
    BAR_EMPTY,
    BAR_FILL,
    BAR_WIDTH,
    COLOR_RED_ABOVE,
    COLOR_YELLOW_ABOVE,
    POLL_INTERVAL,
    SPINNER_FRAMES,
    TICK_INTERVAL,
)
from host_state import HostDisplayState, HostSpec, HostStatus
from polling import PollingStateMachine


# ---- Rendering helpers ----

def color_for(pct: float) -> str:
    if pct > COLOR_RED_ABOVE:
        return "red"
    if pct > COLOR_YELLOW_ABOVE:
        return "yellow"
    return "green"


def render_bar(pct: float, width: int = BAR_WIDTH) -> str:
    filled = round(max(0.0, min(100.0, pct)) / 100.0 * width)
    color = color_for(pct)
    return (f"[{color}]{BAR_FILL * filled}[/{color}]"
            f"[bright_black]{BAR_EMPTY * (width - filled)}[/bright_black]")


def render_percent(pct: float) -> str:
    color = color_for(pct)
    return f"[{color}]{pct:5.1f}%[/{color}]"


def render_host(state: HostDisplayState, frame: int = 0, retain_stale: bool = True) -> str:
    """Rich markup for one host box."""
    lines = [f"[bold]{escape(f'[ {state.name} ]')}[/bold]"]

    if state.status is HostStatus.UNRESOLVED:
        spin = SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]
        lines.append(f"[magenta]{spin}[/magenta] Connecting...")
        return "\n".join(lines)

    if state.status is HostStatus.INVALID:
        lines.append(f"[red]{escape(state.last_error or 'error')}[/red]")

    values = state.shown_values(retain_stale)
    if values is not None:
        stale = state.status is HostStatus.INVALID
        for label, val in (("CPU:", values.cpu), ("Disk:", values.disk), ("Memory:", values.mem)):
            line = f"{label:<8}{render_bar(val)} {render_percent(val)}"
            lines.append(f"[dim]{line}[/dim]" if stale else line)
    return "\n".join(lines)


class HostPanel(Static):
    """One host box. Only re-renders when its markup changes."""

    def __init__(self, host_name: str, **kwargs):
        super().__init__("", **kwargs)
        self.host_name = host_name
        self.markup_text = ""

    def show_state(self, state: HostDisplayState, frame: int, retain_stale: bool):
        text = render_host(state, frame, retain_stale)
        if text != self.markup_text:
            self.markup_text = text
            self.update(text)


class MonitorApp(App):
    """Textual TUI showing CPU / disk / memory for every configured host."""

    TITLE = "monclissh"

    CSS = """
    #hosts {
        height: 1fr;
    }
    .host {
        height: auto;
        padding: 0 1;
        margin-bottom: 1;
    }
    #empty, #connecting {
        padding: 1;
    }
    #log {
        height: 8;
        border: solid $primary;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("escape", "quit", "Quit", show=False),
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    # ---- Custom Messages ----

    class CycleCompleteMsg(Message):
        """A collection cycle finished; carries the full per-host result map."""
        def __init__(self, results):
            super().__init__()
            self.results = results

    class LogMsg(Message):
        """Log line for the RichLog panel, or a toast when there is none."""
        def __init__(self, text: str, style: str = ""):
            super().__init__()
            self.text = text
            self.style = style

    # ---- Init ----

    def __init__(self, hosts: Sequence[HostSpec], collector: FleetCollector,
                 poll_interval: float = POLL_INTERVAL, debug: bool = False,
                 retain_stale: bool = True, web_port: Optional[int] = None,
                 web_host: str = "127.0.0.1"):
        super().__init__()
        self.collector = collector
        self.machine = PollingStateMachine(
            hosts,
            dispatch=self.run_collection,
            poll_interval=poll_interval,
            debug=debug,
            retain_stale=retain_stale,
            log=self.log_message,
        )
        self.web_port = web_port
        self.web_host = web_host
        self._web_server = None
        self._spin_frame = 0
        self._panels: dict[str, HostPanel] = {}

    # ---- Layout ----

    def compose(self) -> ComposeResult:
        yield Header()
        with VerticalScroll(id="hosts"):
            if not self.machine.hosts:
                yield Static("No hosts configured.", id="empty")
            else:
                yield Static("", id="connecting")
            for idx, host in enumerate(self.machine.hosts):
                panel = HostPanel(host.name, id=f"host-{idx}", classes="host")
                self._panels[host.name] = panel
                yield panel
        if self.machine.debug_mode:
            yield RichLog(id="log", wrap=True, markup=True)
        yield Footer()

    def on_mount(self) -> None:
        """Start the UI timer; the first tick dispatches the first cycle."""
        if self.web_port is not None:
            web_server.set_machine(self.machine)
            self.serve_web()
        self.set_interval(TICK_INTERVAL, self._tick)
        self._tick()

    def _tick(self) -> None:
        self._spin_frame += 1
        self.machine.on_tick(time.monotonic())
        self.refresh_hosts()

    # ---- Collection Worker ----

    def run_collection(self, hosts: tuple) -> None:
        """Run one fan-out cycle off the UI loop and post the result back.

        Not a textual thread worker: those are joined on exit, which would
        tie quit to a wedged host.
        """
        self.collector.collect_in_background(hosts, self._post_cycle)

    def _post_cycle(self, results) -> None:
        try:
            self.post_message(self.CycleCompleteMsg(results))
        except RuntimeError:
            # App loop already gone: the cycle outlived quit and is dropped
            pass

    # ---- Web Worker ----

    @work(exclusive=True, group="web")
    async def serve_web(self) -> None:
        """Serve the JSON/WebSocket view on this app's loop."""
        import uvicorn

        config = uvicorn.Config(
            web_server.app, host=self.web_host, port=self.web_port,
            log_config=None, log_level="error")
        self._web_server = uvicorn.Server(config)
        self.log_message(f"Web view on http://{self.web_host}:{self.web_port}")
        await self._web_server.serve()

    # ---- Message Handlers ----

    def on_monitor_app_cycle_complete_msg(self, msg: CycleCompleteMsg) -> None:
        """Merge a finished cycle on the UI loop."""
        if self.machine.on_cycle_complete(msg.results, time.monotonic()):
            self.refresh_hosts()
            if self.web_port is not None:
                self.run_worker(web_server.broadcast_state(), group="web_broadcast")

    def on_monitor_app_log_msg(self, msg: LogMsg) -> None:
        if not self.machine.debug_mode:
            # No log panel: transitions surface as toasts
            severity = "error" if "red" in msg.style else "information"
            self.notify(escape(msg.text), severity=severity)
            return
        log = self.query_one("#log", RichLog)
        if msg.style:
            log.write(f"[{msg.style}]{escape(msg.text)}[/{msg.style}]")
        else:
            log.write(escape(msg.text))

    # ---- UI Updates ----

    def refresh_hosts(self) -> None:
        """Redraw host panels from the machine's snapshot."""
        visible = {s.name: s for s in self.machine.snapshot()}
        for name, panel in self._panels.items():
            state = visible.get(name)
            panel.display = state is not None
            if state is not None:
                panel.show_state(state, self._spin_frame, self.machine.retain_stale)

        cycle = self.machine.cycle
        if self._panels:
            connecting = self.query_one("#connecting", Static)
            connecting.display = cycle.last_completed_at is None and not visible
            if connecting.display:
                spin = SPINNER_FRAMES[self._spin_frame % len(SPINNER_FRAMES)]
                connecting.update(f"[magenta]{spin}[/magenta] Connecting to "
                                  f"{len(self._panels)} host(s)...")
        if cycle.in_flight:
            status = f"polling (cycle {cycle.generation})"
        elif cycle.last_completed_at is not None:
            age = time.monotonic() - cycle.last_completed_at
            status = f"updated {age:.0f}s ago, every {cycle.poll_interval:g}s"
        else:
            status = "starting"
        if self.machine.debug_mode:
            status += " - debug"
        self.sub_title = status

    def log_message(self, text: str, style: str = "", _debug: bool = False):
        """Convenience: post a LogMsg. Debug lines only show in debug mode."""
        if _debug and not self.machine.debug_mode:
            return
        self.post_message(self.LogMsg(text, style))

    def on_unmount(self) -> None:
        """Stop scheduling; an in-flight cycle is left to finish and be dropped."""
        self.machine.stop()
        if self._web_server is not None:
            self._web_server.should_exit = True
