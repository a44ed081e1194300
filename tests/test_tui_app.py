import asyncio
import threading

from textual.widgets import RichLog, Static

from collector import FleetCollector
from host_state import HostDisplayState, HostStatus, Metrics, PollResult
from tui_app import HostPanel, MonitorApp, color_for, render_bar, render_host


class StubCollector(FleetCollector):
    """Returns canned results; optionally holds each cycle until released."""

    def __init__(self, results, gate=None):
        super().__init__(executor=None)
        self.results = results
        self.gate = gate
        self.calls = 0

    def collect(self, hosts):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return self.results


def test_color_thresholds():
    assert color_for(50.0) == "green"
    assert color_for(50.1) == "yellow"
    assert color_for(80.0) == "yellow"
    assert color_for(80.1) == "red"


def test_render_bar_clamps():
    assert render_bar(150.0, width=10).count("█") == 10
    assert render_bar(-5.0, width=10).count("░") == 10
    assert render_bar(50.0, width=10).count("█") == 5


def test_render_host_states():
    state = HostDisplayState(name="web-1")
    assert "Connecting..." in render_host(state)

    state.apply(PollResult.success(Metrics(cpu=12.0, disk=50.0, mem=90.0)), 1.0)
    text = render_host(state)
    assert "web-1" in text
    assert " 12.0%" in text and " 90.0%" in text

    state.apply(PollResult.failure("connection refused"), 2.0)
    assert "connection refused" in render_host(state, retain_stale=True)
    assert "[dim]" in render_host(state, retain_stale=True)
    assert "CPU:" not in render_host(state, retain_stale=False)


def test_app_polls_and_renders(hosts):
    collector = StubCollector({
        "A": PollResult.success(Metrics(cpu=23.5, disk=40.0, mem=55.2)),
        "B": PollResult.failure("timeout"),
    })

    async def run():
        app = MonitorApp(hosts, collector, poll_interval=60.0)
        async with app.run_test() as pilot:
            for _ in range(100):
                await pilot.pause(0.05)
                if app.machine.state("A").status is not HostStatus.UNRESOLVED:
                    break
            await pilot.pause(0.2)
            panels = {p.host_name: p for p in app.query(HostPanel)}
            # Widgets report display=False once the app has closed
            shown = (panels["A"].display, panels["B"].display)
            return app, panels, shown

    app, panels, shown = asyncio.run(run())

    assert collector.calls == 1
    assert app.machine.state("A").status is HostStatus.VALID
    assert app.machine.state("B").status is HostStatus.INVALID
    assert "23.5%" in panels["A"].markup_text
    assert shown == (True, False)


def test_connecting_indicator_until_first_cycle(hosts):
    release = threading.Event()
    collector = StubCollector({
        "A": PollResult.success(Metrics(cpu=1.0, disk=2.0, mem=3.0)),
        "B": PollResult.failure("timeout"),
    }, gate=release)

    async def run():
        app = MonitorApp(hosts, collector, poll_interval=60.0)
        async with app.run_test() as pilot:
            await pilot.pause(0.3)
            connecting = app.query_one("#connecting", Static)
            before = (connecting.display, [p.display for p in app.query(HostPanel)])

            release.set()
            for _ in range(100):
                await pilot.pause(0.05)
                if app.machine.cycle.last_completed_at is not None:
                    break
            await pilot.pause(0.2)
            after = (connecting.display, [p.display for p in app.query(HostPanel)])
            return before, after

    before, after = asyncio.run(run())

    assert before == (True, [False, False])
    assert after == (False, [True, False])


def test_log_panel_only_in_debug_mode(hosts):
    async def count_logs(debug):
        collector = StubCollector({h.name: PollResult.failure("down") for h in hosts})
        app = MonitorApp(hosts, collector, poll_interval=60.0, debug=debug)
        async with app.run_test() as pilot:
            await pilot.pause(0.2)
            return len(app.query(RichLog))

    assert asyncio.run(count_logs(debug=False)) == 0
    assert asyncio.run(count_logs(debug=True)) == 1


def test_app_with_no_hosts_shows_message():
    async def run():
        app = MonitorApp([], StubCollector({}))
        async with app.run_test() as pilot:
            await pilot.pause(0.1)
            return len(app.query("#empty"))

    assert asyncio.run(run()) == 1
