"""FastAPI web view of the polling state, with WebSocket push.

Embedded in the monitor process and served on the same asyncio loop that
drives the state machine, so reads never race a merge. Broadcasts the
snapshot to WebSocket clients after every merged cycle.
"""

import time
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from host_state import HostDisplayState


# --- Response Models ---

class MetricsModel(BaseModel):
    cpu: float
    disk: float
    mem: float


class HostModel(BaseModel):
    name: str
    status: str
    ever_resolved: bool
    values: Optional[MetricsModel] = None
    stale: bool = False
    error: Optional[str] = None


class CycleModel(BaseModel):
    collecting: bool
    generation: int
    poll_interval: float
    seconds_since_last: Optional[float] = None


class StateModel(BaseModel):
    timestamp: float
    debug: bool
    cycle: CycleModel
    hosts: list[HostModel]


# --- WebSocket Manager ---

class ConnectionManager:
    """Manages WebSocket connections and broadcasts."""

    def __init__(self):
        self.active_connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        """Send a JSON text frame to all connected clients, dropping dead ones."""
        disconnected = []
        for conn in list(self.active_connections):
            try:
                await conn.send_text(message)
            except (WebSocketDisconnect, RuntimeError, OSError):
                disconnected.append(conn)
        for conn in disconnected:
            self.disconnect(conn)


# --- FastAPI App ---

app = FastAPI(title="monclissh")
manager = ConnectionManager()

# Reference to the state machine (set at startup)
_machine = None


def set_machine(machine):
    """Inject the PollingStateMachine whose state is served."""
    global _machine
    _machine = machine


def _require_machine():
    if _machine is None:
        raise HTTPException(status_code=503, detail="Monitor not initialized")
    return _machine


# --- State Builder ---

def host_model(state: HostDisplayState, retain_stale: bool) -> HostModel:
    values = state.shown_values(retain_stale)
    return HostModel(
        name=state.name,
        status=state.status.value,
        ever_resolved=state.ever_resolved,
        values=MetricsModel(cpu=values.cpu, disk=values.disk, mem=values.mem) if values else None,
        stale=values is not None and state.last_error is not None,
        error=state.last_error,
    )


def build_state(machine) -> StateModel:
    cycle = machine.cycle
    since = None
    if cycle.last_completed_at is not None:
        since = max(0.0, time.monotonic() - cycle.last_completed_at)
    return StateModel(
        timestamp=time.time(),
        debug=machine.debug_mode,
        cycle=CycleModel(
            collecting=cycle.in_flight,
            generation=cycle.generation,
            poll_interval=cycle.poll_interval,
            seconds_since_last=since,
        ),
        hosts=[host_model(s, machine.retain_stale) for s in machine.snapshot()],
    )


# --- REST API ---

@app.get("/")
async def index():
    return {
        "message": "monclissh API",
        "docs": "/docs",
        "endpoints": {
            "state": "GET /api/state",
            "host": "GET /api/hosts/{name}",
            "websocket": "ws://<host>/ws",
        },
    }


@app.get("/api/state", response_model=StateModel)
async def get_state():
    """Visible hosts in configuration order plus cycle info."""
    return build_state(_require_machine())


@app.get("/api/hosts/{name}", response_model=HostModel)
async def get_host(name: str):
    """One host by name, whether or not it is currently displayed."""
    machine = _require_machine()
    try:
        state = machine.state(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown host '{name}'")
    return host_model(state, machine.retain_stale)


# --- WebSocket Endpoint ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        if _machine is not None:
            await websocket.send_text(build_state(_machine).model_dump_json())
        # Incoming frames are ignored; this only detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)


async def broadcast_state():
    """Called after each merged cycle."""
    if _machine is None or not manager.active_connections:
        return
    await manager.broadcast(build_state(_machine).model_dump_json())
