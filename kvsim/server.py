# SPDX-License-Identifier: Apache-2.0
"""
HTTP API server for kvsim.

This module provides a FastAPI server that drives paged KV cache
simulations. The engine is pure; the server only keeps the latest snapshot
of each session and applies ticks on request, so any UI (or a timer on the
client side) can animate a run.

Usage:
    kvsim serve --port 8000

    # With API key
    kvsim serve --api-key secret

The server provides:
    - GET /health - Health check
    - GET /v1/simulations - List session ids
    - POST /v1/simulations - Create a simulation
    - GET /v1/simulations/{id} - Current snapshot
    - POST /v1/simulations/{id}/step - Advance ticks
    - POST /v1/simulations/{id}/reset - Reset (optionally with new config)
    - GET /v1/simulations/{id}/blocks - Free blocks and ownership
    - DELETE /v1/simulations/{id} - Drop a simulation
"""

import argparse
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request as FastAPIRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kvsim._version import __version__

from .api.models import (
    BlocksResponse,
    ResetRequest,
    SessionListResponse,
    SimulationConfigRequest,
    SimulationSnapshot,
    StepRequest,
)
from .config import SimulationConfig
from .exceptions import InvalidSimulationConfigError, SessionNotFoundError
from .logging_config import TRACE
from .session_pool import SessionPool
from .settings import SimulationSettings

logger = logging.getLogger(__name__)

# Security bearer for API key authentication
security = HTTPBearer(auto_error=False)


# =============================================================================
# Server State
# =============================================================================


@dataclass
class ServerState:
    """
    Encapsulated server state.

    This class holds all global state for the server, making it easier
    to manage and test.
    """

    sessions: SessionPool = field(default_factory=SessionPool)
    simulation_defaults: SimulationSettings = field(default_factory=SimulationSettings)
    api_key: Optional[str] = None
    global_settings: Optional[object] = None  # GlobalSettings


# Global server state instance
_server_state: ServerState = ServerState()


def get_server_state() -> ServerState:
    """Get the global server state."""
    return _server_state


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> bool:
    """Verify API key if configured."""
    # No auth required if no API key is configured
    if _server_state.api_key is None:
        return True

    if credentials is None:
        raise HTTPException(status_code=401, detail="API key required")

    # Constant-time comparison
    if not secrets.compare_digest(credentials.credentials, _server_state.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan for startup/shutdown events."""
    logger.info(f"kvsim API {__version__} ready")
    yield
    count = _server_state.sessions.session_count
    _server_state.sessions.clear()
    logger.info(f"Shutdown: dropped {count} session(s)")


app = FastAPI(
    title="kvsim API",
    description="Paged KV cache simulation API",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def debug_request_logging(request: FastAPIRequest, call_next):
    """Log full request body for POST requests when trace logging is enabled."""
    if logger.isEnabledFor(TRACE) and request.method == "POST":
        body = await request.body()
        logger.log(
            TRACE,
            "Incoming %s %s, body: %s",
            request.method, request.url.path,
            body.decode("utf-8", errors="replace"),
        )
    return await call_next(request)


# =============================================================================
# Helpers
# =============================================================================


def build_config(request: Optional[SimulationConfigRequest]) -> SimulationConfig:
    """
    Merge a config request over the server defaults.

    Raises:
        HTTPException: 400 if the policy is unknown or validation fails.
    """
    defaults = _server_state.simulation_defaults
    request = request or SimulationConfigRequest()

    prompts = request.prompts
    kwargs = {
        "block_count": (
            request.block_count
            if request.block_count is not None
            else defaults.block_count
        ),
        "block_capacity": (
            request.block_capacity
            if request.block_capacity is not None
            else defaults.block_capacity
        ),
        "recent_n_window": (
            request.recent_n_window
            if request.recent_n_window is not None
            else defaults.recent_n_window
        ),
    }
    if prompts is not None:
        kwargs["prompt_count"] = len(prompts)
        kwargs["prompt_texts"] = tuple(prompts)

    try:
        config = SimulationConfig(
            eviction_policy=request.eviction_policy or defaults.eviction_policy,
            **kwargs,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    errors = config.validate()
    if errors:
        raise HTTPException(status_code=400, detail=errors)
    return config


def _not_found(e: SessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "sessions": _server_state.sessions.get_status(),
    }


@app.get("/v1/simulations")
async def list_simulations(_: bool = Depends(verify_api_key)) -> SessionListResponse:
    """List live session ids."""
    return SessionListResponse(sessions=_server_state.sessions.get_session_ids())


@app.post("/v1/simulations", status_code=201)
async def create_simulation(
    request: Optional[SimulationConfigRequest] = None,
    _: bool = Depends(verify_api_key),
) -> SimulationSnapshot:
    """Create a simulation and return its initial snapshot."""
    config = build_config(request)
    try:
        entry = _server_state.sessions.create(config)
    except InvalidSimulationConfigError as e:
        raise HTTPException(status_code=400, detail=e.errors)
    return SimulationSnapshot.from_state(entry.session_id, entry.state)


@app.get("/v1/simulations/{session_id}")
async def get_simulation(
    session_id: str, _: bool = Depends(verify_api_key)
) -> SimulationSnapshot:
    """Return the current snapshot of a simulation."""
    try:
        entry = _server_state.sessions.get(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    return SimulationSnapshot.from_state(session_id, entry.state)


@app.post("/v1/simulations/{session_id}/step")
async def step_simulation(
    session_id: str,
    request: Optional[StepRequest] = None,
    _: bool = Depends(verify_api_key),
) -> SimulationSnapshot:
    """Advance a simulation by one or more ticks."""
    request = request or StepRequest()
    max_ticks = _server_state.simulation_defaults.max_ticks_per_request
    if not 1 <= request.ticks <= max_ticks:
        raise HTTPException(
            status_code=400,
            detail=f"ticks must be between 1 and {max_ticks}, got {request.ticks}",
        )

    try:
        state = _server_state.sessions.step(session_id, request.ticks, request.generated)
    except SessionNotFoundError as e:
        raise _not_found(e)
    return SimulationSnapshot.from_state(session_id, state)


@app.post("/v1/simulations/{session_id}/reset")
async def reset_simulation(
    session_id: str,
    request: Optional[ResetRequest] = None,
    _: bool = Depends(verify_api_key),
) -> SimulationSnapshot:
    """Reset a simulation, optionally replacing its config."""
    config = None
    if request is not None and request.config is not None:
        config = build_config(request.config)

    try:
        state = _server_state.sessions.reset(session_id, config)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except InvalidSimulationConfigError as e:
        raise HTTPException(status_code=400, detail=e.errors)
    return SimulationSnapshot.from_state(session_id, state)


@app.get("/v1/simulations/{session_id}/blocks")
async def get_blocks(
    session_id: str, _: bool = Depends(verify_api_key)
) -> BlocksResponse:
    """Return free blocks, full blocks and per-sequence ownership."""
    try:
        entry = _server_state.sessions.get(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    return BlocksResponse.from_state(session_id, entry.state)


@app.delete("/v1/simulations/{session_id}")
async def delete_simulation(session_id: str, _: bool = Depends(verify_api_key)):
    """Drop a simulation."""
    try:
        _server_state.sessions.delete(session_id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    return {"status": "ok", "session_id": session_id}


# =============================================================================
# Initialization
# =============================================================================


def init_server(
    api_key: Optional[str] = None,
    global_settings: Optional[object] = None,
    cors_origins: Optional[list] = None,
) -> ServerState:
    """
    Initialize server state.

    Args:
        api_key: API key for authentication (optional)
        global_settings: GlobalSettings instance (optional); supplies the
            session limit and simulation defaults
        cors_origins: Allowed CORS origins (optional)
    """
    _server_state.api_key = api_key
    _server_state.global_settings = global_settings

    if global_settings is not None:
        _server_state.sessions = SessionPool(
            max_sessions=global_settings.server.max_sessions
        )
        _server_state.simulation_defaults = global_settings.simulation
    else:
        _server_state.sessions = SessionPool()
        _server_state.simulation_defaults = SimulationSettings()

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    logger.info(
        f"Server initialized: max_sessions={_server_state.sessions.max_sessions}, "
        f"auth={'enabled' if api_key else 'disabled'}"
    )
    return _server_state


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the server (use kvsim CLI instead)."""
    parser = argparse.ArgumentParser(
        description="kvsim simulation API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m kvsim.server --port 8000

Note: Use the kvsim CLI for full feature support.
        """,
    )
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--api-key", type=str, default=None, help="API key for authentication")

    args = parser.parse_args()

    init_server(api_key=args.api_key)

    import uvicorn
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
