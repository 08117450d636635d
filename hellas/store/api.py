"""
Hellas Launcher API Routers

FastAPI routers over the Launcher facade.
All endpoints return the same JSON format as CLI --json output.

Usage:
    from hellas.store.api import create_app

    app = create_app()
    uvicorn.run(app, host="127.0.0.1", port=8765)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .errors import (
    AuthError,
    CancelledError,
    ConcurrencyError,
    ConfigurationError,
    LauncherError,
    ReadinessError,
)
from .models import MemorySettings, OperationKind

logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================

class OperationAccepted(BaseModel):
    """Response for a background install / update / reinstall."""
    accepted: bool = True
    kind: OperationKind


class CancelResponse(BaseModel):
    """Response for cancel endpoints."""
    cancelled: bool


class PollRequest(BaseModel):
    """Request for device login polling."""
    device_code: str


class PreferencesUpdate(BaseModel):
    """Partial preferences update; unset fields are left alone."""
    terms_accepted: Optional[bool] = None
    animation_enabled: Optional[bool] = None
    install_dir: Optional[str] = None


# =============================================================================
# Launcher Dependency
# =============================================================================

_launcher_instance = None


def get_launcher():
    """Get or create the process-wide Launcher."""
    global _launcher_instance
    if _launcher_instance is None:
        from . import Launcher

        _launcher_instance = Launcher()
        _launcher_instance.start()
    return _launcher_instance


def reset_launcher():
    """Close and forget the Launcher singleton."""
    global _launcher_instance
    if _launcher_instance is not None:
        _launcher_instance.close()
    _launcher_instance = None


def error_status(error: LauncherError) -> int:
    """HTTP status for a launcher error."""
    if isinstance(error, ConcurrencyError):
        return 409
    if isinstance(error, ConfigurationError):
        return 400
    if isinstance(error, ReadinessError):
        return 412
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, CancelledError):
        return 499
    return 502


def _log_background_failure(kind: str):
    def callback(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("[API] Background %s failed: %s", kind, error)
    return callback


# =============================================================================
# Launcher Router
# =============================================================================

launcher_router = APIRouter(tags=["launcher"])


@launcher_router.get("/state", response_model=Dict[str, Any])
def get_state(launcher=Depends(get_launcher)):
    """Everything the UI needs on start-up."""
    return launcher.get_state().model_dump(mode="json")


@launcher_router.get("/installation", response_model=Dict[str, Any])
def get_installation(launcher=Depends(get_launcher)):
    """Filesystem view of the install directory."""
    return launcher.get_installation().model_dump(mode="json")


@launcher_router.get("/readiness", response_model=Dict[str, Any])
def get_readiness(launcher=Depends(get_launcher)):
    """Pre-launch verification report (never fails, check 'ready')."""
    return launcher.check_readiness().model_dump(mode="json")


@launcher_router.get("/logs", response_class=PlainTextResponse)
def get_logs(launcher=Depends(get_launcher)):
    """Contents of launcher.log."""
    return launcher.read_log()


# =============================================================================
# Operations Router
# =============================================================================

operations_router = APIRouter(tags=["operations"])


def _start(launcher, kind: OperationKind) -> JSONResponse:
    future = launcher.submit(kind)
    future.add_done_callback(_log_background_failure(kind.value))
    body = OperationAccepted(kind=kind).model_dump(mode="json")
    return JSONResponse(status_code=202, content=body)


@operations_router.post("/install", status_code=202)
def start_install(launcher=Depends(get_launcher)):
    """Start an install in the background."""
    return _start(launcher, OperationKind.INSTALL)


@operations_router.post("/update", status_code=202)
def start_update(launcher=Depends(get_launcher)):
    """Start an update in the background."""
    return _start(launcher, OperationKind.UPDATE)


@operations_router.post("/update/cancel", response_model=CancelResponse)
def cancel_update(launcher=Depends(get_launcher)):
    """Cancel the running install / update / reinstall."""
    return CancelResponse(cancelled=launcher.cancel_update())


@operations_router.post("/reinstall", status_code=202)
def start_reinstall(launcher=Depends(get_launcher)):
    """Delete the install directory and install from scratch in the background."""
    return _start(launcher, OperationKind.REINSTALL)


@operations_router.get("/operation", response_model=Dict[str, Any])
def get_operation(launcher=Depends(get_launcher)):
    """Active (or last) operation."""
    return launcher.current_operation().model_dump(mode="json")


@operations_router.get("/events", response_model=Dict[str, Any])
def get_events(
    since: int = Query(0, ge=0),
    topic: Optional[str] = Query(None),
    launcher=Depends(get_launcher),
):
    """Events newer than 'since'; poll with the returned lastSeq."""
    events: List[Dict[str, Any]] = [
        e.model_dump(mode="json") for e in launcher.events.since(since, topic)
    ]
    return {"events": events, "lastSeq": launcher.events.last_seq}


# =============================================================================
# Launch Router
# =============================================================================

launch_router = APIRouter(tags=["launch"])


@launch_router.post("/launch", status_code=202)
def start_launch(launcher=Depends(get_launcher)):
    """Launch the game; progress arrives on the launch-status topic."""
    handle = launcher.launch_game()
    handle.future.add_done_callback(_log_background_failure("launch"))
    return JSONResponse(status_code=202, content={"accepted": True})


@launch_router.post("/launch/cancel", response_model=CancelResponse)
def cancel_launch(launcher=Depends(get_launcher)):
    """Kill the running game launch."""
    return CancelResponse(cancelled=launcher.cancel_launch())


@launch_router.get("/memory", response_model=Dict[str, Any])
def get_memory(launcher=Depends(get_launcher)):
    """Memory settings and the allocation they produce."""
    return launcher.get_memory_state().model_dump(mode="json", by_alias=True)


@launch_router.put("/memory", response_model=Dict[str, Any])
def put_memory(settings: MemorySettings, launcher=Depends(get_launcher)):
    """Save memory settings."""
    return launcher.set_memory_settings(settings).model_dump(mode="json", by_alias=True)


@launch_router.put("/preferences", response_model=Dict[str, Any])
def put_preferences(request: PreferencesUpdate, launcher=Depends(get_launcher)):
    """Save terms / animation / install directory preferences."""
    if request.install_dir is not None:
        launcher.set_install_dir(Path(request.install_dir))
    if request.terms_accepted is not None:
        launcher.set_terms_accepted(request.terms_accepted)
    if request.animation_enabled is not None:
        launcher.set_animation_enabled(request.animation_enabled)
    return launcher.get_state().model_dump(mode="json")


# =============================================================================
# Account Router
# =============================================================================

account_router = APIRouter(tags=["account"])


@account_router.post("/login/device", response_model=Dict[str, Any])
def start_device_login(launcher=Depends(get_launcher)):
    """Start a Microsoft device-code login."""
    return launcher.start_device_login().model_dump(mode="json")


@account_router.post("/login/poll", response_model=Dict[str, Any])
def poll_device_login(request: PollRequest, launcher=Depends(get_launcher)):
    """Poll the device-code login once."""
    return launcher.poll_device_login(request.device_code).model_dump(mode="json")


@account_router.post("/logout", response_model=Dict[str, Any])
def logout(launcher=Depends(get_launcher)):
    """Forget the stored account."""
    return launcher.logout().model_dump(mode="json")


# =============================================================================
# App
# =============================================================================

def create_app(launcher=None) -> FastAPI:
    """
    Build the API app.

    Args:
        launcher: Launcher to serve (defaults to the process-wide one)
    """
    app = FastAPI(title="Hellas Launcher API", version="1.0.0")

    @app.exception_handler(LauncherError)
    async def launcher_error_handler(request: Request, exc: LauncherError):
        status = error_status(exc)
        logger.warning("[API] %s %s -> %d: %s", request.method, request.url.path, status, exc)
        content: Dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
        if isinstance(exc, ReadinessError):
            content["report"] = exc.report.model_dump(mode="json")
        return JSONResponse(status_code=status, content=content)

    for router in (launcher_router, operations_router, launch_router, account_router):
        app.include_router(router, prefix="/api")

    if launcher is not None:
        app.dependency_overrides[get_launcher] = lambda: launcher

    return app
