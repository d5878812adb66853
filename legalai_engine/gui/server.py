"""
FastAPI application for the legalai training relay.

Provides REST endpoints for training control and settings, and the
``/ws/events`` websocket that relays producer events to channel clients
and accepts ``training:*`` commands from them.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from legalai_engine.core.constants import (
    COMMAND_PREFIX,
    DEFAULT_EPOCH_DELAY,
    DEFAULT_PORT,
    EVENT_AUTH_SUCCESS,
    EVENT_ERROR,
)
from legalai_engine.core.errors import ConfigurationError, TrainingInProgressError
from legalai_engine.core.events import decode_frame, encode_frame

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------

class SettingsUpdate(BaseModel):
    """Partial settings update."""
    data: Dict[str, Any]


class TrainStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config: Dict[str, Any]
    model_id: Optional[str] = Field(default=None, alias="modelId")
    data: Optional[List[Any]] = None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    token: str | None = None,
    port: int = DEFAULT_PORT,
    epoch_delay: float = DEFAULT_EPOCH_DELAY,
    run_log_dir: Optional[Path] = None,
):
    """Build and return the ASGI application.

    Args:
        token:       Bearer token for API and websocket auth.  If ``None``,
                     a random token is generated.
        port:        Server port (used for Host header validation).
        epoch_delay: Seconds of simulated work per epoch.
        run_log_dir: Directory for the JSONL run log; ``None`` disables it.
    """
    from legalai_engine.gui.event_hub import EventHub
    from legalai_engine.gui.security import (
        HostValidationMiddleware,
        TokenAuthMiddleware,
        TokenAuthWSMiddleware,
        generate_token,
    )
    from legalai_engine.gui.training_manager import TrainingManager

    if token is None:
        token = generate_token()

    hub = EventHub()
    tm = TrainingManager(hub, epoch_delay=epoch_delay, run_log_dir=run_log_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await tm.shutdown()

    app = FastAPI(title="legalai", docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.auth_token = token
    app.state.hub = hub
    app.state.training_manager = tm

    # -- Security middleware (order matters: outermost runs first) ----------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            f"http://127.0.0.1:{port}",
            f"http://localhost:{port}",
        ],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TokenAuthMiddleware, token=token)
    app.add_middleware(HostValidationMiddleware, port=port)

    def _command_response(result: Dict[str, Any]) -> JSONResponse:
        return JSONResponse(result, status_code=409 if "error" in result else 200)

    def _start(config: Any, model_id: Any = None, data: Any = None) -> Dict[str, Any]:
        if not isinstance(config, dict):
            raise ConfigurationError("Training config must be a mapping")
        return tm.start_training(
            config, model_id=str(model_id) if model_id is not None else None, data=data,
        )

    # ======================================================================
    # Health / status
    # ======================================================================

    @app.get("/api/health")
    async def health():
        return JSONResponse({
            "ok": True,
            "training": tm.is_training,
            "clients": hub.subscriber_count,
        })

    @app.get("/api/training/status")
    async def training_status():
        return JSONResponse(tm.status())

    # ======================================================================
    # Training control
    # ======================================================================

    @app.post("/api/training/start")
    async def training_start(body: TrainStartRequest):
        try:
            result = _start(body.config, body.model_id, body.data)
        except TrainingInProgressError as exc:
            return JSONResponse({"error": str(exc)}, status_code=409)
        except ConfigurationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        return JSONResponse(result)

    @app.post("/api/training/stop")
    async def training_stop():
        return _command_response(tm.stop_training())

    @app.post("/api/training/pause")
    async def training_pause():
        return _command_response(tm.pause_training())

    @app.post("/api/training/resume")
    async def training_resume():
        return _command_response(tm.resume_training())

    # ======================================================================
    # Settings
    # ======================================================================

    @app.get("/api/settings")
    async def get_settings():
        from legalai_engine.settings import _default_settings, load_settings
        return JSONResponse(load_settings() or _default_settings())

    @app.post("/api/settings")
    async def post_settings(body: SettingsUpdate):
        from legalai_engine.settings import update_settings
        try:
            data = update_settings(body.data)
        except KeyError as exc:
            return JSONResponse({"error": exc.args[0]}, status_code=400)
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        return JSONResponse({"ok": True, "settings": data})

    # ======================================================================
    # WebSocket -- event channel
    # ======================================================================

    def _handle_command(event: str, data: Any) -> Optional[Dict[str, Any]]:
        """Run one client command; returns an error payload or ``None``."""
        payload = data if isinstance(data, dict) else {}
        action = event[len(COMMAND_PREFIX):] if event.startswith(COMMAND_PREFIX) else None
        try:
            if action == "start":
                _start(payload.get("config"), payload.get("modelId"), payload.get("data"))
                return None
            if action == "stop":
                result = tm.stop_training()
            elif action == "pause":
                result = tm.pause_training()
            elif action == "resume":
                result = tm.resume_training()
            else:
                return {"error": f"Unknown event: {event}"}
        except ConfigurationError as exc:
            return {"error": str(exc), "event": event}
        if "error" in result:
            return {"error": result["error"], "event": event}
        return None

    @app.websocket("/ws/events")
    async def ws_events(websocket: WebSocket):
        await websocket.accept()
        queue = hub.subscribe()

        def _reply(event: str, data: Any) -> None:
            try:
                queue.put_nowait(encode_frame(event, data))
            except asyncio.QueueFull:
                logger.debug("[WS] Queue full, dropping %s reply", event)

        _reply(EVENT_AUTH_SUCCESS, {"userId": "local"})

        async def _pump() -> None:
            try:
                while True:
                    await websocket.send_text(await queue.get())
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("[WS] Send loop ended: %s", exc)

        sender = asyncio.create_task(_pump())
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    event, data = decode_frame(text)
                except ValueError as exc:
                    _reply(EVENT_ERROR, {"error": f"Malformed frame: {exc}"})
                    continue
                error = _handle_command(event, data)
                if error is not None:
                    logger.info("[WS] Command %s rejected: %s", event, error["error"])
                    _reply(EVENT_ERROR, error)
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            hub.unsubscribe(queue)

    # WebSocket auth runs as raw ASGI middleware -- must wrap AFTER all
    # routes are registered so @app.get / @app.websocket decorators work.
    return TokenAuthWSMiddleware(app, token=token)
