"""
Training lifecycle manager for the legalai server.

Owns the single :class:`ProgressProducer` of the process and the asyncio
task its run executes in.  Every producer event is published on the
:class:`EventHub` and, when a run log is configured, mirrored to it.

Start/stop/pause/resume are shared by the REST routes and the websocket
command handler, so both surfaces behave identically.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from legalai_engine.core.constants import DEFAULT_EPOCH_DELAY
from legalai_engine.core.errors import TrainingInProgressError
from legalai_engine.core.events import (
    ChannelEvent,
    TrainingFailedEvent,
    TrainingMetricsEvent,
    TrainingStoppedEvent,
)
from legalai_engine.core.producer import ProgressProducer
from legalai_engine.core.progress_writer import RunLogWriter
from legalai_engine.gui.event_hub import EventHub

logger = logging.getLogger(__name__)


def _new_model_id() -> str:
    return f"model_{uuid.uuid4().hex[:8]}"


class TrainingManager:
    """Runs at most one simulated training at a time for the server.

    Args:
        hub:         Destination of every producer event.
        epoch_delay: Seconds of simulated work per epoch.
        run_log_dir: Where the JSONL run log goes (``None`` disables it).
        rng:         Jitter source handed to the producer.
    """

    def __init__(
        self,
        hub: EventHub,
        epoch_delay: float = DEFAULT_EPOCH_DELAY,
        run_log_dir: Optional[Path] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._hub = hub
        self._run_log = RunLogWriter(run_log_dir) if run_log_dir is not None else None
        self._producer = ProgressProducer(
            self._on_event, delay=epoch_delay, rng=rng, recorder=self._run_log,
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def is_training(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> Dict[str, Any]:
        return self._producer.status()

    # ==================================================================
    # Commands
    # ==================================================================

    def start_training(
        self,
        config: Dict[str, Any],
        model_id: Optional[str] = None,
        data: Any = None,
    ) -> Dict[str, Any]:
        """Validate *config* and launch the run in the background.

        Raises :class:`TrainingInProgressError` when a run is active and
        :class:`ConfigurationError` for a rejected config; nothing is
        started in either case.
        """
        if self.is_training:
            raise TrainingInProgressError("Training already running")
        self._producer.initialize(config)
        model_id = model_id or _new_model_id()
        logger.info("[TrainingManager] Starting run %s", model_id)
        self._log_event(kind="start", modelId=model_id, config=config)
        self._task = asyncio.get_running_loop().create_task(
            self._run(data, model_id), name=f"training-{model_id}",
        )
        return {"ok": True, "modelId": model_id}

    def stop_training(self) -> Dict[str, Any]:
        """Stop the active run at its next epoch boundary and announce it."""
        if not self._producer.stop_training():
            return {"error": "No training running"}
        model_id = self._producer.status()["modelId"]
        self._hub.publish(TrainingStoppedEvent(model_id))
        self._log_event(kind="stop", modelId=model_id)
        return {"ok": True, "modelId": model_id}

    def pause_training(self) -> Dict[str, Any]:
        if not self._producer.pause_training():
            return {"error": "No running training to pause"}
        return {"ok": True}

    def resume_training(self) -> Dict[str, Any]:
        if not self._producer.resume_training():
            return {"error": "No paused training to resume"}
        return {"ok": True}

    async def shutdown(self) -> None:
        """Stop any active run and wait for its task to wind down."""
        task = self._task
        if task is not None and not task.done():
            self._producer.stop_training()
            try:
                await asyncio.wait_for(task, timeout=5)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                task.cancel()
        if self._run_log is not None:
            self._run_log.close()

    # ==================================================================
    # Internals
    # ==================================================================

    async def _run(self, data: Any, model_id: str) -> None:
        try:
            await self._producer.start_training(data, model_id=model_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("[TrainingManager] Run %s crashed", model_id)
            self._hub.publish(TrainingFailedEvent(model_id, str(exc)))

    def _on_event(self, event: ChannelEvent) -> None:
        self._hub.publish(event)
        if self._run_log is not None and isinstance(event, TrainingMetricsEvent):
            try:
                self._run_log.maybe_write(**event.to_payload())
            except OSError as exc:
                logger.warning("[TrainingManager] Run log write failed: %s", exc)

    def _log_event(self, **fields: Any) -> None:
        if self._run_log is None:
            return
        try:
            self._run_log.write_event(**fields)
        except OSError as exc:
            logger.warning("[TrainingManager] Run log write failed: %s", exc)
