"""
Simulated training producer.

Drives one fake training run through its epochs and emits an ordered
cadence of channel events: per epoch a ``training:metrics`` point then a
``training:progress`` update, and finally exactly one terminal event
(``training:completed`` or ``training:failed``).  No model is trained; the
metrics are a deterministic curve plus jitter from an injectable RNG.

The loop yields to the event loop at every epoch boundary, so the server
keeps serving other requests between epochs.  Stop and pause are
cooperative: both are observed at the boundary, never mid-epoch.

Usage::

    producer = ProgressProducer(hub.publish, delay=1.0)
    producer.initialize({"modelType": "persian-bert", "epochs": 3})
    await producer.start_training(samples)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Sized
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from legalai_engine.core.constants import (
    ACCURACY_SCALE,
    DEFAULT_EPOCH_DELAY,
    JITTER_SCALE,
    MAX_ACCURACY,
    MIN_LOSS,
    VAL_ACCURACY_FACTOR,
    VAL_LOSS_FACTOR,
)
from legalai_engine.core.errors import (
    ConfigurationError,
    RuntimeTrainingError,
    TrainingInProgressError,
)
from legalai_engine.core.events import (
    ChannelEvent,
    TrainingCompletedEvent,
    TrainingFailedEvent,
    TrainingMetricsEvent,
    TrainingProgressEvent,
)
from legalai_engine.core.types import MetricPoint, SimulatedModel, TrainingConfig

logger = logging.getLogger(__name__)

EmitFn = Callable[[ChannelEvent], Any]


class SummaryRecorder(Protocol):
    def record_summary(self, summary: Dict[str, Any]) -> None: ...


class CancellationToken:
    """Stop/pause flags checked by the run loop at each epoch boundary."""

    def __init__(self) -> None:
        self._stopped = asyncio.Event()
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def stop(self) -> None:
        self._stopped.set()
        self._resumed.set()  # release a paused loop so it can exit

    def pause(self) -> bool:
        if self.stopped or self.paused:
            return False
        self._resumed.clear()
        return True

    def resume(self) -> bool:
        if not self.paused:
            return False
        self._resumed.set()
        return True

    async def sleep(self, delay: float) -> bool:
        """Wait out one epoch delay, then any pause.

        Returns ``False`` when the run was stopped in the meantime.
        """
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=delay)
            return False
        except asyncio.TimeoutError:
            pass
        await self._resumed.wait()
        return not self._stopped.is_set()


def simulate_epoch(epoch: int, total_epochs: int, rng: random.Random) -> MetricPoint:
    """Fabricate the metrics of one epoch.

    ``loss`` falls towards 0.1 and ``accuracy`` climbs towards 0.95 as the
    run progresses; validation values are fixed perturbations of them.
    """
    progress = epoch / total_epochs
    loss = max(MIN_LOSS, 1 - progress + rng.random() * JITTER_SCALE)
    accuracy = min(MAX_ACCURACY, progress * ACCURACY_SCALE + rng.random() * JITTER_SCALE)
    return MetricPoint(
        epoch=epoch,
        loss=loss,
        accuracy=accuracy,
        val_loss=loss * VAL_LOSS_FACTOR,
        val_accuracy=accuracy * VAL_ACCURACY_FACTOR,
    )


class ProgressProducer:
    """Runs at most one simulated training run at a time.

    Args:
        emit:     Called with each :class:`ChannelEvent`, in order.
        delay:    Seconds of simulated work per epoch.
        rng:      Source of metric jitter (seed it for reproducible runs).
        recorder: Optional durable sink for completed-run summaries.
    """

    def __init__(
        self,
        emit: EmitFn,
        delay: float = DEFAULT_EPOCH_DELAY,
        rng: Optional[random.Random] = None,
        recorder: Optional[SummaryRecorder] = None,
    ) -> None:
        self._emit = emit
        self._delay = delay
        self._rng = rng or random.Random()
        self._recorder = recorder
        self._config: Optional[TrainingConfig] = None
        self._model: Optional[SimulatedModel] = None
        self._token: Optional[CancellationToken] = None
        self._model_id: Any = None
        self._state = "idle"  # idle, running, paused, completed, failed, stopped
        self._epoch = 0
        self._total_epochs = 0
        self._history: List[MetricPoint] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_training(self) -> bool:
        return self._token is not None

    @property
    def history(self) -> List[MetricPoint]:
        return list(self._history)

    def initialize(self, config: Union[TrainingConfig, Dict[str, Any]]) -> SimulatedModel:
        """Validate *config* and allocate a fresh simulated model.

        Raises :class:`ConfigurationError` for an unsupported model type or
        any invalid field; the previous model (if any) is left untouched.
        """
        if self.is_training:
            raise TrainingInProgressError("Cannot re-initialize while training is running")
        cfg = config if isinstance(config, TrainingConfig) else TrainingConfig.from_dict(config)
        self._config = cfg
        self._model = SimulatedModel.for_config(cfg)
        self._state = "idle"
        logger.info(
            "[Producer] Initialized %s model (vocab=%d, max_len=%d)",
            cfg.model_type, cfg.vocab_size, cfg.max_sequence_length,
        )
        return self._model

    async def start_training(
        self,
        data: Any = None,
        config: Union[TrainingConfig, Dict[str, Any], None] = None,
        model_id: Any = None,
    ) -> Dict[str, Any]:
        """Run the simulated loop to completion, stop, or failure.

        *config* may override the hyperparameters of :meth:`initialize` but
        not the model type.  Returns the final :meth:`status`.
        """
        if self._model is None or self._config is None:
            raise ConfigurationError("No model initialized. Call initialize first.")
        if self.is_training:
            raise TrainingInProgressError("Training already running")
        cfg = self._config
        if config is not None:
            cfg = config if isinstance(config, TrainingConfig) else TrainingConfig.from_dict(config)
            if cfg.model_type != self._model.model_type:
                raise ConfigurationError(
                    f"Config model type {cfg.model_type} does not match "
                    f"initialized model {self._model.model_type}"
                )

        token = self._token = CancellationToken()
        self._model_id = model_id if model_id is not None else uuid.uuid4().hex[:8]
        self._history = []
        self._epoch = 0
        self._total_epochs = cfg.epochs
        self._state = "running"
        started = time.time()
        samples = len(data) if isinstance(data, Sized) else None
        logger.info(
            "[Producer] Starting run %s: %d epochs, batch=%d, lr=%g",
            self._model_id, cfg.epochs, cfg.batch_size, cfg.learning_rate,
        )

        try:
            await self._run_epochs(cfg, token)
            if token.stopped:
                self._state = "stopped"
                logger.info("[Producer] Run %s stopped after epoch %d", self._model_id, self._epoch)
            else:
                self._state = "completed"
                self._send(TrainingCompletedEvent(self._model_id, tuple(self._history)))
                logger.info("[Producer] Run %s completed", self._model_id)
                self._record_summary(cfg, started, samples)
        except RuntimeTrainingError as exc:
            self._state = "failed"
            logger.error("[Producer] Run %s failed: %s", self._model_id, exc)
            self._send(TrainingFailedEvent(self._model_id, str(exc)))
        finally:
            self._token = None
            if self._state in ("running", "paused"):
                # Task cancelled from outside.
                self._state = "stopped"
        return self.status()

    async def _run_epochs(self, cfg: TrainingConfig, token: CancellationToken) -> None:
        for epoch in range(1, cfg.epochs + 1):
            if not await token.sleep(self._delay):
                return
            try:
                point = simulate_epoch(epoch, cfg.epochs, self._rng)
                self._history.append(point)
                self._epoch = epoch
                self._emit(TrainingMetricsEvent(point))
                self._emit(TrainingProgressEvent(
                    model_id=self._model_id,
                    epoch=epoch,
                    completion_percentage=100 * epoch / cfg.epochs,
                    loss=point.loss,
                    accuracy=point.accuracy,
                ))
            except Exception as exc:
                raise RuntimeTrainingError(f"Epoch {epoch} failed: {exc}") from exc
            logger.debug(
                "[Producer] Epoch %d/%d - loss %.4f, acc %.4f",
                epoch, cfg.epochs, point.loss, point.accuracy,
            )

    def stop_training(self) -> bool:
        """Request the loop to exit at its next epoch boundary.

        Already-emitted events stand.  Returns ``False`` (and does nothing)
        when no run is active.
        """
        if self._token is None or self._token.stopped:
            return False
        self._token.stop()
        logger.info("[Producer] Stop requested for run %s", self._model_id)
        return True

    def pause_training(self) -> bool:
        if self._token is None or not self._token.pause():
            return False
        self._state = "paused"
        logger.info("[Producer] Run %s paused at epoch %d", self._model_id, self._epoch)
        return True

    def resume_training(self) -> bool:
        if self._token is None or not self._token.resume():
            return False
        self._state = "running"
        logger.info("[Producer] Run %s resumed", self._model_id)
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state,
            "modelId": self._model_id,
            "modelType": self._model.model_type if self._model else None,
            "epoch": self._epoch,
            "totalEpochs": self._total_epochs or (self._config.epochs if self._config else 0),
            "history": [p.to_dict() for p in self._history],
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(self, event: ChannelEvent) -> None:
        """Emit a terminal event; a failing sink must not mask the run outcome."""
        try:
            self._emit(event)
        except Exception:
            logger.exception("[Producer] Could not emit %s", event.name)

    def _record_summary(self, cfg: TrainingConfig, started: float, samples: Optional[int]) -> None:
        if self._recorder is None:
            return
        last = self._history[-1] if self._history else None
        summary = {
            "modelId": self._model_id,
            "modelType": cfg.model_type,
            "epochs": cfg.epochs,
            "samples": samples,
            "durationSec": round(time.time() - started, 3),
            "finalLoss": last.loss if last else None,
            "finalAccuracy": last.accuracy if last else None,
            "history": [p.to_dict() for p in self._history],
        }
        try:
            self._recorder.record_summary(summary)
        except Exception:
            logger.exception("[Producer] Summary recorder failed for run %s", self._model_id)
