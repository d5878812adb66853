"""Shared types used across the legalai engine.

Types defined here live in the ``core`` layer so that the channel, state
and server layers can all import them without depending on each other.
Wire payloads use camelCase keys; Python attributes use snake_case.
"""

from __future__ import annotations

import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from legalai_engine.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_EPOCHS,
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_SEQUENCE_LENGTH,
    DEFAULT_VALIDATION_SPLIT,
    DEFAULT_VOCAB_SIZE,
    MODEL_LAYERS,
    MODEL_TYPES,
)
from legalai_engine.core.errors import ConfigurationError

# camelCase wire key -> dataclass field
_CONFIG_ALIASES = {
    "modelType": "model_type",
    "batchSize": "batch_size",
    "learningRate": "learning_rate",
    "validationSplit": "validation_split",
    "maxSequenceLength": "max_sequence_length",
    "vocabSize": "vocab_size",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class TrainingConfig:
    """Hyperparameters for one simulated run."""

    model_type: str
    epochs: int = DEFAULT_EPOCHS
    batch_size: int = DEFAULT_BATCH_SIZE
    learning_rate: float = DEFAULT_LEARNING_RATE
    validation_split: float = DEFAULT_VALIDATION_SPLIT
    max_sequence_length: int = DEFAULT_MAX_SEQUENCE_LENGTH
    vocab_size: int = DEFAULT_VOCAB_SIZE
    datasets: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.model_type not in MODEL_TYPES:
            raise ConfigurationError(f"Unsupported model type: {self.model_type}")
        for name in ("epochs", "batch_size", "max_sequence_length", "vocab_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer (got {value!r})")
        if not _is_number(self.learning_rate) or not self.learning_rate > 0 \
                or not math.isfinite(self.learning_rate):
            raise ConfigurationError(
                f"learning_rate must be a positive number (got {self.learning_rate!r})"
            )
        if not _is_number(self.validation_split) or not 0 <= self.validation_split < 1:
            raise ConfigurationError(
                f"validation_split must be in [0, 1) (got {self.validation_split!r})"
            )
        self.datasets = tuple(str(d) for d in self.datasets)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TrainingConfig":
        """Build a config from a camelCase or snake_case mapping.

        Unknown keys are ignored.  A missing ``modelType`` is a
        :class:`ConfigurationError`.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Training config must be a mapping")
        field_names = set(cls.__dataclass_fields__)
        filtered: Dict[str, Any] = {}
        for key, value in data.items():
            mapped = _CONFIG_ALIASES.get(key, key)
            if mapped in field_names:
                filtered[mapped] = value
        if "model_type" not in filtered:
            raise ConfigurationError("Training config is missing modelType")
        if "datasets" in filtered and not isinstance(filtered["datasets"], (list, tuple)):
            raise ConfigurationError("datasets must be a list")
        return cls(**filtered)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelType": self.model_type,
            "epochs": self.epochs,
            "batchSize": self.batch_size,
            "learningRate": self.learning_rate,
            "validationSplit": self.validation_split,
            "maxSequenceLength": self.max_sequence_length,
            "vocabSize": self.vocab_size,
            "datasets": list(self.datasets),
        }


@dataclass
class SimulatedModel:
    """State holder standing in for a real model; no weights, no compute."""

    model_type: str
    vocab_size: int
    max_sequence_length: int
    layers: Tuple[str, ...]
    created: float = field(default_factory=time.time)

    @classmethod
    def for_config(cls, config: TrainingConfig) -> "SimulatedModel":
        return cls(
            model_type=config.model_type,
            vocab_size=config.vocab_size,
            max_sequence_length=config.max_sequence_length,
            layers=MODEL_LAYERS[config.model_type],
        )


@dataclass(frozen=True)
class MetricPoint:
    """One epoch of training history."""

    epoch: int
    loss: float
    accuracy: float
    val_loss: Optional[float] = None
    val_accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "epoch": self.epoch,
            "loss": self.loss,
            "accuracy": self.accuracy,
        }
        if self.val_loss is not None:
            out["valLoss"] = self.val_loss
        if self.val_accuracy is not None:
            out["valAccuracy"] = self.val_accuracy
        return out

    @classmethod
    def from_payload(cls, data: Any) -> "MetricPoint":
        """Parse a ``training:metrics`` payload; raises ``ValueError`` if malformed."""
        if not isinstance(data, dict):
            raise ValueError("metrics payload must be an object")
        epoch = data.get("epoch")
        if not isinstance(epoch, int) or isinstance(epoch, bool):
            raise ValueError(f"metrics payload has invalid epoch: {epoch!r}")
        loss, accuracy = data.get("loss"), data.get("accuracy")
        if not _is_number(loss) or not _is_number(accuracy):
            raise ValueError("metrics payload needs numeric loss and accuracy")
        val_loss = data.get("valLoss")
        val_accuracy = data.get("valAccuracy")
        return cls(
            epoch=epoch,
            loss=float(loss),
            accuracy=float(accuracy),
            val_loss=float(val_loss) if _is_number(val_loss) else None,
            val_accuracy=float(val_accuracy) if _is_number(val_accuracy) else None,
        )


@dataclass(frozen=True)
class TrainingSnapshot:
    """The single live view of the active run held by the store."""

    model_id: Any
    progress: float
    epoch: int
    loss: float
    accuracy: float

    @classmethod
    def from_payload(cls, data: Any) -> "TrainingSnapshot":
        """Parse a ``training:progress`` payload; raises ``ValueError`` if malformed."""
        if not isinstance(data, dict):
            raise ValueError("progress payload must be an object")
        progress = data.get("completionPercentage", data.get("progress"))
        epoch = data.get("epoch")
        loss, accuracy = data.get("loss"), data.get("accuracy")
        if not _is_number(progress) or not 0 <= progress <= 100:
            raise ValueError(f"progress payload has invalid completion: {progress!r}")
        if not isinstance(epoch, int) or isinstance(epoch, bool) or epoch < 0:
            raise ValueError(f"progress payload has invalid epoch: {epoch!r}")
        if not _is_number(loss) or loss < 0:
            raise ValueError(f"progress payload has invalid loss: {loss!r}")
        if not _is_number(accuracy) or not 0 <= accuracy <= 1:
            raise ValueError(f"progress payload has invalid accuracy: {accuracy!r}")
        return cls(
            model_id=data.get("modelId"),
            progress=float(progress),
            epoch=epoch,
            loss=float(loss),
            accuracy=float(accuracy),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "progress": self.progress,
            "epoch": self.epoch,
            "loss": self.loss,
            "accuracy": self.accuracy,
        }


@dataclass(frozen=True)
class ConnectionState:
    """Channel connection bookkeeping; the zero value means 'never connected'."""

    connected: bool = False
    connecting: bool = False
    error: Optional[Exception] = None
    reconnect_attempt: int = 0


@dataclass(frozen=True)
class Notification:
    id: str
    type: str
    message: str
    timestamp: int
    """Epoch milliseconds."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DownloadProgress:
    id: str
    downloaded: int
    total: int

    @property
    def percent(self) -> int:
        return round(self.downloaded / max(self.total, 1) * 100)
