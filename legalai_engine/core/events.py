"""
Typed channel events and the JSON frame codec.

Every message on the channel is one JSON text frame::

    {"event": "training:progress", "data": {...}}

Producer-side events are small frozen dataclasses with a ``name`` and a
``to_payload()`` method.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Tuple, Union

from legalai_engine.core.constants import (
    EVENT_TRAINING_COMPLETED,
    EVENT_TRAINING_FAILED,
    EVENT_TRAINING_METRICS,
    EVENT_TRAINING_PROGRESS,
    EVENT_TRAINING_STOPPED,
)
from legalai_engine.core.progress_writer import sanitize_floats
from legalai_engine.core.types import MetricPoint


@dataclass(frozen=True)
class TrainingProgressEvent:
    name: ClassVar[str] = EVENT_TRAINING_PROGRESS
    model_id: Any
    epoch: int
    completion_percentage: float
    loss: float
    accuracy: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "epoch": self.epoch,
            "completionPercentage": self.completion_percentage,
            "loss": self.loss,
            "accuracy": self.accuracy,
        }


@dataclass(frozen=True)
class TrainingMetricsEvent:
    name: ClassVar[str] = EVENT_TRAINING_METRICS
    point: MetricPoint

    def to_payload(self) -> Dict[str, Any]:
        return self.point.to_dict()


@dataclass(frozen=True)
class TrainingCompletedEvent:
    name: ClassVar[str] = EVENT_TRAINING_COMPLETED
    model_id: Any
    history: Tuple[MetricPoint, ...] = field(default_factory=tuple)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "history": [p.to_dict() for p in self.history],
        }


@dataclass(frozen=True)
class TrainingFailedEvent:
    name: ClassVar[str] = EVENT_TRAINING_FAILED
    model_id: Any
    error: str

    def to_payload(self) -> Dict[str, Any]:
        return {"modelId": self.model_id, "error": self.error}


@dataclass(frozen=True)
class TrainingStoppedEvent:
    name: ClassVar[str] = EVENT_TRAINING_STOPPED
    model_id: Any

    def to_payload(self) -> Dict[str, Any]:
        return {"modelId": self.model_id}


ChannelEvent = Union[
    TrainingProgressEvent,
    TrainingMetricsEvent,
    TrainingCompletedEvent,
    TrainingFailedEvent,
    TrainingStoppedEvent,
]


def encode_frame(event: str, data: Any = None) -> str:
    """Serialize one channel frame.  Non-finite floats become ``null``."""
    return json.dumps(
        {"event": event, "data": sanitize_floats(data)},
        default=str,
        allow_nan=False,
        ensure_ascii=False,
    )


def encode_event(event: ChannelEvent) -> str:
    return encode_frame(event.name, event.to_payload())


def decode_frame(text: Union[str, bytes]) -> Tuple[str, Any]:
    """Parse one channel frame into ``(event, data)``.

    Raises ``ValueError`` for anything that is not a JSON object with a
    string ``event`` key.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("frame must be a JSON object")
    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise ValueError("frame is missing an event name")
    return event, message.get("data")

