"""Core pipeline modules: config and event types, the simulated producer, run log.

Also exports shared types so that the channel, state and server layers can
import from ``core`` without depending on each other.
"""

from legalai_engine.core.errors import (
    ConfigurationError,
    ExhaustedRetriesError,
    RuntimeTrainingError,
)
from legalai_engine.core.types import MetricPoint, TrainingConfig, TrainingSnapshot

__all__ = [
    "ConfigurationError",
    "ExhaustedRetriesError",
    "MetricPoint",
    "RuntimeTrainingError",
    "TrainingConfig",
    "TrainingSnapshot",
]
