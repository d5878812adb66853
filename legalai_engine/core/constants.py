"""Canonical constants shared across all legalai interfaces.

Event names, supported model variants, and well-known defaults that more
than one module needs live here so there is exactly one source of truth.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Tuple

# ---------------------------------------------------------------------------
# Channel event names (server -> client)
# ---------------------------------------------------------------------------

EVENT_TRAINING_PROGRESS = "training:progress"
EVENT_TRAINING_METRICS = "training:metrics"
EVENT_TRAINING_COMPLETED = "training:completed"
EVENT_TRAINING_FAILED = "training:failed"
EVENT_TRAINING_STOPPED = "training:stopped"
EVENT_DATASET_DOWNLOAD_PROGRESS = "dataset:download:progress"
EVENT_AUTH_SUCCESS = "auth:success"
EVENT_AUTH_FAILED = "auth:failed"
EVENT_ERROR = "error"

# ---------------------------------------------------------------------------
# Channel command names (client -> server)
# ---------------------------------------------------------------------------

COMMAND_PREFIX = "training:"

# ---------------------------------------------------------------------------
# Model variants
# ---------------------------------------------------------------------------

MODEL_TYPES: FrozenSet[str] = frozenset({"persian-bert", "dora", "qr-adaptor"})

# Layer names recorded on the simulated model holder (informational only).
MODEL_LAYERS: Dict[str, Tuple[str, ...]] = {
    "persian-bert": ("embedding", "lstm", "dense", "output"),
    "dora": ("embedding", "bidirectional", "dense1", "dropout", "output"),
    "qr-adaptor": ("embedding", "conv1d", "global_max_pooling", "dense1", "output"),
}

# ---------------------------------------------------------------------------
# Training defaults
# ---------------------------------------------------------------------------

DEFAULT_EPOCHS: int = 10
DEFAULT_BATCH_SIZE: int = 32
DEFAULT_LEARNING_RATE: float = 0.001
DEFAULT_VALIDATION_SPLIT: float = 0.2
DEFAULT_MAX_SEQUENCE_LENGTH: int = 512
DEFAULT_VOCAB_SIZE: int = 30000

DEFAULT_EPOCH_DELAY: float = 1.0

# Simulated metric shape
MIN_LOSS: float = 0.1
MAX_ACCURACY: float = 0.95
ACCURACY_SCALE: float = 0.85
JITTER_SCALE: float = 0.05
VAL_LOSS_FACTOR: float = 1.1
VAL_ACCURACY_FACTOR: float = 0.95

# ---------------------------------------------------------------------------
# Channel client defaults
# ---------------------------------------------------------------------------

DEFAULT_SERVER_URL: str = "ws://127.0.0.1:8780/ws/events"
DEFAULT_RECONNECT_ATTEMPTS: int = 5
DEFAULT_RECONNECT_DELAY: float = 1.0

# Close code used by the server for rejected credentials.
WS_CLOSE_UNAUTHORIZED: int = 4401

# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

MAX_NOTIFICATIONS: int = 10
NOTIFICATION_TTL_MS: int = 5000
NOTIFICATION_TYPES: FrozenSet[str] = frozenset({"success", "error", "warning", "info"})
THEMES: FrozenSet[str] = frozenset({"light", "dark"})

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

DEFAULT_PORT: int = 8780
HUB_QUEUE_SIZE: int = 500
