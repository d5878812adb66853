"""Exception taxonomy for the training progress pipeline."""

from __future__ import annotations


class LegalAIError(Exception):
    """Base class for all legalai errors."""


class ConfigurationError(LegalAIError, ValueError):
    """Invalid or missing training configuration.

    Raised synchronously by the producer; no partial state is created.
    """


class TrainingInProgressError(ConfigurationError):
    """A run is already active on this producer instance."""


class ChannelConnectionError(LegalAIError, ConnectionError):
    """The event channel could not connect, authenticate, or stay online."""


class ExhaustedRetriesError(ChannelConnectionError):
    """Reconnection gave up after the configured number of attempts."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Failed to reconnect after {attempts} attempts")
        self.attempts = attempts


class RuntimeTrainingError(LegalAIError, RuntimeError):
    """An exception escaped the per-epoch loop of a simulated run."""


class ChannelAuthError(ChannelConnectionError):
    """The server rejected the channel credential; retrying cannot help."""
