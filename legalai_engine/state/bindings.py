"""
Wire an :class:`EventChannelClient` into an :class:`AppStore`.

Each inbound channel event is translated into store actions.  Payloads that
do not parse are logged and dropped; they never reach the store.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List

from legalai_engine.channel.client import EventChannelClient
from legalai_engine.core.constants import (
    EVENT_AUTH_FAILED,
    EVENT_DATASET_DOWNLOAD_PROGRESS,
    EVENT_TRAINING_COMPLETED,
    EVENT_TRAINING_FAILED,
    EVENT_TRAINING_METRICS,
    EVENT_TRAINING_PROGRESS,
    EVENT_TRAINING_STOPPED,
)
from legalai_engine.core.errors import ExhaustedRetriesError
from legalai_engine.core.types import ConnectionState, MetricPoint, TrainingSnapshot
from legalai_engine.state.store import AppStore

logger = logging.getLogger(__name__)


def bind_store(client: EventChannelClient, store: AppStore) -> Callable[[], None]:
    """Register store-updating handlers on *client*.

    Returns a closure that removes every handler it registered.
    """
    last_error: List[Any] = [None]

    def on_progress(data: Any) -> None:
        try:
            snapshot = TrainingSnapshot.from_payload(data)
        except ValueError as exc:
            logger.warning("[Bindings] Dropping progress event: %s", exc)
            return
        store.set_active_training(snapshot)

    def on_metrics(data: Any) -> None:
        try:
            point = MetricPoint.from_payload(data)
        except ValueError as exc:
            logger.warning("[Bindings] Dropping metrics event: %s", exc)
            return
        store.append_metrics(point)

    def on_completed(data: Any) -> None:
        store.set_active_training(None)
        store.close_metrics_run()
        store.add_notification("success", "Training completed")

    def on_failed(data: Any) -> None:
        message = data.get("error") if isinstance(data, dict) else None
        store.set_active_training(None)
        store.close_metrics_run()
        store.add_notification("error", f"Training failed: {message or 'unknown error'}")

    def on_stopped(data: Any) -> None:
        store.set_active_training(None)
        store.close_metrics_run()
        store.add_notification("info", "Training stopped")

    def on_download(data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning("[Bindings] Dropping download event: not an object")
            return
        download_id = data.get("id")
        downloaded, total = data.get("downloaded"), data.get("total")
        if not isinstance(download_id, str) or not isinstance(downloaded, int) \
                or not isinstance(total, int):
            logger.warning("[Bindings] Dropping download event: %r", data)
            return
        store.set_download_progress(download_id, downloaded, total)

    def on_auth_failed(data: Any) -> None:
        message = data.get("error") if isinstance(data, dict) else None
        store.add_notification("error", f"Authentication failed: {message or 'rejected'}")

    def on_state(state: ConnectionState) -> None:
        error = state.error
        store.set_connection_state(
            state.connected,
            reconnect_attempt=state.reconnect_attempt,
            error=str(error) if error is not None else None,
        )
        if isinstance(error, ExhaustedRetriesError) and error is not last_error[0]:
            store.add_notification("error", str(error))
        last_error[0] = error

    handlers = (
        (EVENT_TRAINING_PROGRESS, on_progress),
        (EVENT_TRAINING_METRICS, on_metrics),
        (EVENT_TRAINING_COMPLETED, on_completed),
        (EVENT_TRAINING_FAILED, on_failed),
        (EVENT_TRAINING_STOPPED, on_stopped),
        (EVENT_DATASET_DOWNLOAD_PROGRESS, on_download),
        (EVENT_AUTH_FAILED, on_auth_failed),
    )
    unsubscribers = [client.on(event, handler) for event, handler in handlers]
    unsubscribers.append(client.on_state(on_state))
    on_state(client.state)

    def unbind() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return unbind
