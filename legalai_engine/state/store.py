"""
Shared dashboard state store.

Single source of truth for cross-view UI state.  State is an immutable
:class:`AppState`; the only way to change it is one of the named actions on
:class:`AppStore`, each of which swaps in a new state and notifies
subscribers synchronously.  Actions never interleave because they never
suspend.

Only ``theme`` and ``sidebar_open`` survive a restart (see
:meth:`AppStore.persisted`); connection and training fields always start
from their zero values.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from legalai_engine.core.constants import (
    MAX_NOTIFICATIONS,
    NOTIFICATION_TYPES,
    THEMES,
)
from legalai_engine.core.types import (
    DownloadProgress,
    MetricPoint,
    Notification,
    TrainingSnapshot,
)

logger = logging.getLogger(__name__)

Listener = Callable[["AppState"], None]


def _new_notification_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass(frozen=True)
class AppState:
    # Channel connection
    socket_connected: bool = False
    socket_reconnect_attempt: int = 0
    socket_error: Optional[str] = None

    # Training
    active_training: Optional[TrainingSnapshot] = None
    metrics_history: Tuple[MetricPoint, ...] = ()
    # Run the history belongs to, learned from progress snapshots
    metrics_model_id: Any = None
    # Set once the run ended; the next point starts a fresh history
    metrics_closed: bool = False
    downloads: Mapping[str, DownloadProgress] = field(
        default_factory=lambda: MappingProxyType({})
    )

    # UI
    sidebar_open: bool = True
    theme: str = "light"
    notifications: Tuple[Notification, ...] = ()


class AppStore:
    """Holds :class:`AppState` and applies actions to it.

    Args:
        persist: Load UI preferences from settings on creation and save
                 them whenever ``theme`` or ``sidebar_open`` changes.
        clock:   Returns seconds since the epoch (notification timestamps).
    """

    def __init__(self, persist: bool = False, clock: Callable[[], float] = time.time) -> None:
        self._persist = persist
        self._clock = clock
        self._listeners: List[Listener] = []
        state = AppState()
        if persist:
            state = self._hydrate(state)
        self._state = state

    @property
    def state(self) -> AppState:
        return self._state

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the new state after every action."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: AppState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("[Store] Subscriber raised")

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def set_connection_state(
        self,
        connected: bool,
        reconnect_attempt: int = 0,
        error: Optional[str] = None,
    ) -> None:
        """A successful connection always means no outstanding retries."""
        self._commit(replace(
            self._state,
            socket_connected=connected,
            socket_reconnect_attempt=0 if connected else max(0, int(reconnect_attempt)),
            socket_error=None if connected else error,
        ))

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def set_active_training(self, snapshot: Optional[TrainingSnapshot]) -> None:
        """Replace the snapshot wholesale; ``None`` clears it.

        A snapshot for a different model than the one the history was
        recorded for drops the stale history.
        """
        state = self._state
        if snapshot is None:
            self._commit(replace(state, active_training=None))
            return
        history = state.metrics_history
        if state.metrics_model_id is not None and state.metrics_model_id != snapshot.model_id:
            logger.info(
                "[Store] Model changed (%r -> %r), clearing metrics history",
                state.metrics_model_id, snapshot.model_id,
            )
            history = ()
        self._commit(replace(
            state,
            active_training=snapshot,
            metrics_history=history,
            metrics_model_id=snapshot.model_id,
        ))

    def append_metrics(self, point: MetricPoint) -> bool:
        """Append one history point.

        Epoch 1, or the first point after :meth:`close_metrics_run`, starts
        a new run and clears the previous history.  Any other point that
        does not advance the epoch is rejected (returns ``False``).
        """
        state = self._state
        history = state.metrics_history
        if point.epoch == 1 or state.metrics_closed:
            self._commit(replace(
                state,
                metrics_history=(point,),
                metrics_model_id=None,
                metrics_closed=False,
            ))
            return True
        if history and point.epoch <= history[-1].epoch:
            logger.warning(
                "[Store] Rejecting metrics for epoch %d (last was %d)",
                point.epoch, history[-1].epoch,
            )
            return False
        self._commit(replace(state, metrics_history=history + (point,)))
        return True

    def close_metrics_run(self) -> None:
        """Mark the current run as finished; its history stays visible."""
        self._commit(replace(self._state, metrics_closed=True))

    def reset_metrics(self) -> None:
        self._commit(replace(
            self._state,
            metrics_history=(),
            metrics_model_id=None,
            metrics_closed=False,
        ))

    def set_download_progress(self, download_id: str, downloaded: int, total: int) -> None:
        downloads: Dict[str, DownloadProgress] = dict(self._state.downloads)
        downloads[download_id] = DownloadProgress(download_id, downloaded, total)
        self._commit(replace(self._state, downloads=MappingProxyType(downloads)))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def add_notification(self, kind: str, message: str) -> Notification:
        """Append a notification, keeping only the most recent ten."""
        if kind not in NOTIFICATION_TYPES:
            logger.warning("[Store] Unknown notification type %r, using 'info'", kind)
            kind = "info"
        notification = Notification(
            id=_new_notification_id(),
            type=kind,
            message=str(message),
            timestamp=int(self._clock() * 1000),
        )
        notifications = (self._state.notifications + (notification,))[-MAX_NOTIFICATIONS:]
        self._commit(replace(self._state, notifications=notifications))
        return notification

    def remove_notification(self, notification_id: str) -> None:
        self._commit(replace(
            self._state,
            notifications=tuple(n for n in self._state.notifications if n.id != notification_id),
        ))

    def clear_notifications(self) -> None:
        self._commit(replace(self._state, notifications=()))

    # ------------------------------------------------------------------
    # UI preferences
    # ------------------------------------------------------------------

    def toggle_sidebar(self) -> None:
        self._commit(replace(self._state, sidebar_open=not self._state.sidebar_open))
        self._save_preferences()

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"theme must be one of {sorted(THEMES)} (got {theme!r})")
        self._commit(replace(self._state, theme=theme))
        self._save_preferences()

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def persisted(self) -> Dict[str, Any]:
        """The declared-persistent subset of the state."""
        return {"theme": self._state.theme, "sidebar_open": self._state.sidebar_open}

    def _hydrate(self, state: AppState) -> AppState:
        from legalai_engine.settings import load_ui_preferences

        theme, sidebar_open = load_ui_preferences()
        return replace(state, theme=theme, sidebar_open=sidebar_open)

    def _save_preferences(self) -> None:
        if not self._persist:
            return
        from legalai_engine.settings import save_ui_preferences

        try:
            save_ui_preferences(self._state.theme, self._state.sidebar_open)
        except OSError as exc:
            logger.warning("[Store] Could not save UI preferences: %s", exc)
