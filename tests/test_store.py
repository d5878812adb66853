"""Tests for the dashboard state store."""

from __future__ import annotations

import sys

import pytest
from hypothesis import given, settings, strategies as st

from legalai_engine.core.types import MetricPoint, TrainingSnapshot
from legalai_engine.state.store import AppState, AppStore


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now


def _snapshot(epoch, loss=0.5, accuracy=0.5, progress=50.0, model_id="m1"):
    return TrainingSnapshot(model_id=model_id, progress=progress, epoch=epoch,
                            loss=loss, accuracy=accuracy)


# ======================================================================
# Notifications
# ======================================================================

class TestNotifications:

    @given(messages=st.lists(st.text(max_size=20), max_size=40))
    @settings(max_examples=100)
    def test_cap_keeps_ten_most_recent_in_order(self, messages):
        store = AppStore()
        for m in messages:
            store.add_notification("info", m)

        kept = store.state.notifications
        assert len(kept) <= 10
        assert [n.message for n in kept] == messages[-10:]

    def test_timestamp_comes_from_clock(self):
        clock = FakeClock(12.5)
        store = AppStore(clock=clock)
        n = store.add_notification("success", "done")
        assert n.timestamp == 12500
        assert n.type == "success"

    def test_ids_are_unique(self):
        store = AppStore()
        ids = {store.add_notification("info", str(i)).id for i in range(10)}
        assert len(ids) == 10

    def test_unknown_type_becomes_info(self):
        store = AppStore()
        n = store.add_notification("fatal", "x")
        assert n.type == "info"

    def test_remove_and_clear(self):
        store = AppStore()
        a = store.add_notification("info", "a")
        store.add_notification("warning", "b")

        store.remove_notification(a.id)
        assert [n.message for n in store.state.notifications] == ["b"]
        store.remove_notification("missing")
        assert len(store.state.notifications) == 1

        store.clear_notifications()
        assert store.state.notifications == ()


# ======================================================================
# Connection and training
# ======================================================================

class TestConnectionState:

    def test_connected_forces_attempt_zero(self):
        store = AppStore()
        store.set_connection_state(False, reconnect_attempt=3, error="boom")
        assert store.state.socket_reconnect_attempt == 3
        assert store.state.socket_error == "boom"

        store.set_connection_state(True, reconnect_attempt=7, error="stale")
        assert store.state.socket_connected is True
        assert store.state.socket_reconnect_attempt == 0
        assert store.state.socket_error is None


class TestTraining:

    def test_snapshot_replaced_wholesale(self):
        store = AppStore()
        store.set_active_training(_snapshot(1, loss=0.9, accuracy=0.1))
        second = _snapshot(2, loss=0.4, accuracy=0.6, progress=40.0)
        store.set_active_training(second)
        assert store.state.active_training == second

        store.set_active_training(None)
        assert store.state.active_training is None

    def test_append_metrics_in_order(self):
        store = AppStore()
        assert store.append_metrics(MetricPoint(1, 0.9, 0.1))
        assert store.append_metrics(MetricPoint(2, 0.8, 0.2))
        assert [p.epoch for p in store.state.metrics_history] == [1, 2]

    def test_stale_epoch_rejected(self):
        store = AppStore()
        store.append_metrics(MetricPoint(1, 0.9, 0.1))
        store.append_metrics(MetricPoint(2, 0.8, 0.2))
        assert store.append_metrics(MetricPoint(2, 0.7, 0.3)) is False
        assert len(store.state.metrics_history) == 2

    def test_epoch_one_starts_new_history(self):
        store = AppStore()
        store.append_metrics(MetricPoint(1, 0.9, 0.1))
        store.append_metrics(MetricPoint(2, 0.8, 0.2))
        store.append_metrics(MetricPoint(1, 0.95, 0.05))
        assert [p.loss for p in store.state.metrics_history] == [0.95]

        store.reset_metrics()
        assert store.state.metrics_history == ()

    def test_closed_run_accepts_next_run_without_epoch_one(self):
        store = AppStore()
        store.append_metrics(MetricPoint(1, 0.9, 0.1))
        store.append_metrics(MetricPoint(2, 0.8, 0.2))
        store.append_metrics(MetricPoint(3, 0.7, 0.3))
        store.close_metrics_run()
        assert len(store.state.metrics_history) == 3

        assert store.append_metrics(MetricPoint(2, 0.6, 0.4))
        assert [p.epoch for p in store.state.metrics_history] == [2]
        assert store.append_metrics(MetricPoint(3, 0.5, 0.5))
        assert store.append_metrics(MetricPoint(3, 0.5, 0.5)) is False

    def test_new_model_id_drops_stale_history(self):
        store = AppStore()
        store.append_metrics(MetricPoint(1, 0.9, 0.1))
        store.set_active_training(_snapshot(1, model_id="m1"))
        store.append_metrics(MetricPoint(2, 0.8, 0.2))
        store.append_metrics(MetricPoint(3, 0.7, 0.3))

        assert store.append_metrics(MetricPoint(2, 0.6, 0.4)) is False
        store.set_active_training(_snapshot(2, model_id="m2"))
        assert store.state.metrics_history == ()
        assert store.append_metrics(MetricPoint(3, 0.5, 0.5))
        assert [p.epoch for p in store.state.metrics_history] == [3]

    def test_same_model_id_keeps_history(self):
        store = AppStore()
        store.append_metrics(MetricPoint(1, 0.9, 0.1))
        store.set_active_training(_snapshot(1, model_id="m1"))
        store.append_metrics(MetricPoint(2, 0.8, 0.2))
        store.set_active_training(_snapshot(2, model_id="m1"))
        assert len(store.state.metrics_history) == 2

    def test_download_progress(self):
        store = AppStore()
        store.set_download_progress("corpus", 5, 10)
        progress = store.state.downloads["corpus"]
        assert progress.percent == 50
        with pytest.raises(TypeError):
            store.state.downloads["other"] = progress


# ======================================================================
# Subscriptions and UI preferences
# ======================================================================

class TestSubscriptions:

    def test_subscriber_sees_every_action(self):
        store = AppStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)

        store.toggle_sidebar()
        store.set_theme("dark")
        unsubscribe()
        store.set_theme("light")

        assert len(seen) == 2
        assert seen[-1].theme == "dark"
        assert seen[0].sidebar_open is False

    def test_raising_subscriber_does_not_block_others(self):
        store = AppStore()
        seen = []

        def broken(_state):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(seen.append)
        store.clear_notifications()
        assert len(seen) == 1

    def test_bad_theme_rejected(self):
        store = AppStore()
        with pytest.raises(ValueError):
            store.set_theme("solarized")
        assert store.state.theme == "light"

    def test_state_is_immutable(self):
        state = AppState()
        with pytest.raises(Exception):
            state.theme = "dark"


@pytest.mark.skipif(sys.platform == "win32", reason="XDG config path")
class TestPersistence:

    @pytest.fixture(autouse=True)
    def _config_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    def test_only_ui_preferences_survive_restart(self):
        store = AppStore(persist=True)
        store.set_theme("dark")
        store.toggle_sidebar()
        store.set_connection_state(False, reconnect_attempt=2, error="down")
        store.add_notification("info", "hello")

        assert store.persisted() == {"theme": "dark", "sidebar_open": False}

        restored = AppStore(persist=True)
        assert restored.state.theme == "dark"
        assert restored.state.sidebar_open is False
        assert restored.state.socket_reconnect_attempt == 0
        assert restored.state.notifications == ()

    def test_non_persistent_store_ignores_saved_preferences(self):
        AppStore(persist=True).set_theme("dark")
        assert AppStore().state.theme == "light"
