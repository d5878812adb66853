"""Tests for the simulated training producer and its config validation."""

from __future__ import annotations

import asyncio
import random

import pytest

from legalai_engine.core.constants import (
    EVENT_TRAINING_COMPLETED,
    EVENT_TRAINING_FAILED,
    EVENT_TRAINING_METRICS,
    EVENT_TRAINING_PROGRESS,
)
from legalai_engine.core.errors import (
    ConfigurationError,
    TrainingInProgressError,
)
from legalai_engine.core.events import TrainingMetricsEvent, TrainingProgressEvent
from legalai_engine.core.producer import ProgressProducer, simulate_epoch
from legalai_engine.core.types import TrainingConfig


def _producer(events, delay=0.0, **kw):
    return ProgressProducer(events.append, delay=delay, rng=random.Random(0), **kw)


# ======================================================================
# Config validation
# ======================================================================

class TestTrainingConfig:

    def test_from_dict_maps_camel_case(self):
        cfg = TrainingConfig.from_dict({
            "modelType": "dora",
            "epochs": 4,
            "batchSize": 8,
            "learningRate": 0.01,
            "datasets": ["a", "b"],
            "ignored": True,
        })
        assert cfg.model_type == "dora"
        assert cfg.epochs == 4
        assert cfg.batch_size == 8
        assert cfg.learning_rate == 0.01
        assert cfg.datasets == ("a", "b")

    def test_defaults_fill_missing_fields(self):
        cfg = TrainingConfig.from_dict({"modelType": "qr-adaptor"})
        assert cfg.epochs == 10
        assert cfg.batch_size == 32
        assert cfg.validation_split == 0.2

    @pytest.mark.parametrize("data", [
        {"modelType": "gpt-5"},
        {"epochs": 3},
        {"modelType": "dora", "epochs": 0},
        {"modelType": "dora", "learningRate": -1},
        {"modelType": "dora", "validationSplit": 1.0},
        {"modelType": "dora", "datasets": "not-a-list"},
        None,
    ])
    def test_invalid_configs_rejected(self, data):
        with pytest.raises(ConfigurationError):
            TrainingConfig.from_dict(data)

    def test_round_trip_keys_are_camel_case(self):
        out = TrainingConfig(model_type="persian-bert").to_dict()
        assert out["modelType"] == "persian-bert"
        assert "maxSequenceLength" in out


# ======================================================================
# Metric shape
# ======================================================================

class TestSimulateEpoch:

    def test_bounds_and_validation_factors(self):
        rng = random.Random(42)
        for epoch in range(1, 11):
            p = simulate_epoch(epoch, 10, rng)
            assert p.loss >= 0.1
            assert 0 <= p.accuracy <= 0.95
            assert p.val_loss == pytest.approx(p.loss * 1.1)
            assert p.val_accuracy == pytest.approx(p.accuracy * 0.95)

    def test_seeded_rng_is_reproducible(self):
        a = simulate_epoch(3, 5, random.Random(7))
        b = simulate_epoch(3, 5, random.Random(7))
        assert a == b


# ======================================================================
# Run lifecycle
# ======================================================================

class TestProducerRun:

    @pytest.mark.asyncio
    async def test_three_epoch_run_emits_ordered_events(self):
        events = []
        producer = _producer(events)
        producer.initialize({"modelType": "persian-bert", "epochs": 3})

        status = await producer.start_training([1, 2, 3])

        names = [e.name for e in events]
        assert names == [EVENT_TRAINING_METRICS, EVENT_TRAINING_PROGRESS] * 3 + [EVENT_TRAINING_COMPLETED]
        metric_epochs = [e.point.epoch for e in events if isinstance(e, TrainingMetricsEvent)]
        assert metric_epochs == [1, 2, 3]
        progress = [e.completion_percentage for e in events if isinstance(e, TrainingProgressEvent)]
        assert progress == pytest.approx([100 / 3, 200 / 3, 100.0])
        assert len(events[-1].history) == 3
        assert status["state"] == "completed"
        assert status["totalEpochs"] == 3

    @pytest.mark.asyncio
    async def test_stop_after_epoch_two_suppresses_rest(self):
        events = []
        producer = ProgressProducer(lambda e: _record_and_stop(e, events, producer), delay=0.0)
        producer.initialize({"modelType": "dora", "epochs": 5})

        status = await producer.start_training()

        metric_epochs = [e.point.epoch for e in events if isinstance(e, TrainingMetricsEvent)]
        assert metric_epochs == [1, 2]
        assert EVENT_TRAINING_COMPLETED not in [e.name for e in events]
        assert status["state"] == "stopped"
        assert not producer.is_training

    @pytest.mark.asyncio
    async def test_start_without_initialize_raises(self):
        producer = _producer([])
        with pytest.raises(ConfigurationError):
            await producer.start_training()

    def test_initialize_rejects_unknown_model_type(self):
        producer = _producer([])
        with pytest.raises(ConfigurationError, match="Unsupported model type"):
            producer.initialize({"modelType": "gpt"})
        assert producer.status()["modelType"] is None

    @pytest.mark.asyncio
    async def test_second_start_while_running_raises(self):
        events = []
        producer = _producer(events, delay=10.0)
        producer.initialize({"modelType": "dora", "epochs": 2})
        task = asyncio.create_task(producer.start_training())
        await asyncio.sleep(0)

        with pytest.raises(TrainingInProgressError):
            await producer.start_training()
        with pytest.raises(TrainingInProgressError):
            producer.initialize({"modelType": "dora"})

        assert producer.stop_training() is True
        status = await task
        assert status["state"] == "stopped"
        assert events == []

    @pytest.mark.asyncio
    async def test_config_override_cannot_change_model_type(self):
        producer = _producer([])
        producer.initialize({"modelType": "dora"})
        with pytest.raises(ConfigurationError):
            await producer.start_training(config={"modelType": "persian-bert"})

    @pytest.mark.asyncio
    async def test_pause_holds_loop_until_resume(self):
        events = []
        producer = _producer(events, delay=0.01)
        producer.initialize({"modelType": "qr-adaptor", "epochs": 2})
        task = asyncio.create_task(producer.start_training())
        await asyncio.sleep(0)

        assert producer.pause_training() is True
        assert producer.pause_training() is False
        await asyncio.sleep(0.05)
        assert events == []
        assert producer.status()["state"] == "paused"

        assert producer.resume_training() is True
        assert producer.resume_training() is False
        status = await task
        assert status["state"] == "completed"
        assert events[-1].name == EVENT_TRAINING_COMPLETED

    @pytest.mark.asyncio
    async def test_emit_failure_becomes_failed_event(self):
        events = []

        def emit(event):
            events.append(event)
            if isinstance(event, TrainingMetricsEvent):
                raise RuntimeError("sink exploded")

        producer = ProgressProducer(emit, delay=0.0)
        producer.initialize({"modelType": "dora", "epochs": 3})
        status = await producer.start_training()

        assert [e.name for e in events] == [EVENT_TRAINING_METRICS, EVENT_TRAINING_FAILED]
        assert "sink exploded" in events[-1].error
        assert status["state"] == "failed"
        assert not producer.is_training

    def test_stop_when_idle_is_noop(self):
        producer = _producer([])
        assert producer.stop_training() is False
        assert producer.pause_training() is False
        assert producer.resume_training() is False


class TestSummaryRecorder:

    @pytest.mark.asyncio
    async def test_completed_run_is_recorded(self):
        summaries = []

        class Recorder:
            def record_summary(self, summary):
                summaries.append(summary)

        producer = _producer([], recorder=Recorder())
        producer.initialize({"modelType": "persian-bert", "epochs": 2})
        await producer.start_training(["doc"], model_id="m1")

        assert len(summaries) == 1
        assert summaries[0]["modelId"] == "m1"
        assert summaries[0]["modelType"] == "persian-bert"
        assert summaries[0]["samples"] == 1
        assert len(summaries[0]["history"]) == 2

    @pytest.mark.asyncio
    async def test_recorder_failure_does_not_fail_run(self):
        class Broken:
            def record_summary(self, summary):
                raise OSError("disk full")

        events = []
        producer = _producer(events, recorder=Broken())
        producer.initialize({"modelType": "dora", "epochs": 1})
        status = await producer.start_training()
        assert status["state"] == "completed"
        assert events[-1].name == EVENT_TRAINING_COMPLETED


def _record_and_stop(event, events, producer):
    events.append(event)
    if isinstance(event, TrainingProgressEvent) and event.epoch == 2:
        producer.stop_training()
