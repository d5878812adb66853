"""
``legalai simulate`` -- run one simulated training in-process.

Drives a :class:`ProgressProducer` directly (no server, no channel) and
prints every event as it is emitted, then the metrics table.
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
from typing import Any, Dict

from legalai_engine.core.errors import ConfigurationError
from legalai_engine.core.events import ChannelEvent
from legalai_engine.core.producer import ProgressProducer
from legalai_engine.core.progress_writer import RunLogWriter

logger = logging.getLogger(__name__)


def build_simulate_config(args) -> Dict[str, Any]:
    """Training config dict from parsed ``simulate`` args."""
    config: Dict[str, Any] = {"modelType": args.model_type, "epochs": args.epochs}
    if getattr(args, "batch_size", None) is not None:
        config["batchSize"] = args.batch_size
    if getattr(args, "learning_rate", None) is not None:
        config["learningRate"] = args.learning_rate
    return config


def run_simulate(args) -> int:
    from legalai_engine.settings import get_run_log_dir
    from legalai_engine.ui.dashboard import print_event, show_metrics_table

    def _emit(event: ChannelEvent) -> None:
        print_event(event.name, event.to_payload())

    recorder = RunLogWriter(get_run_log_dir()) if args.record else None
    producer = ProgressProducer(
        _emit, delay=args.delay, rng=random.Random(args.seed), recorder=recorder,
    )
    try:
        producer.initialize(build_simulate_config(args))
    except ConfigurationError as exc:
        print(f"[FAIL] {exc}", file=sys.stderr)
        return 1

    try:
        status = asyncio.run(producer.start_training())
    except KeyboardInterrupt:
        print("\n[INFO] Simulation interrupted.")
        return 1
    finally:
        if recorder is not None:
            recorder.close()

    show_metrics_table(producer.history)
    if recorder is not None:
        print(f"[INFO] Summary appended to {recorder.path}")
    return 0 if status["state"] == "completed" else 1
