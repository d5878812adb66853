"""
JSONL run log for simulated training runs.

Writes one JSON line per call to ``{log_dir}/.progress.jsonl``.  Epoch
lines can be throttled (``maybe_write``); lifecycle lines and completed-run
summaries are always written.  This is the durable "record summary"
collaborator the producer hands finished runs to.

Usage::

    log = RunLogWriter(log_dir)
    producer = ProgressProducer(emit, recorder=log)
    ...
    log.close()
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

logger = logging.getLogger(__name__)


def sanitize_floats(obj: Any) -> Any:
    """Replace non-finite floats (NaN, Inf, -Inf) with ``None``.

    Frames and log lines are parsed by ``JSON.parse()`` in the browser,
    which rejects bare ``Infinity`` and ``NaN`` tokens.
    """
    if isinstance(obj, float):
        if math.isinf(obj) or math.isnan(obj):
            return None
        return obj
    if isinstance(obj, dict):
        return {k: sanitize_floats(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_floats(v) for v in obj]
    return obj


class RunLogWriter:
    """Append-only JSONL writer for run telemetry and summaries."""

    def __init__(self, log_dir: str | Path, interval: float = 0.0) -> None:
        self._path = Path(log_dir) / ".progress.jsonl"
        self._interval = interval
        self._last_write = 0.0
        self._fh: Optional[TextIO] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_open(self) -> TextIO:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "a", encoding="utf-8")
        return self._fh

    def maybe_write(self, **kwargs: Any) -> None:
        """Write an epoch line if >= interval seconds since the last one."""
        now = time.monotonic()
        if self._interval and now - self._last_write < self._interval:
            return
        self._last_write = now
        self._write_line(kind="epoch", **kwargs)

    def write_event(self, **kwargs: Any) -> None:
        """Write a lifecycle line unconditionally (start, stop, fail)."""
        self._write_line(**kwargs)

    def record_summary(self, summary: Dict[str, Any]) -> None:
        """Persist a completed-run summary.  Never raises."""
        try:
            self._write_line(kind="summary", **summary)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("[RunLog] Could not record summary to %s: %s", self._path, exc)

    def _write_line(self, **kwargs: Any) -> None:
        kwargs["ts"] = time.time()
        clean = sanitize_floats(kwargs)
        line = json.dumps(clean, default=str, allow_nan=False, ensure_ascii=False) + "\n"
        with self._lock:
            fh = self._ensure_open()
            fh.write(line)
            fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                try:
                    self._fh.close()
                except OSError:
                    pass
                self._fh = None


def read_run_summaries(log_dir: str | Path, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Return completed-run summaries from ``{log_dir}/.progress.jsonl``, newest first.

    Unparseable lines are skipped.
    """
    path = Path(log_dir) / ".progress.jsonl"
    if not path.is_file():
        return []
    summaries: List[Dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("[RunLog] Skipping malformed line in %s", path)
                continue
            if isinstance(record, dict) and record.get("kind") == "summary":
                summaries.append(record)
    summaries.reverse()
    return summaries[:limit] if limit is not None else summaries
