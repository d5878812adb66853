"""
Pure projections from raw shapes to chart- and card-ready data.

Every selector is total: ``None``, a wrong type, or a half-filled mapping
yields an empty (or dash-filled) result, never an exception.  None of them
read a clock or a random source; anything time-dependent takes ``now`` as
an argument.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from legalai_engine.core.constants import NOTIFICATION_TTL_MS
from legalai_engine.core.types import MetricPoint, Notification, TrainingSnapshot

PIE_COLORS: Tuple[str, ...] = ("#8884d8", "#82ca9d", "#ffc658", "#ff7300", "#00ff00")


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """``obj[key]`` for mappings, ``default`` for anything else."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def _items(seq: Any) -> List[Any]:
    return list(seq) if isinstance(seq, (list, tuple)) else []


def _minutes(seconds: Any) -> Optional[int]:
    if isinstance(seconds, (int, float)) and not isinstance(seconds, bool) \
            and math.isfinite(seconds):
        return round(seconds / 60)
    return None


def _group_counts(items: Iterable[Any], key: str) -> List[Tuple[str, int]]:
    """Count *items* by ``item[key]`` in first-seen order; missing → ``unknown``."""
    grouped: Dict[str, int] = {}
    for item in items:
        label = _get(item, key) or "unknown"
        label = str(label)
        grouped[label] = grouped.get(label, 0) + 1
    return list(grouped.items())


def _fmt(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Dashboard projections
# ---------------------------------------------------------------------------

def to_kpi_stats(metrics: Any) -> List[Dict[str, str]]:
    """CPU / RAM / Uptime cards; ``-`` for values the metrics lack."""
    if not isinstance(metrics, dict):
        return []
    cpu = metrics.get("cpuUsage")
    memory = metrics.get("memory")
    uptime = _minutes(metrics.get("uptime"))
    return [
        {"label": "CPU", "value": f"{_fmt(cpu)}%" if cpu is not None else "-"},
        {"label": "RAM", "value": f"{_fmt(memory)} MB" if memory is not None else "-"},
        {"label": "Uptime", "value": f"{uptime} min" if uptime is not None else "-"},
    ]


def to_line_series(training: Any) -> List[Dict[str, Any]]:
    """Accuracy/loss line points from ``training['history']``.

    ``time`` falls back to the point's index when absent.
    """
    history = _get(training, "history")
    if not isinstance(history, list):
        return []
    series = []
    for i, point in enumerate(history):
        time_value = _get(point, "time")
        series.append({
            "time": time_value if time_value is not None else i,
            "acc": _get(point, "accuracy"),
            "loss": _get(point, "loss"),
        })
    return series


def to_bar_series(models: Any) -> List[Dict[str, Any]]:
    """Model counts per ``status``, in discovery order."""
    return [{"name": name, "count": count} for name, count in _group_counts(_items(models), "status")]


def to_bar_data(models: Any) -> List[Dict[str, Any]]:
    """Model counts per ``type``, in discovery order."""
    return [{"type": name, "count": count} for name, count in _group_counts(_items(models), "type")]


def to_pie_data(models: Any) -> List[Dict[str, Any]]:
    """Model counts per ``type`` with a cycling colour palette."""
    return [
        {"name": name, "value": count, "color": PIE_COLORS[i % len(PIE_COLORS)]}
        for i, (name, count) in enumerate(_group_counts(_items(models), "type"))
    ]


def to_stats_cards(models: Any, metrics: Any) -> List[Dict[str, Any]]:
    training = _get(metrics, "training")
    active = _get(training, "active") or 0
    uptime = _minutes(_get(metrics, "uptime"))
    success_rate = _get(metrics, "successRate")
    return [
        {"title": "Total Models", "value": len(_items(models)), "icon": "Brain"},
        {"title": "Active Training", "value": active, "icon": "Activity"},
        {"title": "System Uptime", "value": f"{uptime}m" if uptime else "0m", "icon": "Clock"},
        {
            "title": "Success Rate",
            "value": f"{_fmt(success_rate)}%" if success_rate else "0%",
            "icon": "CheckCircle",
        },
    ]


def to_system_metrics(metrics: Any) -> Dict[str, Any]:
    return {
        "cpuUsage": _get(metrics, "cpuUsage") or 0,
        "memory": _get(metrics, "memory") or 0,
        "uptime": _get(metrics, "uptime") or 0,
    }


def to_metric_series(history: Any) -> List[Dict[str, Any]]:
    """Chart rows from a store metrics history (``MetricPoint`` or dicts)."""
    rows = []
    for point in _items(history):
        if isinstance(point, MetricPoint):
            point = point.to_dict()
        epoch = _get(point, "epoch")
        if epoch is None:
            continue
        rows.append({
            "epoch": epoch,
            "loss": _get(point, "loss"),
            "accuracy": _get(point, "accuracy"),
            "valLoss": _get(point, "valLoss"),
            "valAccuracy": _get(point, "valAccuracy"),
        })
    return rows


# ---------------------------------------------------------------------------
# Store selectors
# ---------------------------------------------------------------------------

def select_socket_status(state: Any) -> Dict[str, Any]:
    return {
        "connected": bool(getattr(state, "socket_connected", False)),
        "reconnectAttempt": getattr(state, "socket_reconnect_attempt", 0),
    }


def select_active_training(state: Any) -> Optional[TrainingSnapshot]:
    return getattr(state, "active_training", None)


def select_notifications(state: Any) -> List[Notification]:
    return list(getattr(state, "notifications", ()) or ())


def select_visible_notifications(
    state: Any, now_ms: int, ttl_ms: int = NOTIFICATION_TTL_MS,
) -> List[Notification]:
    """Notifications younger than *ttl_ms* at *now_ms*."""
    return [n for n in select_notifications(state) if now_ms - n.timestamp < ttl_ms]


def select_theme(state: Any) -> str:
    return getattr(state, "theme", "light")
