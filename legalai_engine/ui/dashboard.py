"""
Terminal renderers for channel events, run history, and the live dashboard.

Every renderer builds its output from the pure selectors in
:mod:`legalai_engine.state.selectors`; nothing here reads the store or
the channel directly.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from legalai_engine.core.constants import (
    EVENT_TRAINING_COMPLETED,
    EVENT_TRAINING_FAILED,
    EVENT_TRAINING_METRICS,
    EVENT_TRAINING_PROGRESS,
    EVENT_TRAINING_STOPPED,
)
from legalai_engine.state.selectors import (
    select_active_training,
    select_socket_status,
    select_visible_notifications,
    to_metric_series,
)
from legalai_engine.ui import console, is_rich_active

_NOTIFICATION_STYLES = {
    "success": "green",
    "error": "bold red",
    "warning": "yellow",
    "info": "blue",
}


def _num(value: Any, digits: int = 4) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:.{digits}f}"
    return "--"


def format_event(event: str, data: Any) -> str:
    """One-line plain rendering of a channel event."""
    payload: Dict[str, Any] = data if isinstance(data, dict) else {}
    if event == EVENT_TRAINING_PROGRESS:
        return (
            f"[{payload.get('modelId')}] epoch {payload.get('epoch')} "
            f"{_num(payload.get('completionPercentage'), 1)}% "
            f"loss={_num(payload.get('loss'))} acc={_num(payload.get('accuracy'))}"
        )
    if event == EVENT_TRAINING_METRICS:
        return (
            f"  metrics epoch {payload.get('epoch')}: "
            f"val_loss={_num(payload.get('valLoss'))} val_acc={_num(payload.get('valAccuracy'))}"
        )
    if event == EVENT_TRAINING_COMPLETED:
        return f"[{payload.get('modelId')}] completed ({len(payload.get('history') or [])} epochs)"
    if event == EVENT_TRAINING_FAILED:
        return f"[{payload.get('modelId')}] failed: {payload.get('error')}"
    if event == EVENT_TRAINING_STOPPED:
        return f"[{payload.get('modelId')}] stopped"
    return f"{event}: {data}"


def print_event(event: str, data: Any) -> None:
    line = format_event(event, data)
    if not is_rich_active():
        print(line)
        return
    style = {
        EVENT_TRAINING_COMPLETED: "bold green",
        EVENT_TRAINING_FAILED: "bold red",
        EVENT_TRAINING_STOPPED: "yellow",
        EVENT_TRAINING_METRICS: "dim",
    }.get(event, "")
    console.print(Text(line, style=style))


def build_metrics_table(history: Any, title: str = "Training metrics") -> Table:
    table = Table(title=title, header_style="bold", border_style="dim")
    table.add_column("Epoch", justify="right")
    for name in ("Loss", "Accuracy", "Val loss", "Val accuracy"):
        table.add_column(name, justify="right", style="metric")
    for row in to_metric_series(history):
        table.add_row(
            str(row["epoch"]),
            _num(row["loss"]),
            _num(row["accuracy"]),
            _num(row["valLoss"]),
            _num(row["valAccuracy"]),
        )
    return table


def show_metrics_table(history: Any) -> None:
    if is_rich_active():
        console.print(build_metrics_table(history))
        return
    rows = to_metric_series(history)
    hdr = f"{'Epoch':>5} {'Loss':>8} {'Accuracy':>9} {'Val loss':>9} {'Val acc':>8}"
    print(hdr)
    print("-" * len(hdr))
    for row in rows:
        print(
            f"{row['epoch']:>5} {_num(row['loss']):>8} {_num(row['accuracy']):>9} "
            f"{_num(row['valLoss']):>9} {_num(row['valAccuracy']):>8}"
        )


def build_dashboard(state: Any, now_ms: int) -> Panel:
    """Live view of the store: connection, active run, history, toasts."""
    status = select_socket_status(state)
    if status["connected"]:
        conn = Text("connected", style="bold green")
    elif status["reconnectAttempt"]:
        conn = Text(f"reconnecting (attempt {status['reconnectAttempt']})", style="yellow")
    else:
        conn = Text("disconnected", style="red")
    error = getattr(state, "socket_error", None)
    if error and not status["connected"]:
        conn.append(f"  {error}", style="dim")

    parts: List[Any] = [Text.assemble("Channel: ", conn)]

    snapshot = select_active_training(state)
    if snapshot is not None:
        parts.append(Text(
            f"Run {snapshot.model_id}: epoch {snapshot.epoch}  "
            f"{snapshot.progress:.1f}%  loss {snapshot.loss:.4f}  acc {snapshot.accuracy:.4f}",
            style="bold",
        ))
    else:
        parts.append(Text("No active training", style="muted"))

    history = getattr(state, "metrics_history", ())
    if history:
        parts.append(build_metrics_table(history, title=""))

    for notification in select_visible_notifications(state, now_ms):
        style = _NOTIFICATION_STYLES.get(notification.type, "")
        parts.append(Text.assemble((notification.type.upper(), style), " ", notification.message))

    return Panel(Group(*parts), title="[bold]legalai[/]", border_style="blue")


def show_run_history(summaries: Iterable[Dict[str, Any]]) -> None:
    """Table of completed-run summaries from the run log."""
    runs = list(summaries)
    if is_rich_active():
        table = Table(title="Completed runs", header_style="bold", border_style="dim")
        for name in ("Model", "Type", "Epochs", "Final loss", "Final acc", "Duration"):
            table.add_column(name)
        for r in runs:
            table.add_row(
                escape(str(r.get("modelId", "?"))),
                escape(str(r.get("modelType", "?"))),
                str(r.get("epochs", "?")),
                _num(r.get("finalLoss")),
                _num(r.get("finalAccuracy")),
                f"{_num(r.get('durationSec'), 1)}s",
            )
        console.print(table)
        return
    hdr = f"{'Model':<16} {'Type':<13} {'Epochs':>6} {'Final loss':>10} {'Final acc':>9}"
    print(hdr)
    print("-" * len(hdr))
    for r in runs:
        print(
            f"{str(r.get('modelId', '?'))[:15]:<16} {str(r.get('modelType', '?'))[:12]:<13} "
            f"{str(r.get('epochs', '?')):>6} {_num(r.get('finalLoss')):>10} {_num(r.get('finalAccuracy')):>9}"
        )
