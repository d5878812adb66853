"""
Argparse construction for the legalai CLI.

Contains ``build_root_parser`` and the ``_add_*`` argument helpers for each
subcommand.
"""

from __future__ import annotations

import argparse

from legalai_engine.core.constants import (
    DEFAULT_EPOCHS,
    DEFAULT_PORT,
    MODEL_TYPES,
)


# ===========================================================================
# Root parser
# ===========================================================================

def build_root_parser() -> argparse.ArgumentParser:
    """Build the top-level argparse parser with all subcommands."""

    formatter_class = argparse.HelpFormatter

    root = argparse.ArgumentParser(
        prog="legalai",
        description="legalai -- training progress relay and dashboard CLI",
        formatter_class=formatter_class,
    )
    root.add_argument(
        "--plain",
        action="store_true",
        default=False,
        help="Disable Rich output; use plain text (also set automatically when stdout is not a TTY)",
    )

    subparsers = root.add_subparsers(dest="subcommand")

    # -- serve ---------------------------------------------------------------
    p_serve = subparsers.add_parser(
        "serve",
        help="Run the training relay server (REST + websocket channel)",
        formatter_class=formatter_class,
    )
    _add_serve_args(p_serve)

    # -- simulate ------------------------------------------------------------
    p_simulate = subparsers.add_parser(
        "simulate",
        help="Run one simulated training in-process and print its events",
        formatter_class=formatter_class,
    )
    _add_simulate_args(p_simulate)

    # -- watch ---------------------------------------------------------------
    p_watch = subparsers.add_parser(
        "watch",
        help="Connect to a server and show a live dashboard",
        formatter_class=formatter_class,
    )
    _add_watch_args(p_watch)

    # -- settings ------------------------------------------------------------
    p_settings = subparsers.add_parser(
        "settings",
        help="View or modify legalai persistent settings",
        formatter_class=formatter_class,
    )
    _add_settings_args(p_settings)

    # -- history -------------------------------------------------------------
    p_history = subparsers.add_parser(
        "history",
        help="List completed runs from the run log",
        formatter_class=formatter_class,
    )
    p_history.add_argument(
        "--limit", type=int, default=20,
        help="Maximum number of runs to show (default: 20)",
    )
    p_history.add_argument(
        "--json", action="store_true", default=False, dest="json_output",
        help="Output raw JSON instead of a table",
    )
    p_history.add_argument(
        "--log-dir", type=str, default=None,
        help="Run log directory (default: run_log_dir from settings)",
    )

    return root


# ===========================================================================
# Argument groups
# ===========================================================================

def _add_serve_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Server port (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--epoch-delay", type=float, default=None,
        help="Seconds of simulated work per epoch (default: from settings, or 1.0)",
    )
    parser.add_argument(
        "--token", type=str, default=None,
        help="Fixed bearer token (default: LEGALAI_AUTH_TOKEN, or a random one per session)",
    )
    parser.add_argument(
        "--no-run-log", action="store_true", default=False,
        help="Do not write the JSONL run log",
    )


def _add_simulate_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Training")
    g.add_argument(
        "--model-type", "-m",
        type=str,
        required=True,
        choices=sorted(MODEL_TYPES),
        help="Model variant to simulate",
    )
    g.add_argument(
        "--epochs", "-e", type=int, default=DEFAULT_EPOCHS,
        help=f"Number of epochs (default: {DEFAULT_EPOCHS})",
    )
    g.add_argument("--batch-size", type=int, default=None, help="Batch size (informational)")
    g.add_argument("--lr", type=float, default=None, dest="learning_rate", help="Learning rate (informational)")

    g = parser.add_argument_group("Simulation")
    g.add_argument(
        "--delay", type=float, default=0.2,
        help="Seconds per epoch (default: 0.2)",
    )
    g.add_argument("--seed", type=int, default=None, help="RNG seed for reproducible metrics")
    g.add_argument(
        "--record", action="store_true", default=False,
        help="Append the completed-run summary to the run log",
    )


def _add_watch_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--url", type=str, default=None,
        help="Channel URL (default: LEGALAI_SERVER_URL, settings, or ws://127.0.0.1:8780/ws/events)",
    )
    parser.add_argument(
        "--token", type=str, default=None,
        help="Bearer token (default: LEGALAI_AUTH_TOKEN)",
    )
    parser.add_argument(
        "--start", type=str, default=None, metavar="MODEL_TYPE",
        choices=sorted(MODEL_TYPES),
        help="Ask the server to start a run of MODEL_TYPE once connected",
    )
    parser.add_argument(
        "--epochs", type=int, default=DEFAULT_EPOCHS,
        help="Epochs for --start (default: %(default)s)",
    )


def _add_settings_args(parser: argparse.ArgumentParser) -> None:
    """Add arguments for the ``settings`` subcommand."""
    sub = parser.add_subparsers(dest="settings_action")

    sub.add_parser("show", help="Display current settings")

    p_set = sub.add_parser("set", help="Set a setting value")
    p_set.add_argument("key", type=str, help="Setting key (e.g. theme, server_url, epoch_delay)")
    p_set.add_argument("value", type=str, help="New value")

    p_clear = sub.add_parser("clear", help="Clear a setting (reset to default)")
    p_clear.add_argument("key", type=str, help="Setting key to clear")

    sub.add_parser("path", help="Print the settings file path")
