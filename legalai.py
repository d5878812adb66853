#!/usr/bin/env python3
"""legalai -- CLI Entry Point

Usage:
    legalai <subcommand> [args]

Subcommands:
    serve            Run the training relay server (REST + websocket channel)
    simulate         Run one simulated training in-process
    watch            Live dashboard over the event channel
    settings         View or modify persistent settings
    history          List completed runs from the run log

Examples:
    legalai serve --port 8780 --epoch-delay 0.5

    legalai simulate -m persian-bert --epochs 5 --seed 7

    LEGALAI_AUTH_TOKEN=... legalai watch --start dora --epochs 3
"""

from __future__ import annotations

import logging
import sys

# ---------------------------------------------------------------------------
# Logging setup (before any library imports that might configure logging)
# ---------------------------------------------------------------------------

_log_formatter = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

_console_handler = logging.StreamHandler()
_console_handler.setLevel(logging.INFO)
_console_handler.setFormatter(_log_formatter)

# File (captures DEBUG+ including tracebacks)
# Guard against read-only working directories
try:
    _file_handler = logging.FileHandler("legalai.log", mode="a", encoding="utf-8")
    _file_handler.setLevel(logging.DEBUG)
    _file_handler.setFormatter(_log_formatter)
    _log_handlers = [_console_handler, _file_handler]
except OSError:
    _log_handlers = [_console_handler]

logging.basicConfig(level=logging.DEBUG, handlers=_log_handlers)
logger = logging.getLogger("legalai")


def _quiet_console_for_live_views(args) -> None:
    """The live dashboard owns the terminal; keep INFO chatter in the log file."""
    if args.subcommand == "watch":
        _console_handler.setLevel(logging.WARNING)


def _dispatch(args) -> int:
    """Route a parsed argparse.Namespace to the correct subcommand runner."""
    sub = args.subcommand

    if sub == "serve":
        return _run_serve(args)
    if sub == "simulate":
        from legalai_engine.cli.simulate import run_simulate
        return run_simulate(args)
    if sub == "watch":
        from legalai_engine.cli.watch import run_watch
        return run_watch(args)
    if sub == "settings":
        return _run_settings(args)
    if sub == "history":
        return _run_history(args)

    print(f"[FAIL] Unknown subcommand: {sub}", file=sys.stderr)
    return 1


def main(argv=None) -> int:
    """Entry point for the legalai CLI."""
    from legalai_engine.cli.args import build_root_parser
    from legalai_engine.ui import set_plain_mode

    parser = build_root_parser()
    args = parser.parse_args(argv)
    if args.subcommand is None:
        parser.print_help()
        return 0

    set_plain_mode(args.plain)
    _quiet_console_for_live_views(args)
    try:
        return _dispatch(args)
    except Exception as exc:
        logger.exception("Unhandled error in %s", args.subcommand)
        print(f"[FAIL] {exc}", file=sys.stderr)
        return 1


# ===========================================================================
# Subcommand implementations
# ===========================================================================

def _run_serve(args) -> int:
    """Run the FastAPI server until Ctrl+C."""
    try:
        from legalai_engine.gui import launch
    except ImportError as exc:
        print(
            f"[FAIL] Server dependencies not installed ({exc}).\n"
            "       Install with: pip install legalai",
            file=sys.stderr,
        )
        return 1
    from legalai_engine.settings import get_auth_token, get_epoch_delay, get_run_log_dir

    epoch_delay = args.epoch_delay if args.epoch_delay is not None else get_epoch_delay()
    if epoch_delay < 0:
        print("[FAIL] --epoch-delay must be >= 0", file=sys.stderr)
        return 1
    run_log_dir = None if args.no_run_log else get_run_log_dir()
    return launch(
        host=args.host,
        port=args.port,
        epoch_delay=epoch_delay,
        token=args.token or get_auth_token(),
        run_log_dir=run_log_dir,
    )


def _run_settings(args) -> int:
    """View or modify persistent settings."""
    from legalai_engine.settings import (
        _default_settings,
        coerce_setting_value,
        load_settings,
        save_settings,
        settings_path,
        update_settings,
    )

    action = args.settings_action

    if action == "path":
        print(settings_path())
        return 0

    if action == "show" or not action:
        data = load_settings()
        if data is None:
            print("[INFO] No settings file found; defaults are in effect.")
            print(f"       Create one with 'legalai settings set KEY VALUE' ({settings_path()})")
            data = _default_settings()
        else:
            print(f"Settings file: {settings_path()}\n")
        for key, value in sorted(data.items()):
            if key == "version":
                continue
            print(f"  {key}: {value}")
        return 0

    if action in ("set", "clear"):
        defaults = _default_settings()
        key = args.key
        if key not in defaults or key == "version":
            known = ", ".join(k for k in sorted(defaults) if k != "version")
            print(f"[FAIL] Unknown setting '{key}'. Valid keys: {known}", file=sys.stderr)
            return 1

        if action == "clear":
            data = load_settings()
            if data is None:
                print("[INFO] No settings file to modify.")
                return 0
            data[key] = defaults[key]
            save_settings(data)
            print(f"[OK] {key} reset to default ({defaults[key]})")
            return 0

        try:
            value = coerce_setting_value(key, args.value)
            update_settings({key: value})
        except ValueError as exc:
            print(f"[FAIL] Invalid value for {key}: {exc}", file=sys.stderr)
            return 1
        print(f"[OK] {key} = {value}")
        return 0

    print(f"[FAIL] Unknown settings action: {action}", file=sys.stderr)
    return 1


def _run_history(args) -> int:
    """List completed runs recorded in the run log."""
    from pathlib import Path

    from legalai_engine.core.progress_writer import read_run_summaries
    from legalai_engine.settings import get_run_log_dir
    from legalai_engine.ui.dashboard import show_run_history

    log_dir = Path(args.log_dir).expanduser() if args.log_dir else get_run_log_dir()
    runs = read_run_summaries(log_dir, limit=max(args.limit, 0))

    if args.json_output:
        import json as _json
        print(_json.dumps(runs, indent=2))
        return 0

    if not runs:
        print("[INFO] No completed runs found.")
        print(f"       Runs are read from {log_dir / '.progress.jsonl'}")
        return 0

    show_run_history(runs)
    print(f"\n  Showing {len(runs)} run(s). Use --limit N or --json for more.")
    return 0


# ===========================================================================
# Entry
# ===========================================================================

if __name__ == "__main__":
    sys.exit(main())
