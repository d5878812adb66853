"""
Persistent user settings for legalai.

Stored as JSON at a platform-aware location:

    Linux/macOS:  ``~/.config/legalai/settings.json``
    Windows:      ``%APPDATA%\\legalai\\settings.json``

Settings hold the dashboard's persistent UI preferences (theme, sidebar
flag) and the connection / simulation defaults.  Connection and training
state are never stored here.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from legalai_engine.core.constants import (
    DEFAULT_EPOCH_DELAY,
    DEFAULT_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SERVER_URL,
    THEMES,
)

logger = logging.getLogger(__name__)

# In-process cache: (path, mtime, data); invalidated when the file changes.
_cache: tuple[str, float, Dict[str, Any]] | None = None

# Current schema version -- bump when adding/renaming keys.
_SCHEMA_VERSION = 2

# Environment variable names (env wins over the settings file)
_ENV_SERVER_URL = "LEGALAI_SERVER_URL"
_ENV_AUTH_TOKEN = "LEGALAI_AUTH_TOKEN"
_ENV_EPOCH_DELAY = "LEGALAI_EPOCH_DELAY"


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def settings_dir() -> Path:
    """Platform-aware root config directory for legalai."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "legalai"


def settings_path() -> Path:
    """Full path to the settings JSON file."""
    return settings_dir() / "settings.json"


# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------

def _default_settings() -> Dict[str, Any]:
    """Return a blank settings dict with the current schema version."""
    return {
        "version": _SCHEMA_VERSION,
        "theme": "light",
        "sidebar_open": True,
        "server_url": None,
        "reconnect_attempts": DEFAULT_RECONNECT_ATTEMPTS,
        "reconnect_delay": DEFAULT_RECONNECT_DELAY,
        "epoch_delay": DEFAULT_EPOCH_DELAY,
        "run_log_dir": None,
    }


def load_settings() -> Optional[Dict[str, Any]]:
    """Load settings from disk with mtime-based caching.

    Returns ``None`` if the file does not exist or cannot be parsed.
    Missing keys are filled from defaults when the on-disk version is
    older than ``_SCHEMA_VERSION``.
    """
    global _cache
    p = settings_path()
    if not p.is_file():
        return None

    try:
        mtime = p.stat().st_mtime
    except OSError:
        mtime = 0.0

    if _cache is not None:
        cached_path, cached_mtime, cached_data = _cache
        if cached_path == str(p) and cached_mtime == mtime:
            return cached_data.copy()

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read settings: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: not a JSON object", p)
        return None

    defaults = _default_settings()
    for key, val in defaults.items():
        data.setdefault(key, val)
    data["version"] = _SCHEMA_VERSION

    _cache = (str(p), mtime, data.copy())
    return data


def save_settings(data: Dict[str, Any]) -> None:
    """Write settings to disk atomically, creating parent dirs as needed.

    Uses a temporary file + ``os.replace`` so a crash mid-write cannot
    corrupt the settings file.
    """
    import tempfile

    global _cache
    data["version"] = _SCHEMA_VERSION
    p = settings_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2) + "\n"
    fd, tmp = tempfile.mkstemp(dir=str(p.parent), suffix=".tmp")
    closed = False
    try:
        os.write(fd, content.encode("utf-8"))
        os.close(fd)
        closed = True
        os.replace(tmp, str(p))
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    _cache = None
    logger.debug("Settings saved to %s", p)


_INT_KEYS = {"reconnect_attempts"}
_FLOAT_KEYS = {"reconnect_delay", "epoch_delay"}
_BOOL_KEYS = {"sidebar_open"}
_NULLABLE_KEYS = {"server_url", "run_log_dir"}


def coerce_setting_value(key: str, raw: str) -> Any:
    """Convert a command-line string to the stored type of *key*.

    Raises ``ValueError`` when *raw* does not parse.
    """
    if key in _BOOL_KEYS:
        return raw.strip().lower() in ("true", "1", "yes", "on")
    if key in _INT_KEYS:
        return int(raw)
    if key in _FLOAT_KEYS:
        return float(raw)
    if key in _NULLABLE_KEYS and raw.strip().lower() in ("", "none", "null"):
        return None
    return raw


def update_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merge *changes* into the stored settings (unknown keys rejected)."""
    allowed = set(_default_settings())
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise KeyError(f"Unknown setting(s): {', '.join(unknown)}")
    if "theme" in changes and changes["theme"] not in THEMES:
        raise ValueError(f"theme must be one of {sorted(THEMES)}")
    data = load_settings() or _default_settings()
    data.update(changes)
    save_settings(data)
    return data


# ---------------------------------------------------------------------------
# UI preferences (the only persisted part of the dashboard store)
# ---------------------------------------------------------------------------

def load_ui_preferences() -> Tuple[str, bool]:
    """Return ``(theme, sidebar_open)``, falling back to defaults."""
    data = load_settings() or _default_settings()
    theme = data.get("theme")
    if theme not in THEMES:
        theme = "light"
    sidebar_open = data.get("sidebar_open")
    if not isinstance(sidebar_open, bool):
        sidebar_open = True
    return theme, sidebar_open


def save_ui_preferences(theme: str, sidebar_open: bool) -> None:
    data = load_settings() or _default_settings()
    data["theme"] = theme
    data["sidebar_open"] = bool(sidebar_open)
    save_settings(data)


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------

def _resolve(env_var: str, settings_key: str) -> Optional[Any]:
    """Resolve a value: env var takes precedence over settings file."""
    env_val = os.environ.get(env_var)
    if env_val:
        return env_val
    data = load_settings()
    if data is None:
        return None
    return data.get(settings_key)


def get_server_url() -> str:
    """Return the channel URL (env var → settings file → default)."""
    return _resolve(_ENV_SERVER_URL, "server_url") or DEFAULT_SERVER_URL


def get_auth_token() -> Optional[str]:
    """Return the channel bearer token from the environment, if any."""
    return os.environ.get(_ENV_AUTH_TOKEN) or None


def get_epoch_delay() -> float:
    """Return the simulated seconds per epoch (env var → settings file → default)."""
    raw = _resolve(_ENV_EPOCH_DELAY, "epoch_delay")
    try:
        value = float(raw) if raw is not None else DEFAULT_EPOCH_DELAY
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid epoch delay %r", raw)
        return DEFAULT_EPOCH_DELAY
    return value if value >= 0 else DEFAULT_EPOCH_DELAY


def get_reconnect_policy() -> Tuple[int, float]:
    """Return ``(reconnect_attempts, reconnect_delay)`` from settings."""
    data = load_settings() or _default_settings()
    attempts = data.get("reconnect_attempts")
    delay = data.get("reconnect_delay")
    if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 0:
        attempts = DEFAULT_RECONNECT_ATTEMPTS
    if not isinstance(delay, (int, float)) or isinstance(delay, bool) or delay <= 0:
        delay = DEFAULT_RECONNECT_DELAY
    return attempts, float(delay)


def get_run_log_dir() -> Path:
    """Return the run-log directory, ``<config dir>/runs`` when unset."""
    data = load_settings()
    val = data.get("run_log_dir") if data else None
    return Path(val).expanduser() if val else settings_dir() / "runs"
