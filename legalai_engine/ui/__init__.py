"""
legalai -- Rich UI layer

Provides a shared ``Console`` instance and a plain-mode switch so every
renderer can fall back to ``print()`` when output is not a terminal.
"""

from __future__ import annotations

from rich.console import Console
from rich.theme import Theme

console = Console(stderr=True, theme=Theme({"metric": "cyan", "muted": "dim"}))

# ---- Plain-mode flag (set via --plain CLI arg) ------------------------------

plain_mode: bool = False


def set_plain_mode(value: bool) -> None:
    """Toggle plain-text output globally."""
    global plain_mode
    plain_mode = value


def is_rich_active() -> bool:
    """Return True when Rich output should be used."""
    if plain_mode:
        return False
    return console.is_terminal
