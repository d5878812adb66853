"""
legalai server -- FastAPI backend for the training event channel.

Launch with ``legalai serve`` or::

    from legalai_engine.gui import launch
    launch(port=8780)
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Optional

from legalai_engine.core.constants import DEFAULT_EPOCH_DELAY, DEFAULT_PORT

logger = logging.getLogger(__name__)


def _port_free(host: str, port: int) -> bool:
    """Return True if *port* is available to bind on *host*."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return True
        except OSError:
            return False


def find_free_port(host: str, port: int, tries: int = 10) -> Optional[int]:
    """Return the first free port in ``port .. port + tries - 1``."""
    for candidate in range(port, port + tries):
        if _port_free(host, candidate):
            return candidate
    return None


def launch(
    host: str = "127.0.0.1",
    port: int = DEFAULT_PORT,
    epoch_delay: float = DEFAULT_EPOCH_DELAY,
    token: Optional[str] = None,
    run_log_dir: Optional[Path] = None,
) -> int:
    """Start the FastAPI server in the foreground until Ctrl+C.

    Returns a process exit code.
    """
    import uvicorn

    from legalai_engine.gui.security import generate_token
    from legalai_engine.gui.server import create_app

    chosen = find_free_port(host, port)
    if chosen is None:
        print(f"[FAIL] Ports {port}-{port + 9} all in use. Kill the old server or pick a different port.")
        return 1
    if chosen != port:
        print(f"[INFO] Port {port} in use, using {chosen} instead.")

    token = token or generate_token()
    app = create_app(token=token, port=chosen, epoch_delay=epoch_delay, run_log_dir=run_log_dir)

    url = f"http://{host}:{chosen}"
    logger.info("[Server] Starting on %s", url)
    print(f"[INFO] API:     {url}/api/health?token={token}")
    print(f"[INFO] Channel: ws://{host}:{chosen}/ws/events")
    print(f"[INFO] Token:   {token}")

    try:
        uvicorn.run(app, host=host, port=chosen, log_level="warning")
    except KeyboardInterrupt:
        pass
    print("\n[OK] Server stopped.")
    return 0
