"""
``legalai watch`` -- live dashboard over the event channel.

Connects an :class:`EventChannelClient` to a running server, binds it to
an :class:`AppStore`, and redraws the store through the selectors until
Ctrl+C.  Exits with 1 once the client gives up (exhausted retries or a
rejected token).
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Any, Dict, Optional

from legalai_engine.channel.client import ChannelOptions, EventChannelClient
from legalai_engine.core.constants import (
    COMMAND_PREFIX,
    EVENT_AUTH_SUCCESS,
    EVENT_TRAINING_COMPLETED,
    EVENT_TRAINING_FAILED,
    EVENT_TRAINING_PROGRESS,
    EVENT_TRAINING_STOPPED,
)
from legalai_engine.core.errors import ChannelAuthError, ExhaustedRetriesError
from legalai_engine.state.bindings import bind_store
from legalai_engine.state.store import AppStore

logger = logging.getLogger(__name__)

_REFRESH_SECONDS = 0.5


def _now_ms() -> int:
    return int(time.time() * 1000)


def _gave_up(client: EventChannelClient) -> bool:
    return isinstance(client.error, (ExhaustedRetriesError, ChannelAuthError))


def _start_on_connect(client: EventChannelClient, start_payload: Dict[str, Any]) -> None:
    """Send one ``training:start`` after the first successful auth."""

    def _on_auth(_data: Any) -> None:
        unsubscribe()
        client.emit(f"{COMMAND_PREFIX}start", start_payload)

    unsubscribe = client.on(EVENT_AUTH_SUCCESS, _on_auth)


async def watch(
    url: str,
    token: Optional[str],
    start_payload: Optional[Dict[str, Any]] = None,
    live: bool = True,
) -> int:
    from legalai_engine.settings import get_reconnect_policy
    from legalai_engine.ui import console
    from legalai_engine.ui.dashboard import build_dashboard, print_event

    attempts, delay = get_reconnect_policy()
    client = EventChannelClient(
        ChannelOptions(url=url, reconnect_attempts=attempts, reconnect_delay=delay),
        token_provider=lambda: token,
    )
    store = AppStore(persist=True)
    unbind = bind_store(client, store)
    if start_payload is not None:
        _start_on_connect(client, start_payload)

    if not live:
        for event in (
            EVENT_TRAINING_PROGRESS,
            EVENT_TRAINING_COMPLETED,
            EVENT_TRAINING_FAILED,
            EVENT_TRAINING_STOPPED,
        ):
            client.on(event, lambda data, _event=event: print_event(_event, data))

    client.connect()
    try:
        if live:
            from rich.live import Live

            with Live(build_dashboard(store.state, _now_ms()), console=console,
                      refresh_per_second=4) as view:
                while not _gave_up(client):
                    await asyncio.sleep(_REFRESH_SECONDS)
                    view.update(build_dashboard(store.state, _now_ms()))
        else:
            while not _gave_up(client):
                await asyncio.sleep(_REFRESH_SECONDS)
        failure = client.error
    finally:
        unbind()
        client.disconnect()

    print(f"[FAIL] {failure}", file=sys.stderr)
    return 1


def run_watch(args) -> int:
    from legalai_engine.settings import get_auth_token, get_server_url
    from legalai_engine.ui import is_rich_active

    url = args.url or get_server_url()
    token = args.token or get_auth_token()
    start_payload = None
    if args.start:
        start_payload = {"config": {"modelType": args.start, "epochs": args.epochs}}

    print(f"[INFO] Watching {url} (Ctrl+C to stop)")
    try:
        return asyncio.run(watch(url, token, start_payload, live=is_rich_active()))
    except KeyboardInterrupt:
        print("\n[OK] Stopped watching.")
        return 0
