"""Tests for the reconnecting event channel client.

Uses an in-memory transport and a recording scheduler so reconnect
timing is asserted exactly and no test sleeps for real backoff delays.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from legalai_engine.channel.client import ChannelOptions, EventChannelClient, backoff_delay
from legalai_engine.channel.transport import ChannelClosed
from legalai_engine.core.constants import EVENT_AUTH_FAILED, WS_CLOSE_UNAUTHORIZED
from legalai_engine.core.errors import (
    ChannelAuthError,
    ChannelConnectionError,
    ExhaustedRetriesError,
)
from legalai_engine.core.events import encode_frame


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeConnection:
    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, text):
        self.sent.append(text)

    async def recv(self):
        item = await self._incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True

    def push(self, event, data=None):
        self._incoming.put_nowait(encode_frame(event, data))

    def push_raw(self, text):
        self._incoming.put_nowait(text)

    def drop(self, code=1006, reason=""):
        self._incoming.put_nowait(ChannelClosed(code, reason))


class FakeTransport:
    def __init__(self, fail=False, error=None):
        self.fail = fail
        self.error = error
        self.gate = None
        self.opens = []
        self.connections = []

    async def open(self, url, headers):
        self.opens.append(dict(headers))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.fail:
            raise ChannelConnectionError("connection refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn


class FakeHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class RecordingScheduler:
    def __init__(self):
        self.delays = []
        self.handles = []

    def __call__(self, delay, callback):
        handle = FakeHandle(callback)
        self.delays.append(delay)
        self.handles.append(handle)
        return handle

    def fire(self):
        handle = self.handles[-1]
        assert not handle.cancelled
        handle.callback()


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


def make_client(transport=None, attempts=3, delay=1.0, token=None, token_provider=None,
                **callbacks):
    scheduler = RecordingScheduler()
    client = EventChannelClient(
        ChannelOptions(url="ws://test/ws/events", reconnect_attempts=attempts,
                       reconnect_delay=delay, **callbacks),
        transport=transport or FakeTransport(),
        token_provider=token_provider or (lambda: token),
        call_later=scheduler,
    )
    return client, scheduler


# ======================================================================
# Connect / disconnect
# ======================================================================

class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_success_sets_state_and_header(self):
        connected = []
        transport = FakeTransport()
        client, _ = make_client(transport, token="abc", on_connect=lambda: connected.append(True))

        await client.connect()

        assert client.connected is True
        assert client.reconnect_attempt == 0
        assert client.error is None
        assert transport.opens == [{"Authorization": "Bearer abc"}]
        assert connected == [True]

    @pytest.mark.asyncio
    async def test_no_header_without_token(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        await client.connect()
        assert transport.opens == [{}]

    @pytest.mark.asyncio
    async def test_token_lookup_failure_schedules_retry(self):
        def missing_token():
            raise KeyError("LEGALAI_AUTH_TOKEN")

        errors = []
        transport = FakeTransport()
        client, scheduler = make_client(transport, token_provider=missing_token,
                                        on_error=errors.append)

        await client.connect()

        assert client.connecting is False
        assert client.connected is False
        assert isinstance(client.error, ChannelConnectionError)
        assert errors == [client.error]
        assert scheduler.delays == [1.0]
        assert transport.opens == []

    @pytest.mark.asyncio
    async def test_connect_twice_reuses_in_flight_attempt(self):
        transport = FakeTransport()
        transport.gate = asyncio.Event()
        client, _ = make_client(transport)

        first = client.connect()
        second = client.connect()
        assert first is second
        assert client.connecting is True

        transport.gate.set()
        await first
        assert client.connect() is None
        assert len(transport.opens) == 1

    @pytest.mark.asyncio
    async def test_disconnect_when_never_connected_is_safe(self):
        client, _ = make_client()
        client.disconnect()
        assert client.state.connected is False
        assert client.state.error is None

    @pytest.mark.asyncio
    async def test_disconnect_closes_and_resets(self):
        disconnected = []
        transport = FakeTransport()
        client, _ = make_client(transport, on_disconnect=lambda: disconnected.append(True))
        await client.connect()

        client.disconnect()
        await settle()

        assert transport.connections[0].closed is True
        assert client.connected is False
        assert client.reconnect_attempt == 0
        assert disconnected == [True]

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_reconnect(self):
        client, scheduler = make_client(FakeTransport(fail=True))
        await client.connect()
        assert client.has_pending_reconnect

        client.disconnect()

        assert scheduler.handles[-1].cancelled is True
        assert not client.has_pending_reconnect
        assert client.error is None


# ======================================================================
# Reconnection
# ======================================================================

class TestReconnect:

    def test_backoff_formula(self):
        assert [backoff_delay(1.0, n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]
        assert backoff_delay(0.5, 3) == 2.0

    @pytest.mark.asyncio
    async def test_failing_server_exhausts_retries(self):
        transport = FakeTransport(fail=True)
        errors = []
        client, scheduler = make_client(transport, attempts=3, on_error=errors.append)

        await client.connect()
        for _ in range(3):
            scheduler.fire()
            await settle()

        assert scheduler.delays == [1.0, 2.0, 4.0]
        assert len(transport.opens) == 4
        assert client.connected is False
        assert isinstance(client.error, ExhaustedRetriesError)
        assert client.error.attempts == 3
        assert client.reconnect_attempt == 3
        assert not client.has_pending_reconnect
        assert isinstance(errors[-1], ExhaustedRetriesError)

    @pytest.mark.asyncio
    async def test_manual_connect_after_exhaustion_starts_fresh(self):
        transport = FakeTransport(fail=True)
        client, scheduler = make_client(transport, attempts=1)
        await client.connect()
        scheduler.fire()
        await settle()
        assert isinstance(client.error, ExhaustedRetriesError)

        transport.fail = False
        await client.connect()
        assert client.connected is True
        assert client.error is None

    @pytest.mark.asyncio
    async def test_unexpected_close_reconnects_and_keeps_handlers(self):
        transport = FakeTransport()
        received = []
        reconnects = []
        client, scheduler = make_client(transport, on_reconnect=reconnects.append)
        client.on("training:progress", received.append)
        await client.connect()

        transport.connections[0].drop()
        await settle()
        assert client.connected is False
        assert client.reconnect_attempt == 1
        assert scheduler.delays == [1.0]

        scheduler.fire()
        await settle()
        assert client.connected is True
        assert client.reconnect_attempt == 0
        assert reconnects == [1]

        transport.connections[1].push("training:progress", {"epoch": 1})
        await settle()
        assert received == [{"epoch": 1}]


# ======================================================================
# Events
# ======================================================================

class TestEvents:

    @pytest.mark.asyncio
    async def test_emit_when_disconnected_returns_false(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        assert client.emit("training:start", {"config": {}}) is False

    @pytest.mark.asyncio
    async def test_emit_sends_json_frame(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        await client.connect()

        assert client.emit("training:stop", {"modelId": "m1"}) is True
        await settle()

        sent = transport.connections[0].sent
        assert [json.loads(s) for s in sent] == [{"event": "training:stop", "data": {"modelId": "m1"}}]

    @pytest.mark.asyncio
    async def test_handlers_are_not_duplicated(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        received = []
        client.on("training:metrics", received.append)
        client.on("training:metrics", received.append)
        assert client.handler_count("training:metrics") == 1

        await client.connect()
        transport.connections[0].push("training:metrics", {"epoch": 2})
        await settle()
        assert received == [{"epoch": 2}]

    @pytest.mark.asyncio
    async def test_unsubscribe_and_off(self):
        client, _ = make_client()
        a, b = [], []
        unsubscribe = client.on("x", a.append)
        client.on("x", b.append)

        unsubscribe()
        assert client.handler_count("x") == 1
        client.off("x")
        assert client.handler_count("x") == 0

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_stop_dispatch(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        received = []

        def broken(_data):
            raise ValueError("bad handler")

        client.on("training:progress", broken)
        client.on("training:progress", received.append)
        await client.connect()

        transport.connections[0].push("training:progress", {"epoch": 1})
        await settle()
        assert received == [{"epoch": 1}]
        assert client.connected is True

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        received = []
        client.on("training:progress", received.append)
        await client.connect()

        transport.connections[0].push_raw("not json")
        transport.connections[0].push_raw(json.dumps([1, 2]))
        transport.connections[0].push("training:progress", {"epoch": 3})
        await settle()
        assert received == [{"epoch": 3}]


# ======================================================================
# Authentication failures
# ======================================================================

class TestAuthFailure:

    @pytest.mark.asyncio
    async def test_rejected_handshake_does_not_retry(self):
        failures = []
        client, scheduler = make_client(FakeTransport(error=ChannelAuthError("HTTP 403")))
        client.on(EVENT_AUTH_FAILED, failures.append)

        await client.connect()

        assert isinstance(client.error, ChannelAuthError)
        assert client.connected is False
        assert scheduler.delays == []
        assert len(failures) == 1

    @pytest.mark.asyncio
    async def test_unauthorized_close_code_does_not_retry(self):
        transport = FakeTransport()
        client, scheduler = make_client(transport)
        await client.connect()

        transport.connections[0].drop(WS_CLOSE_UNAUTHORIZED, "Unauthorized")
        await settle()

        assert isinstance(client.error, ChannelAuthError)
        assert scheduler.delays == []

    @pytest.mark.asyncio
    async def test_auth_failed_frame_disconnects(self):
        transport = FakeTransport()
        client, scheduler = make_client(transport)
        failures = []
        client.on(EVENT_AUTH_FAILED, failures.append)
        await client.connect()

        transport.connections[0].push(EVENT_AUTH_FAILED, {"error": "Token expired"})
        await settle()

        assert failures == [{"error": "Token expired"}]
        assert client.connected is False
        assert "Token expired" in str(client.error)
        assert scheduler.delays == []


# ======================================================================
# Environment reactions
# ======================================================================

class TestEnvironment:

    @pytest.mark.asyncio
    async def test_hidden_disconnects_and_visible_reconnects(self):
        transport = FakeTransport()
        client, _ = make_client(transport)
        await client.connect()

        client.set_visibility(True)
        await settle()
        assert client.connected is False
        assert transport.connections[0].closed is True

        client.set_visibility(False)
        await settle()
        assert client.connected is True
        assert len(transport.opens) == 2

    @pytest.mark.asyncio
    async def test_pending_retry_waits_while_hidden(self):
        transport = FakeTransport(fail=True)
        reconnects = []
        client, scheduler = make_client(transport, on_reconnect=reconnects.append)
        await client.connect()
        assert client.has_pending_reconnect

        client.set_visibility(True)
        scheduler.fire()
        await settle()
        assert len(transport.opens) == 1
        assert reconnects == []
        assert not client.has_pending_reconnect

        transport.fail = False
        client.set_visibility(False)
        await settle()
        assert client.connected is True
        assert len(transport.opens) == 2

    @pytest.mark.asyncio
    async def test_offline_suppresses_retries_and_online_reconnects_now(self):
        transport = FakeTransport(fail=True)
        client, scheduler = make_client(transport)
        await client.connect()
        assert client.has_pending_reconnect

        client.set_online(False)
        assert scheduler.handles[-1].cancelled is True
        assert str(client.error) == "Network offline"
        assert not client.has_pending_reconnect

        transport.fail = False
        client.set_online(True)
        await settle()
        assert client.connected is True
        assert scheduler.delays == [1.0]

    @pytest.mark.asyncio
    async def test_state_listeners_see_transitions(self):
        states = []
        client, _ = make_client(FakeTransport())
        unsubscribe = client.on_state(states.append)

        await client.connect()
        unsubscribe()
        client.disconnect()

        assert [s.connecting for s in states] == [True, False]
        assert states[-1].connected is True
