"""Shared test doubles: an in-memory WebSocket and a scripted Chrome page."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest


class FakeWebSocket:
    """Stand-in for a websockets client connection.

    Frames sent by the client are recorded in `sent`; frames queued with
    feed() are delivered to the client's receive loop. end() simulates
    Chrome closing the socket.
    """

    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.state = MagicMock()
        self.state.name = "OPEN"
        self.close_calls = 0

    async def send(self, message):
        frame = json.loads(message)
        self.sent.append(frame)
        self.on_send(frame)

    def on_send(self, frame):
        pass

    def feed(self, payload):
        self.incoming.put_nowait(json.dumps(payload))

    def end(self):
        self.state.name = "CLOSED"
        self.incoming.put_nowait(None)

    async def close(self):
        self.close_calls += 1
        self.end()

    def methods(self):
        return [frame["method"] for frame in self.sent]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            message = await self.incoming.get()
            if message is None:
                return
            yield message


class FakeBrowser(FakeWebSocket):
    """FakeWebSocket that answers every command like a page target would.

    Attributes:
        responses: method -> result dict, or callable(params) -> result dict
        errors: method -> CDP error object returned instead of a result
        navigate_result: result for Page.navigate
        navigate_events: events emitted right after Page.navigate is answered
        navigate_delay: seconds before Page.navigate is answered
    """

    def __init__(self):
        super().__init__()
        self.responses = {}
        self.errors = {}
        self.navigate_result = {"frameId": "F1", "loaderId": "L1"}
        self.navigate_events = [{"method": "Page.loadEventFired", "params": {"timestamp": 1.0}}]
        self.navigate_delay = 0

    def on_send(self, frame):
        method = frame["method"]
        if method in self.errors:
            self.feed({"id": frame["id"], "error": self.errors[method]})
            return
        if method == "Page.navigate":
            if self.navigate_delay:
                asyncio.get_running_loop().call_later(self.navigate_delay, self._answer_navigate, frame)
            else:
                self._answer_navigate(frame)
            return
        result = self.responses.get(method, {})
        if callable(result):
            result = result(frame.get("params", {}))
        self.feed({"id": frame["id"], "result": result})

    def _answer_navigate(self, frame):
        self.feed({"id": frame["id"], "result": self.navigate_result})
        for event in self.navigate_events:
            self.feed(event)

    def params_for(self, method):
        for frame in self.sent:
            if frame["method"] == method:
                return frame.get("params", {})
        raise AssertionError(f"{method} was never sent")


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def serve_websocket():
    """Patch websockets.connect so CDPConnection talks to the given fake."""
    patchers = []

    def _serve(ws):
        async def async_connect(*args, **kwargs):
            return ws

        patcher = patch("pagevitals.connection.websockets.connect", side_effect=async_connect)
        mock_connect = patcher.start()
        patchers.append(patcher)
        return mock_connect

    yield _serve

    for patcher in patchers:
        patcher.stop()
