"""CDP WebSocket connection management.

Provides CDPConnection: one persistent WebSocket to a page target that
correlates commands with their responses by id, fans events out to
persistent subscribers, and hands each event to the oldest one-shot waiter
registered for it.
"""

import asyncio
import json
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Generator, List, Optional, Set, Union

import websockets
from websockets.exceptions import ConnectionClosed

from .exceptions import (
    CDPTimeoutError,
    CommandFailedError,
    ConnectionClosedError,
    ConnectionFailedError,
    InvalidCommandError,
)

logger = logging.getLogger(__name__)

# Chrome rejects ids outside the signed 32-bit range
MAX_COMMAND_ID = 2**31 - 1

EventHandler = Callable[[dict], Union[None, Awaitable[None]]]


class EventWaiter:
    """One-shot wait for the next occurrence of a CDP event.

    The waiter is queued on the connection as soon as it is created, so it can
    be armed before the command that triggers the event is sent. The timeout
    also starts at creation: once it elapses the waiter leaves the queue and
    awaiting it raises CDPTimeoutError, even if the event arrives later.
    Await it to get the event params; cancel() withdraws it without waiting.
    """

    def __init__(self, connection: "CDPConnection", method: str, timeout: Optional[float]):
        self.connection = connection
        self.method = method
        self.timeout = timeout
        loop = asyncio.get_running_loop()
        self._future: asyncio.Future = loop.create_future()
        self._timer: Optional[asyncio.TimerHandle] = None
        if timeout is not None:
            timer = loop.call_later(timeout, self._expire)
            self._future.add_done_callback(lambda _: timer.cancel())
            self._timer = timer
        connection._event_waiters.setdefault(method, deque()).append(self._future)

    def __await__(self) -> Generator[Any, None, dict]:
        return self._wait().__await__()

    async def _wait(self) -> dict:
        try:
            return await self._future
        finally:
            self.cancel()

    def _expire(self) -> None:
        self._dequeue()
        if not self._future.done():
            self._future.set_exception(
                CDPTimeoutError(
                    f"Timeout waiting for {self.method}",
                    command_method=self.method,
                    timeout=self.timeout,
                )
            )

    def _dequeue(self) -> None:
        queue = self.connection._event_waiters.get(self.method)
        if queue is None:
            return
        try:
            queue.remove(self._future)
        except ValueError:
            pass
        if not queue:
            del self.connection._event_waiters[self.method]

    def cancel(self) -> None:
        """Remove this waiter from the connection's queue."""
        self._dequeue()
        if self._timer is not None:
            self._timer.cancel()
        if not self._future.done():
            self._future.cancel()
        elif not self._future.cancelled():
            # Mark an expiry or connection failure as retrieved
            self._future.exception()


class CDPConnection:
    """Manages WebSocket connection to a Chrome DevTools Protocol endpoint.

    Handles:
    - Connection lifecycle (connect, close, context manager)
    - Command execution, matched to responses strictly by id
    - Persistent event subscriptions
    - One-shot event waits with timeout

    Usage:
        async with CDPConnection(ws_url) as conn:
            load = conn.wait_for_event("Page.loadEventFired", timeout=30)
            await conn.execute_command("Page.navigate", {"url": url})
            await load

    Attributes:
        ws_url: WebSocket debugger URL
        max_size: Maximum WebSocket message size in bytes (coverage payloads)
    """

    def __init__(self, ws_url: str, *, max_size: int = 64 * 1024 * 1024):
        """Initialize CDP connection.

        Args:
            ws_url: WebSocket debugger URL (e.g., ws://127.0.0.1:9222/devtools/page/ABC123)
            max_size: Maximum WebSocket message size in bytes
        """
        if not ws_url.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URL: {ws_url}")

        self.ws_url = ws_url
        self.max_size = max_size

        self._ws: Optional[Any] = None
        self._next_command_id: int = 1
        self._pending_commands: Dict[int, asyncio.Future] = {}
        self._event_handlers: Dict[str, List[EventHandler]] = {}
        self._event_waiters: Dict[str, Deque[asyncio.Future]] = {}
        self._handler_tasks: Set[asyncio.Task] = set()
        self._receive_task: Optional[asyncio.Task] = None
        self._is_connected: bool = False
        self._closed: bool = False

    @property
    def is_connected(self) -> bool:
        """Check if WebSocket connection is active."""
        if not self._is_connected or self._ws is None:
            return False
        try:
            return self._ws.state.name == "OPEN"
        except AttributeError:
            return not getattr(self._ws, "closed", True)

    async def connect(self) -> None:
        """Establish WebSocket connection and start receive loop.

        Raises:
            ConnectionFailedError: If WebSocket connection fails
        """
        try:
            logger.debug(f"Connecting to {self.ws_url}")
            self._ws = await websockets.connect(self.ws_url, max_size=self.max_size)
        except Exception as e:
            raise ConnectionFailedError(
                f"Failed to connect to {self.ws_url}: {e}",
                details={"url": self.ws_url, "error": str(e)},
            ) from e

        self._is_connected = True
        self._closed = False
        self._receive_task = asyncio.create_task(self._receive_loop())
        logger.debug("CDP connection established")

    async def close(self) -> None:
        """Close the connection. Safe to call more than once; never raises."""
        if self._closed:
            return
        self._closed = True
        self._is_connected = False

        if self._receive_task and not self._receive_task.done():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Receive loop ended with error during close: {e}")

        if self._ws is not None:
            try:
                if getattr(getattr(self._ws, "state", None), "name", None) != "CLOSED":
                    await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")

        self._fail_outstanding(ConnectionClosedError("Connection closed"))
        logger.debug("CDP connection closed")

    async def __aenter__(self) -> "CDPConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def execute_command(self, method: str, params: Optional[dict] = None) -> dict:
        """Send a CDP command and wait for its response.

        There is no timeout: a sent command is only abandoned when the
        connection goes away.

        Args:
            method: CDP method name (e.g., "Runtime.evaluate", "Page.enable")
            params: Method parameters (default: empty dict)

        Returns:
            Command result dict (contents of "result" field in response)

        Raises:
            InvalidCommandError: If method is empty
            ConnectionClosedError: If connection is not active or drops
            CommandFailedError: If Chrome returns error response
        """
        if not method:
            raise InvalidCommandError("Command method must be a non-empty string", method=method)
        if not self.is_connected:
            raise ConnectionClosedError(f"Cannot execute {method}: connection not active")

        cmd_id = self._allocate_id()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending_commands[cmd_id] = future

        message = json.dumps({"id": cmd_id, "method": method, "params": params or {}})

        try:
            await self._ws.send(message)
            logger.debug(f"Sent command {cmd_id}: {method}")
            return await future
        except ConnectionClosed as e:
            raise ConnectionClosedError(
                f"Connection closed while sending {method}: {e}"
            ) from e
        except CommandFailedError as e:
            e.method = method
            raise
        finally:
            self._pending_commands.pop(cmd_id, None)

    def subscribe(self, event_name: str, callback: EventHandler) -> None:
        """Register a persistent callback for a CDP event.

        Callbacks receive the event params and may be plain functions or
        coroutine functions; coroutines are run as background tasks.
        """
        self._event_handlers.setdefault(event_name, []).append(callback)
        logger.debug(f"Subscribed to event: {event_name}")

    def unsubscribe(self, event_name: str, callback: EventHandler) -> None:
        """Remove event callback."""
        handlers = self._event_handlers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(callback)
        except ValueError:
            logger.warning(f"Callback not found for event: {event_name}")
        if not handlers:
            del self._event_handlers[event_name]

    def wait_for_event(self, event_name: str, timeout: Optional[float] = 30.0) -> EventWaiter:
        """Arm a one-shot wait for the next occurrence of an event.

        Waiters for the same event are served in the order they were armed.

        Args:
            event_name: CDP event name (e.g., "Page.loadEventFired")
            timeout: Seconds to wait once awaited (None waits indefinitely)

        Returns:
            EventWaiter; awaiting it yields the event params

        Raises:
            ConnectionClosedError: If connection is not active
            CDPTimeoutError: When awaited and the event does not arrive in time
        """
        if not self.is_connected:
            raise ConnectionClosedError(f"Cannot wait for {event_name}: connection not active")
        return EventWaiter(self, event_name, timeout)

    def _allocate_id(self) -> int:
        cmd_id = self._next_command_id
        while cmd_id in self._pending_commands:
            cmd_id = cmd_id + 1 if cmd_id < MAX_COMMAND_ID else 1
        self._next_command_id = cmd_id + 1 if cmd_id < MAX_COMMAND_ID else 1
        return cmd_id

    async def _receive_loop(self) -> None:
        """Background task routing incoming frames until the socket closes."""
        try:
            async for message in self._ws:
                self._handle_message(message)
        except ConnectionClosed as e:
            logger.warning(f"WebSocket connection closed: {e}")
        except Exception as e:
            logger.error(f"Receive loop error: {e}", exc_info=True)
        finally:
            self._is_connected = False
            self._fail_outstanding(ConnectionClosedError("Connection closed by browser"))

    def _handle_message(self, message: Union[str, bytes]) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Malformed CDP message: {e}")
            return

        if "id" in data:
            self._resolve_command(data)
        elif "method" in data:
            self._dispatch_event(data["method"], data.get("params", {}))

    def _resolve_command(self, data: dict) -> None:
        cmd_id = data["id"]
        future = self._pending_commands.pop(cmd_id, None)
        if future is None or future.done():
            logger.debug(f"Dropping response for unknown command id {cmd_id}")
            return

        if "error" in data:
            error = data["error"]
            future.set_exception(
                CommandFailedError(
                    error.get("message", "Unknown CDP error"),
                    error_code=error.get("code"),
                    details={"error": error},
                )
            )
        else:
            future.set_result(data.get("result", {}))

    def _dispatch_event(self, event_name: str, params: dict) -> None:
        for handler in list(self._event_handlers.get(event_name, [])):
            try:
                result = handler(params)
                if asyncio.iscoroutine(result):
                    task = asyncio.create_task(result)
                    self._handler_tasks.add(task)
                    task.add_done_callback(self._on_handler_done)
            except Exception as e:
                logger.error(f"Event handler error for {event_name}: {e}", exc_info=True)

        queue = self._event_waiters.get(event_name)
        while queue:
            future = queue.popleft()
            if not future.done():
                future.set_result(params)
                break
        if queue is not None and not queue:
            del self._event_waiters[event_name]

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Event handler error: {task.exception()}")

    def _fail_outstanding(self, error: Exception) -> None:
        for future in self._pending_commands.values():
            if not future.done():
                future.set_exception(error)
        self._pending_commands.clear()

        for queue in self._event_waiters.values():
            for future in queue:
                if not future.done():
                    future.set_exception(error)
        self._event_waiters.clear()
