"""
Browser introspection over Chrome's HTTP debugging endpoint.

Covers the bounded readiness poll on /json/version and page-target
discovery on /json/list.
"""

import asyncio
import json
import logging
import urllib.request
import urllib.error
from typing import List, Optional, Dict, Any

from .connection import CDPConnection
from .exceptions import CDPError, CDPTargetNotFoundError, DebuggerNotReadyError

logger = logging.getLogger(__name__)


class Target:
    """
    Represents a debuggable Chrome target (page, iframe, worker, ...).

    Attributes:
        id: Unique target ID
        type: Target type ("page", "iframe", "worker", "service_worker", "browser")
        title: Page title or worker name
        url: Target URL
        webSocketDebuggerUrl: CDP WebSocket URL for this target (empty when
            another client is already attached)
    """

    def __init__(self, target_data: Dict[str, Any]):
        self.id = target_data["id"]
        self.type = target_data["type"]
        self.title = target_data.get("title", "")
        self.url = target_data.get("url", "")
        self.webSocketDebuggerUrl = target_data.get("webSocketDebuggerUrl", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "url": self.url,
            "webSocketDebuggerUrl": self.webSocketDebuggerUrl,
        }

    def __repr__(self):
        return f"Target(id={self.id!r}, type={self.type!r}, url={self.url!r})"


class CDPSession:
    """
    Access to one Chrome instance's HTTP debugging endpoint.

    Usage:
        session = CDPSession(chrome_port=9222)
        version = await session.wait_for_debugger()
        target = session.first_page_target()
        async with session.connect_to_target(target) as conn:
            ...

    Attributes:
        chrome_host: Chrome host (default: "127.0.0.1")
        chrome_port: Chrome debugging port (default: 9222)
        timeout: HTTP request timeout per call (default: 2s)
    """

    def __init__(
        self,
        chrome_host: str = "127.0.0.1",
        chrome_port: int = 9222,
        timeout: float = 2.0,
    ):
        if not 1 <= chrome_port <= 65535:
            raise ValueError(f"chrome_port must be 1-65535, got {chrome_port}")

        self.chrome_host = chrome_host
        self.chrome_port = chrome_port
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return f"http://{self.chrome_host}:{self.chrome_port}"

    def _fetch_json(self, path: str) -> Any:
        endpoint_url = f"{self.base_url}{path}"
        try:
            with urllib.request.urlopen(endpoint_url, timeout=self.timeout) as response:
                return json.loads(response.read())
        except (urllib.error.URLError, OSError) as e:
            raise CDPError(
                f"Failed to reach Chrome at {endpoint_url}: {e}",
                details={"endpoint": endpoint_url},
            ) from e
        except json.JSONDecodeError as e:
            raise CDPError(
                f"Invalid JSON response from Chrome endpoint: {e}",
                details={"endpoint": endpoint_url},
            ) from e

    def get_version(self) -> Dict[str, Any]:
        """Fetch /json/version (browser name, protocol version, WebSocket URL)."""
        return self._fetch_json("/json/version")

    async def wait_for_debugger(
        self, max_attempts: int = 40, interval: float = 0.25
    ) -> Dict[str, Any]:
        """
        Poll /json/version until it reports a webSocketDebuggerUrl.

        Args:
            max_attempts: Number of polls before giving up
            interval: Seconds between polls

        Returns:
            The /json/version payload

        Raises:
            DebuggerNotReadyError: If no poll succeeded within max_attempts
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            try:
                data = self.get_version()
                if isinstance(data, dict) and data.get("webSocketDebuggerUrl"):
                    logger.debug(f"Debugger ready after {attempt} attempt(s)")
                    return data
            except CDPError as e:
                last_error = e
                logger.debug(f"Debugger not ready (attempt {attempt}/{max_attempts}): {e}")
            await asyncio.sleep(interval)

        raise DebuggerNotReadyError(
            "Chrome debugger endpoint did not become ready",
            attempts=max_attempts,
            details={
                "endpoint": f"{self.base_url}/json/version",
                "last_error": str(last_error) if last_error else "no webSocketDebuggerUrl",
            },
        )

    def list_targets(self, target_type: Optional[str] = None) -> List[Target]:
        """
        Fetch targets from /json/list, optionally filtered by type.

        Raises:
            CDPError: If HTTP endpoint is unreachable or returns invalid data
        """
        targets = [Target(data) for data in self._fetch_json("/json/list")]
        if target_type:
            targets = [t for t in targets if t.type == target_type]
        return targets

    def first_page_target(self) -> Target:
        """
        Select the first page target that accepts a debugger connection.

        Raises:
            CDPTargetNotFoundError: If no such target exists
        """
        for target in self.list_targets(target_type="page"):
            if target.webSocketDebuggerUrl:
                return target

        raise CDPTargetNotFoundError(
            "No debuggable page target found in Chrome",
            details={"endpoint": f"{self.base_url}/json/list"},
        )

    def connect_to_target(self, target: Target, max_size: int = 64 * 1024 * 1024) -> CDPConnection:
        """
        Create CDPConnection for given target.

        Returns:
            CDPConnection instance (not yet connected - call connect() or use as context manager)
        """
        if not target.webSocketDebuggerUrl:
            raise CDPError(
                f"Target {target.id} has no WebSocket debugger URL",
                details={"target": target.to_dict()},
            )

        return CDPConnection(target.webSocketDebuggerUrl, max_size=max_size)
