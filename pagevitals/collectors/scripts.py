"""
Script collector - records ScriptMeta for every script Chrome parses.

Coverage for a script can only be attributed to an origin once its
Debugger.scriptParsed event has been seen, so the collector is started
before navigation.
"""

import logging
from typing import Dict, Optional, TypedDict

from ..connection import CDPConnection

logger = logging.getLogger(__name__)


class ScriptMeta(TypedDict):
    """Source URL and byte length of one parsed script."""
    url: str
    length: Optional[int]


class ScriptCollector:
    """
    Tracks Debugger.scriptParsed events for one page target.

    Usage:
        async with ScriptCollector(conn) as scripts:
            ...  # navigate
            meta = scripts.scripts.get(script_id)

    Attributes:
        connection: Active CDP connection
        scripts: scriptId -> ScriptMeta
    """

    def __init__(self, connection: CDPConnection):
        self.connection = connection
        self.scripts: Dict[str, ScriptMeta] = {}
        self._running = False

    async def start(self):
        """
        Subscribe to Debugger.scriptParsed and enable the Debugger domain.

        The subscription is registered first so scripts reported by
        Debugger.enable itself are not missed.

        Raises:
            CDPError: If Debugger.enable command fails
        """
        self.connection.subscribe("Debugger.scriptParsed", self._on_script_parsed)
        self._running = True
        await self.connection.execute_command("Debugger.enable")

    async def stop(self):
        if not self._running:
            return
        self._running = False
        self.connection.unsubscribe("Debugger.scriptParsed", self._on_script_parsed)

    def _on_script_parsed(self, params: dict) -> None:
        script_id = params.get("scriptId")
        if script_id is None:
            return
        length = params.get("length")
        self.scripts[script_id] = {
            "url": params.get("url") or "",
            "length": length if isinstance(length, int) else None,
        }

    def get(self, script_id: str) -> Optional[ScriptMeta]:
        return self.scripts.get(script_id)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False
