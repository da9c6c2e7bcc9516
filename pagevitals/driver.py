"""
Page driver - one throttled, instrumented page load.

Stages run strictly in order with no retries:
enable domains -> install instrumentation -> emulation -> start coverage ->
navigate -> load event -> settle -> snapshot. Any failure aborts the
measurement of that URL.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, TypedDict

from .collectors.scripts import ScriptCollector
from .config import Configuration
from .connection import CDPConnection
from .coverage import analyze_coverage, origin_of
from .exceptions import CommandFailedError, EvaluationError
from .instrumentation import OBSERVER_SCRIPT, SNAPSHOT_EXPRESSION
from .logging_setup import log_with_context
from .metrics import MetricsSummary, build_summary
from .session import CDPSession

logger = logging.getLogger(__name__)


class EmulationProfile:
    """Device, CPU and network conditions applied before navigation.

    Defaults describe a mid-range phone on a slow cellular connection.
    """

    def __init__(
        self,
        *,
        user_agent: str = (
            "Mozilla/5.0 (Linux; Android 12; Pixel 5) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/122.0.0.0 Mobile Safari/537.36"
        ),
        platform: str = "Android",
        accept_language: str = "en-US,en",
        width: int = 390,
        height: int = 844,
        device_scale_factor: float = 3,
        mobile: bool = True,
        cpu_throttle: float = 4.0,
        latency_ms: float = 150,
        download_kbps: float = 1.6 * 1024,
        upload_kbps: float = 750,
        connection_type: str = "cellular3g",
    ):
        self.user_agent = user_agent
        self.platform = platform
        self.accept_language = accept_language
        self.width = width
        self.height = height
        self.device_scale_factor = device_scale_factor
        self.mobile = mobile
        self.cpu_throttle = cpu_throttle
        self.latency_ms = latency_ms
        self.download_kbps = download_kbps
        self.upload_kbps = upload_kbps
        self.connection_type = connection_type

    def user_agent_params(self) -> dict:
        return {
            "userAgent": self.user_agent,
            "platform": self.platform,
            "acceptLanguage": self.accept_language,
        }

    def device_metrics_params(self) -> dict:
        return {
            "mobile": self.mobile,
            "width": self.width,
            "height": self.height,
            "deviceScaleFactor": self.device_scale_factor,
            "screenOrientation": {
                "type": "portraitPrimary" if self.height >= self.width else "landscapePrimary",
                "angle": 0,
            },
        }

    def network_params(self) -> dict:
        # Throughput is in bytes per second
        return {
            "offline": False,
            "latency": self.latency_ms,
            "downloadThroughput": self.download_kbps * 1024 / 8,
            "uploadThroughput": self.upload_kbps * 1024 / 8,
            "connectionType": self.connection_type,
        }


class PageSnapshot(TypedDict):
    coverage: List[dict]
    pageData: Dict[str, Any]


class PageDriver:
    """
    Sequences the CDP calls for one measurement on an open connection.

    Usage:
        async with CDPConnection(ws_url) as conn:
            driver = PageDriver(conn, EmulationProfile())
            snapshot = await driver.run("https://example.com")
            scripts = driver.scripts.scripts

    Attributes:
        connection: Active CDP connection to a page target
        profile: Emulation profile applied before navigation
        settle_seconds: Delay between load event and snapshot
        load_timeout: Seconds to wait for Page.loadEventFired
        scripts: ScriptCollector filled while the page loads
    """

    NETWORK_BUFFERS = {
        "maxResourceBufferSize": 20 * 1024 * 1024,
        "maxTotalBufferSize": 40 * 1024 * 1024,
    }

    def __init__(
        self,
        connection: CDPConnection,
        profile: Optional[EmulationProfile] = None,
        *,
        settle_seconds: float = 2.5,
        load_timeout: float = 30.0,
    ):
        self.connection = connection
        self.profile = profile or EmulationProfile()
        self.settle_seconds = settle_seconds
        self.load_timeout = load_timeout
        self.scripts = ScriptCollector(connection)

    async def run(self, url: str) -> PageSnapshot:
        """Drive one page load and return the raw snapshot."""
        await self._stage(url, "enable", self.enable_domains())
        await self._stage(url, "instrument", self.install_instrumentation())
        await self._stage(url, "emulate", self.apply_emulation())
        await self._stage(url, "coverage", self.start_coverage())
        await self._stage(url, "navigate", self.navigate(url))
        await self._stage(url, "settle", asyncio.sleep(self.settle_seconds))
        snapshot = await self._stage(url, "snapshot", self.snapshot())
        await self.scripts.stop()
        return snapshot

    async def _stage(self, url: str, stage: str, step):
        log_with_context(logger, logging.DEBUG, f"Stage {stage}", url=url, stage=stage)
        return await step

    async def enable_domains(self) -> None:
        send = self.connection.execute_command
        await send("Page.enable")
        await send("Runtime.enable")
        await send("Network.enable", dict(self.NETWORK_BUFFERS))
        await send("Performance.enable")
        await self.scripts.start()
        await send("Profiler.enable")
        # Byte-size metrics assume every response comes from the network
        await send("Network.setCacheDisabled", {"cacheDisabled": True})
        await send("Network.setBypassServiceWorker", {"bypass": True})

    async def install_instrumentation(self) -> None:
        await self.connection.execute_command(
            "Page.addScriptToEvaluateOnNewDocument", {"source": OBSERVER_SCRIPT}
        )

    async def apply_emulation(self) -> None:
        send = self.connection.execute_command
        profile = self.profile
        await send("Emulation.setUserAgentOverride", profile.user_agent_params())
        await send("Emulation.setDeviceMetricsOverride", profile.device_metrics_params())
        await send("Emulation.setCPUThrottlingRate", {"rate": profile.cpu_throttle})
        await send("Network.emulateNetworkConditions", profile.network_params())

    async def start_coverage(self) -> None:
        await self.connection.execute_command(
            "Profiler.startPreciseCoverage", {"callCount": False, "detailed": True}
        )

    async def navigate(self, url: str) -> None:
        """Navigate and wait for the load event.

        Raises:
            CommandFailedError: If Chrome reports a navigation error
            CDPTimeoutError: If the load event does not fire within load_timeout
        """
        load_event = self.connection.wait_for_event("Page.loadEventFired", timeout=self.load_timeout)
        try:
            result = await self.connection.execute_command("Page.navigate", {"url": url})
        except BaseException:
            load_event.cancel()
            raise

        if result.get("errorText"):
            load_event.cancel()
            raise CommandFailedError(
                f"Navigation to {url} failed: {result['errorText']}",
                method="Page.navigate",
                details={"url": url},
            )

        await load_event

    async def snapshot(self) -> PageSnapshot:
        """Collect coverage and the in-page state.

        Raises:
            EvaluationError: If the snapshot expression throws in the page
        """
        send = self.connection.execute_command
        coverage = await send("Profiler.takePreciseCoverage")
        await send("Profiler.stopPreciseCoverage")

        evaluated = await send(
            "Runtime.evaluate", {"expression": SNAPSHOT_EXPRESSION, "returnByValue": True}
        )
        if evaluated.get("exceptionDetails"):
            details = evaluated["exceptionDetails"]
            description = (details.get("exception") or {}).get("description") or details.get("text", "")
            raise EvaluationError(
                f"Snapshot evaluation failed: {description}",
                method="Runtime.evaluate",
            )

        page_data = (evaluated.get("result") or {}).get("value") or {}
        return {"coverage": coverage.get("result") or [], "pageData": page_data}

    async def load_script_source(self, script_id: str) -> str:
        result = await self.connection.execute_command(
            "Debugger.getScriptSource", {"scriptId": script_id}
        )
        return result.get("scriptSource") or ""


async def measure_url(
    session: CDPSession,
    url: str,
    config: Configuration,
    profile: Optional[EmulationProfile] = None,
) -> MetricsSummary:
    """
    Measure one URL on a fresh connection to a page target.

    The first existing page target is reused for every URL; only the
    WebSocket is new. The driver re-applies all domain, emulation and
    coverage state on each connection.

    The connection is closed before returning, whether or not the
    measurement succeeded.
    """
    if profile is None:
        profile = EmulationProfile(cpu_throttle=config.cpu_throttle)

    target = session.first_page_target()
    log_with_context(logger, logging.INFO, f"Measuring {url}", url=url, target=target.id)

    async with session.connect_to_target(target, max_size=config.max_size) as conn:
        driver = PageDriver(
            conn,
            profile,
            settle_seconds=config.settle_seconds,
            load_timeout=config.load_timeout,
        )
        snapshot = await driver.run(url)
        totals = await analyze_coverage(
            snapshot["coverage"],
            driver.scripts.scripts,
            origin_of(url),
            driver.load_script_source,
        )

    log_with_context(logger, logging.DEBUG, "Coverage analyzed", url=url, totals=repr(totals))
    return build_summary(url, snapshot["pageData"], totals)
