"""
Integration tests for the page-vitals CLI.

Argument handling runs the real entry point in a subprocess; the
measurement loop runs in-process with the browser and page layers mocked.
"""

import json
import logging
import subprocess
import sys
import pytest
from unittest.mock import AsyncMock, patch

from pagevitals.cli.main import create_parser, main
from pagevitals.config import Configuration
from pagevitals.exceptions import BrowserLaunchError, CommandFailedError, DebuggerNotReadyError


def run_cli(*args):
    """
    Helper to run CLI command and capture output.

    Returns:
        Tuple of (returncode, stdout, stderr)
    """
    cmd = [sys.executable, "-m", "pagevitals.cli.main"] + list(args)
    result = subprocess.run(cmd, capture_output=True, text=True)
    return result.returncode, result.stdout, result.stderr


def summary_for(url):
    return {"url": url, "fcpMs": 400, "lcpMs": 900, "tbtMs": 0, "cls": 0,
            "lcpSelector": None, "totalJsTransferKB": 0, "firstPartyJsTransferKB": 0,
            "coveredScriptKB": 0, "unusedScriptKB": 0, "firstPartyUnusedScriptKB": 0,
            "renderBlockingCss": []}


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """No config file, no env overrides, and logging restored afterwards."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in Configuration.ENV_MAPPINGS:
        monkeypatch.delenv(name, raising=False)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("pagevitals").setLevel(logging.NOTSET)


@pytest.fixture
def browser_stack():
    """Patch Chrome launch, readiness polling and per-URL measurement."""
    with patch("pagevitals.cli.main.ChromeLauncher") as launcher_cls, \
            patch("pagevitals.cli.main.CDPSession") as session_cls, \
            patch("pagevitals.cli.main.measure_url", new_callable=AsyncMock) as measure:
        session_cls.return_value.wait_for_debugger = AsyncMock(
            return_value={"Browser": "HeadlessChrome/122.0.0.0"}
        )

        async def measure_ok(session, url, config):
            return summary_for(url)

        measure.side_effect = measure_ok
        yield launcher_cls.return_value, session_cls.return_value, measure


@pytest.mark.integration
class TestCLIArguments:

    def test_help(self):
        returncode, stdout, stderr = run_cli("--help")

        assert returncode == 0
        assert "page-vitals" in stdout
        assert "--out" in stdout
        assert "--chrome-bin" in stdout
        assert "--settle-ms" in stdout
        assert "CHROME_BIN" in stdout

    def test_missing_url(self):
        returncode, stdout, stderr = run_cli()

        assert returncode == 2
        assert "url" in stderr

    def test_parser_defaults(self):
        args = create_parser().parse_args(["https://example.com"])

        assert args.urls == ["https://example.com"]
        assert args.out == "reports/perf/metrics.json"
        assert args.chrome_bin is None
        assert args.settle_ms is None

    def test_quiet_and_verbose_are_exclusive(self):
        with pytest.raises(SystemExit) as exc_info:
            create_parser().parse_args(["--quiet", "--verbose", "https://example.com"])
        assert exc_info.value.code == 2


@pytest.mark.integration
class TestMeasurementRun:

    def test_all_urls_succeed(self, tmp_path, browser_stack, capsys):
        launcher, session, measure = browser_stack
        out = tmp_path / "reports" / "metrics.json"

        code = main(["--quiet", "--chrome-bin", "/opt/chrome", "--out", str(out),
                     "https://example.com/", "https://example.com/about"])

        assert code == 0
        report = json.loads(out.read_text())
        assert report["browserBinaryPath"] == "/opt/chrome"
        assert [m["url"] for m in report["measurements"]] == [
            "https://example.com/", "https://example.com/about"
        ]
        launcher.start.assert_called_once()
        launcher.kill.assert_called_once()

        stdout = capsys.readouterr().out
        assert "URL: https://example.com/about" in stdout
        assert f"Saved report to {out}" in stdout

    def test_failed_url_is_skipped(self, tmp_path, browser_stack):
        launcher, session, measure = browser_stack

        async def measure_some(session, url, config):
            if "broken" in url:
                raise CommandFailedError("Navigation failed", method="Page.navigate")
            return summary_for(url)

        measure.side_effect = measure_some
        out = tmp_path / "metrics.json"

        code = main(["--quiet", "--out", str(out), "https://a.example/",
                     "https://broken.example/", "https://c.example/"])

        assert code == 1
        assert measure.await_count == 3
        report = json.loads(out.read_text())
        assert [m["url"] for m in report["measurements"]] == ["https://a.example/", "https://c.example/"]
        launcher.kill.assert_called_once()

    def test_settings_reach_measurement(self, tmp_path, browser_stack):
        launcher, session, measure = browser_stack

        main(["--quiet", "--settle-ms", "0", "--cpu-throttle", "1",
              "--out", str(tmp_path / "m.json"), "https://example.com/"])

        config = measure.await_args.args[2]
        assert config.settle_seconds == 0
        assert config.cpu_throttle == 1

    def test_launch_failure_writes_no_report(self, tmp_path, browser_stack, capsys):
        launcher, session, measure = browser_stack
        launcher.start.side_effect = BrowserLaunchError(
            "Port 9222 is already in use",
            details={"recovery": "Stop the process using the port"},
        )
        out = tmp_path / "metrics.json"

        code = main(["--quiet", "--out", str(out), "https://example.com/"])

        assert code == 1
        assert not out.exists()
        measure.assert_not_awaited()
        launcher.kill.assert_called_once()
        stderr = capsys.readouterr().err
        assert "Error: Port 9222 is already in use" in stderr
        assert "Recovery hint: Stop the process using the port" in stderr

    def test_debugger_never_ready(self, tmp_path, browser_stack):
        launcher, session, measure = browser_stack
        session.wait_for_debugger.side_effect = DebuggerNotReadyError(
            "Chrome debugger did not become ready", attempts=40
        )
        out = tmp_path / "metrics.json"

        code = main(["--quiet", "--out", str(out), "https://example.com/"])

        assert code == 1
        assert not out.exists()
        launcher.kill.assert_called_once()
