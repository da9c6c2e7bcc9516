"""Unit tests for console and JSON report output."""

import json
import pytest

from pagevitals.coverage import CoverageTotals
from pagevitals.metrics import build_summary
from pagevitals.report import build_report, format_summary, write_report


@pytest.fixture
def summary():
    page_data = {
        "perfState": {"fcp": 400, "lcp": 900, "lcpSelector": "main > img.hero", "longTasks": []},
        "resources": [
            {
                "name": "https://example.com/site.css",
                "initiatorType": "link",
                "transferSize": 2048,
                "duration": 150,
                "startTime": 30,
                "renderBlockingStatus": "blocking",
            }
        ],
    }
    return build_summary("https://example.com/", page_data, CoverageTotals())


@pytest.mark.unit
def test_format_summary(summary):
    text = format_summary(summary)

    assert text.splitlines()[0] == "URL: https://example.com/"
    assert "FCP: 400 ms | LCP: 900 ms | TBT: 0 ms | CLS: 0" in text
    assert "LCP Element: main > img.hero" in text
    assert "Render-blocking CSS:" in text
    assert "- https://example.com/site.css (2 KiB, 150 ms, starts at 30 ms)" in text


@pytest.mark.unit
def test_format_summary_without_blocking_css():
    text = format_summary(build_summary("https://example.com/", {}, CoverageTotals()))

    assert "LCP Element: (none)" in text
    assert "Render-blocking CSS: none detected" in text


@pytest.mark.unit
def test_build_report(summary):
    report = build_report([summary], duration_ms=1234.6, browser_binary_path="/usr/bin/chromium")

    assert set(report) == {"generatedAt", "durationMs", "browserBinaryPath", "measurements"}
    assert report["generatedAt"].endswith("Z")
    assert report["durationMs"] == 1235
    assert report["browserBinaryPath"] == "/usr/bin/chromium"
    assert report["measurements"] == [summary]


@pytest.mark.unit
def test_write_report_creates_directories(tmp_path, summary):
    out = tmp_path / "reports" / "perf" / "metrics.json"
    report = build_report([summary], duration_ms=10, browser_binary_path="chrome")

    written = write_report(out, report)

    assert written == out
    assert json.loads(out.read_text()) == report
