"""
Report output - console summary blocks and the JSON report file.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, TypedDict, Union

from .metrics import MetricsSummary, round_half_up


class Report(TypedDict):
    generatedAt: str
    durationMs: int
    browserBinaryPath: str
    measurements: List[MetricsSummary]


def format_summary(summary: MetricsSummary) -> str:
    """Render one measurement as an indented text block."""
    lines = [
        f"URL: {summary['url']}",
        f"  FCP: {summary['fcpMs']} ms | LCP: {summary['lcpMs']} ms | "
        f"TBT: {summary['tbtMs']} ms | CLS: {summary['cls']}",
        f"  LCP Element: {summary['lcpSelector'] or '(none)'}",
        f"  JS Transfer: {summary['totalJsTransferKB']} KiB "
        f"(first-party {summary['firstPartyJsTransferKB']} KiB)",
        f"  JS Coverage: {summary['coveredScriptKB']} KiB covered | "
        f"{summary['unusedScriptKB']} KiB unused "
        f"({summary['firstPartyUnusedScriptKB']} KiB first-party)",
    ]

    if summary["renderBlockingCss"]:
        lines.append("  Render-blocking CSS:")
        for css in summary["renderBlockingCss"]:
            lines.append(
                f"    - {css['name']} ({css['transferKB']} KiB, {css['durationMs']} ms, "
                f"starts at {css['startMs']} ms)"
            )
    else:
        lines.append("  Render-blocking CSS: none detected")

    return "\n".join(lines)


def build_report(
    measurements: List[MetricsSummary], duration_ms: float, browser_binary_path: str
) -> Report:
    return {
        "generatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "durationMs": round_half_up(duration_ms),
        "browserBinaryPath": browser_binary_path,
        "measurements": list(measurements),
    }


def write_report(path: Union[str, Path], report: Report) -> Path:
    """Write the report as indented JSON, creating parent directories."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    return output_path
