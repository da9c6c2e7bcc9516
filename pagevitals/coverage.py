"""JavaScript byte coverage analysis.

Turns Profiler.takePreciseCoverage output into used/unused byte totals,
overall and for scripts served from the measured page's origin.
"""

import logging
from typing import Awaitable, Callable, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .collectors.scripts import ScriptMeta
from .exceptions import CDPError

logger = logging.getLogger(__name__)

Range = Tuple[int, int]
SourceLoader = Callable[[str], Awaitable[str]]

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


def origin_of(url: str) -> Optional[str]:
    """Return scheme://host[:port] for a URL, or None if it has no origin."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    scheme = parts.scheme.lower()
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        return f"{scheme}://{parts.hostname}"
    return f"{scheme}://{parts.hostname}:{port}"


def merge_ranges(ranges: Iterable[Range]) -> List[Range]:
    """Merge [start, end) ranges; touching ranges are merged too.

    >>> merge_ranges([(10, 20), (0, 10), (15, 30), (40, 50)])
    [(0, 30), (40, 50)]
    """
    merged: List[Range] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def sum_ranges(ranges: Iterable[Range]) -> int:
    return sum(max(0, end - start) for start, end in ranges)


def source_length(source: str) -> int:
    """Script length in UTF-16 code units, the unit of coverage offsets."""
    return len(source.encode("utf-16-le")) // 2


def executed_ranges(script_coverage: dict) -> List[Range]:
    """Flatten a ScriptCoverage entry to the ranges that ran at least once."""
    used: List[Range] = []
    for function in script_coverage.get("functions") or []:
        for block in function.get("ranges") or []:
            if block.get("count", 0) > 0:
                used.append((block["startOffset"], block["endOffset"]))
    return used


class CoverageTotals:
    """Byte totals across all covered scripts with a URL."""

    def __init__(self):
        self.covered_bytes = 0
        self.used_bytes = 0
        self.first_party_covered_bytes = 0
        self.first_party_used_bytes = 0

    @property
    def unused_bytes(self) -> int:
        return max(0, self.covered_bytes - self.used_bytes)

    @property
    def first_party_unused_bytes(self) -> int:
        return max(0, self.first_party_covered_bytes - self.first_party_used_bytes)

    def add(self, length: int, used: int, first_party: bool) -> None:
        self.covered_bytes += length
        self.used_bytes += used
        if first_party:
            self.first_party_covered_bytes += length
            self.first_party_used_bytes += used

    def __repr__(self):
        return (
            f"CoverageTotals(covered={self.covered_bytes}, used={self.used_bytes}, "
            f"first_party_covered={self.first_party_covered_bytes}, "
            f"first_party_used={self.first_party_used_bytes})"
        )


async def analyze_coverage(
    coverage_scripts: List[dict],
    scripts: Mapping[str, ScriptMeta],
    page_origin: Optional[str],
    load_source: Optional[SourceLoader] = None,
) -> CoverageTotals:
    """
    Compute used/unused bytes for every covered script.

    Scripts without parse metadata or without a URL (inline evals, the
    injected instrumentation) are skipped. When a script's length was not
    reported, its source is fetched through load_source and its length used.

    Args:
        coverage_scripts: "result" list from Profiler.takePreciseCoverage
        scripts: ScriptMeta table keyed by scriptId
        page_origin: Origin of the measured page (first-party test)
        load_source: Coroutine returning a script's source text by scriptId

    Returns:
        CoverageTotals
    """
    totals = CoverageTotals()

    for script in coverage_scripts:
        script_id = script.get("scriptId")
        meta = scripts.get(script_id)
        if not meta or not meta["url"]:
            continue

        length = meta["length"]
        if length is None:
            length = 0
            if load_source is not None:
                try:
                    length = source_length(await load_source(script_id))
                except CDPError as e:
                    logger.debug(f"Could not fetch source for script {script_id}: {e}")

        used = min(sum_ranges(merge_ranges(executed_ranges(script))), length)
        first_party = page_origin is not None and origin_of(meta["url"]) == page_origin
        totals.add(length, used, first_party)

    return totals
