"""Metrics aggregation.

Pure functions that combine the in-page observer state, navigation and
resource timing, and coverage totals into one MetricsSummary per URL.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, TypedDict, Union

from typing_extensions import NotRequired

from .coverage import CoverageTotals, origin_of

# Long tasks only block for the part beyond this many milliseconds
BLOCKING_THRESHOLD_MS = 50


class LongTask(TypedDict):
    start: float
    duration: float


class LayoutShift(TypedDict):
    value: float
    hadRecentInput: bool


class ObserverState(TypedDict):
    """State published by the in-page observer script."""
    fcp: float
    lcp: float
    lcpSize: float
    lcpSelector: Optional[str]
    lcpText: NotRequired[Optional[str]]
    cls: float
    layoutShifts: NotRequired[List[LayoutShift]]  # raw entries; cls alone when absent
    longTasks: List[LongTask]


class NavTimings(TypedDict):
    responseEnd: float
    domContentLoaded: float
    load: float


class ResourceEntry(TypedDict):
    name: str
    initiatorType: str
    transferSize: int
    encodedBodySize: int
    duration: float
    startTime: float
    renderBlockingStatus: Optional[str]


class RenderBlockingEntry(TypedDict):
    name: str
    transferKB: float
    durationMs: int
    startMs: int


class MetricsSummary(TypedDict):
    """One measured URL, as written to the JSON report."""
    url: str
    fcpMs: int
    lcpMs: int
    cls: float
    tbtMs: int
    lcpSelector: Optional[str]
    lcpText: Optional[str]
    lcpSize: float
    totalJsTransferKB: float
    firstPartyJsTransferKB: float
    coveredScriptKB: float
    usedScriptKB: float
    unusedScriptKB: float
    firstPartyCoveredScriptKB: float
    firstPartyUsedScriptKB: float
    firstPartyUnusedScriptKB: float
    renderBlockingCss: List[RenderBlockingEntry]
    navTimings: Optional[NavTimings]


def empty_observer_state() -> ObserverState:
    return {
        "fcp": 0,
        "lcp": 0,
        "lcpSize": 0,
        "lcpSelector": None,
        "lcpText": None,
        "cls": 0,
        "layoutShifts": [],
        "longTasks": [],
    }


def round_half_up(value: float, digits: int = 0) -> Union[int, float]:
    """Round halves up (420.5 -> 421), returning an int for whole results."""
    rounded = Decimal(value).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    if rounded == rounded.to_integral_value():
        return int(rounded)
    return float(rounded)


def to_kb(num_bytes: float) -> float:
    return round_half_up(num_bytes / 1024, 1)


def total_blocking_time(long_tasks: Iterable[LongTask], first_paint: float) -> float:
    """Sum of the over-threshold part of long tasks starting at or after first paint."""
    total = 0.0
    for task in long_tasks:
        if task.get("start", 0) < first_paint:
            continue
        total += max(0.0, (task.get("duration") or 0) - BLOCKING_THRESHOLD_MS)
    return total


def cumulative_layout_shift(shifts: Iterable[LayoutShift]) -> float:
    """Sum of layout-shift values not caused by recent user input."""
    return sum(shift.get("value", 0) for shift in shifts if not shift.get("hadRecentInput"))


def is_js_resource(entry: ResourceEntry) -> bool:
    return entry.get("initiatorType") == "script" or ".js" in entry.get("name", "")


def is_css_resource(entry: ResourceEntry) -> bool:
    return entry.get("initiatorType") == "link" or ".css" in entry.get("name", "")


def render_blocking_stylesheets(resources: Iterable[ResourceEntry]) -> List[ResourceEntry]:
    return [
        entry
        for entry in resources
        if is_css_resource(entry) and entry.get("renderBlockingStatus") == "blocking"
    ]


def build_summary(url: str, page_data: dict, coverage: CoverageTotals) -> MetricsSummary:
    """
    Combine one snapshot into a MetricsSummary.

    Args:
        url: The measured URL
        page_data: Value returned by the snapshot evaluate call
            ({"perfState", "nav", "resources"}); missing parts default to empty
        coverage: Coverage totals for the page's scripts
    """
    state = empty_observer_state()
    state.update(page_data.get("perfState") or {})

    resources = page_data.get("resources")
    if not isinstance(resources, list):
        resources = []

    page_origin = origin_of(url)
    js_resources = [entry for entry in resources if is_js_resource(entry)]
    total_js_transfer = sum(entry.get("transferSize") or 0 for entry in js_resources)
    first_party_js_transfer = sum(
        entry.get("transferSize") or 0
        for entry in js_resources
        if page_origin is not None and origin_of(entry.get("name", "")) == page_origin
    )

    fcp = state["fcp"] or 0
    long_tasks = state["longTasks"] if isinstance(state["longTasks"], list) else []
    shifts = state.get("layoutShifts")
    cls = cumulative_layout_shift(shifts) if shifts else (state["cls"] or 0)

    return {
        "url": url,
        "fcpMs": round_half_up(fcp),
        "lcpMs": round_half_up(state["lcp"] or 0),
        "cls": round_half_up(cls, 3),
        "tbtMs": round_half_up(total_blocking_time(long_tasks, fcp)),
        "lcpSelector": state["lcpSelector"] or None,
        "lcpText": state.get("lcpText") or None,
        "lcpSize": state["lcpSize"] or 0,
        "totalJsTransferKB": to_kb(total_js_transfer),
        "firstPartyJsTransferKB": to_kb(first_party_js_transfer),
        "coveredScriptKB": to_kb(coverage.covered_bytes),
        "usedScriptKB": to_kb(coverage.used_bytes),
        "unusedScriptKB": to_kb(coverage.unused_bytes),
        "firstPartyCoveredScriptKB": to_kb(coverage.first_party_covered_bytes),
        "firstPartyUsedScriptKB": to_kb(coverage.first_party_used_bytes),
        "firstPartyUnusedScriptKB": to_kb(coverage.first_party_unused_bytes),
        "renderBlockingCss": [
            {
                "name": entry.get("name", ""),
                "transferKB": to_kb(entry.get("transferSize") or 0),
                "durationMs": round_half_up(entry.get("duration") or 0),
                "startMs": round_half_up(entry.get("startTime") or 0),
            }
            for entry in render_blocking_stylesheets(resources)
        ],
        "navTimings": page_data.get("nav") or None,
    }
