"""Headless Chrome page performance measurement over the DevTools Protocol.

This package provides:
- CDPConnection: WebSocket client correlating commands, events and one-shot waits
- CDPSession: Introspection endpoint access (readiness poll, target discovery)
- ChromeLauncher: Headless Chrome process lifecycle
- PageDriver: Throttled page load with paint/layout/long-task instrumentation
- Coverage and metrics aggregation into one summary per URL
- CLI: Measure one or more URLs and write a JSON report
"""

__version__ = "0.1.0"
