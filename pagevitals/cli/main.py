"""
Main CLI entry point for page-vitals.

Launches one headless Chrome, measures each URL in turn on a fresh page
connection, prints a summary block per URL and writes a JSON report.

Usage:
    page-vitals [--out reports/perf/metrics.json] <url> [<url> ...]
    python -m pagevitals.cli.main https://example.com
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import List, Optional

from pagevitals.config import CONFIG_FILE, Configuration
from pagevitals.driver import measure_url
from pagevitals.exceptions import BrowserLaunchError, DebuggerNotReadyError
from pagevitals.launcher import ChromeLauncher
from pagevitals.logging_setup import log_with_context, setup_logging
from pagevitals.metrics import MetricsSummary
from pagevitals.report import build_report, format_summary, write_report
from pagevitals.session import CDPSession

logger = logging.getLogger("pagevitals.cli")

DEFAULT_OUTPUT = "reports/perf/metrics.json"


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser.

    Returns:
        ArgumentParser for the page-vitals command
    """
    parser = argparse.ArgumentParser(
        prog="page-vitals",
        description="Measure page load performance and JS coverage in headless Chrome",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Measure one page, report to the default path
  page-vitals https://example.com

  # Several pages, custom report path
  page-vitals --out reports/perf/home.json https://example.com/ https://example.com/about

  # Desktop-speed CPU and a shorter settling window
  page-vitals --cpu-throttle 1 --settle-ms 1000 https://example.com

Environment:
  CHROME_BIN    Chrome executable (overridden by --chrome-bin)
        """,
    )

    parser.add_argument("urls", nargs="+", metavar="url", help="URL(s) to measure, in order")
    parser.add_argument(
        "--out",
        default=DEFAULT_OUTPUT,
        help=f"JSON report path (default: {DEFAULT_OUTPUT})",
    )

    chrome = parser.add_argument_group("browser")
    chrome.add_argument("--chrome-bin", help="Chrome executable path")
    chrome.add_argument("--chrome-port", type=int, help="Chrome debugging port (default: 9222)")

    measurement = parser.add_argument_group("measurement")
    measurement.add_argument(
        "--settle-ms",
        type=int,
        help="Wait after the load event before the snapshot (default: 2500)",
    )
    measurement.add_argument(
        "--load-timeout",
        type=float,
        help="Seconds to wait for the load event (default: 30.0)",
    )
    measurement.add_argument(
        "--cpu-throttle",
        type=float,
        help="CPU slowdown factor (default: 4)",
    )

    logging_group = parser.add_argument_group("logging")
    logging_group.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    logging_group.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log format on stderr (default: text)",
    )
    verbosity_group = logging_group.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Only log errors",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


async def run_measurements(urls: List[str], out_path: str, config: Configuration) -> int:
    """
    Measure URLs sequentially against one Chrome process.

    Launch and readiness failures abort the run before any report is written.
    A failing URL is logged, left out of the report, and makes the exit code 1.

    Returns:
        Exit code (0 only if every URL was measured)
    """
    started = time.monotonic()
    launcher = ChromeLauncher(config.chrome_bin, port=config.chrome_port)
    measurements: List[MetricsSummary] = []
    failed = False

    try:
        launcher.start()
        session = CDPSession(chrome_port=config.chrome_port)
        version = await session.wait_for_debugger(
            max_attempts=config.ready_attempts, interval=config.ready_interval
        )
        logger.info(f"Connected to {version.get('Browser', 'Chrome')}")

        for url in urls:
            try:
                summary = await measure_url(session, url, config)
            except Exception as e:
                failed = True
                log_with_context(logger, logging.ERROR, f"Measurement failed for {url}: {e}", url=url)
                continue
            measurements.append(summary)
            print(format_summary(summary), flush=True)

    except (BrowserLaunchError, DebuggerNotReadyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.details.get("recovery"):
            print(f"Recovery hint: {e.details['recovery']}", file=sys.stderr)
        return 1
    finally:
        launcher.kill()

    report = build_report(
        measurements,
        duration_ms=(time.monotonic() - started) * 1000,
        browser_binary_path=config.chrome_bin,
    )
    saved = write_report(out_path, report)
    print(f"\nSaved report to {saved}")

    if failed:
        logger.error(f"{len(urls) - len(measurements)} of {len(urls)} URL(s) failed")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for CLI.

    Precedence: CLI flags > env vars > config file > defaults

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = Configuration()
    config.load_from_file(CONFIG_FILE)
    config.load_from_env()
    config.merge(
        chrome_bin=args.chrome_bin,
        chrome_port=args.chrome_port,
        settle_ms=args.settle_ms,
        load_timeout=args.load_timeout,
        cpu_throttle=args.cpu_throttle,
        log_level=args.log_level.upper() if args.log_level else None,
        log_format=args.log_format,
    )

    setup_logging(
        format_type=config.log_format,
        level=config.log_level,
        quiet=args.quiet,
        verbose=args.verbose,
    )

    try:
        return asyncio.run(run_measurements(args.urls, args.out, config))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        if config.log_level.upper() == "DEBUG" or args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
