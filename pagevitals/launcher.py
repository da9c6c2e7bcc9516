"""Headless Chrome process lifecycle.

One Chrome process serves a whole run; it is started once before the first
URL and killed unconditionally when the run ends.
"""

import logging
import shutil
import socket
import subprocess
import tempfile
from typing import List, Optional

from .exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)

# Keep Chrome from doing background work that would skew timings
CHROME_FLAGS = [
    "--headless=new",
    "--disable-gpu",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-sync",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-default-apps",
    "--disable-renderer-backgrounding",
    "--metrics-recording-only",
    "--mute-audio",
]


def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Check if port is already bound."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


class ChromeLauncher:
    """Starts and stops one headless Chrome bound to a fixed debugging port.

    Usage:
        launcher = ChromeLauncher("/usr/bin/google-chrome", port=9222)
        launcher.start()
        try:
            ...
        finally:
            launcher.kill()

    Attributes:
        chrome_bin: Chrome executable path
        port: Remote debugging port
    """

    def __init__(self, chrome_bin: str, port: int = 9222):
        self.chrome_bin = chrome_bin
        self.port = port
        self.process: Optional[subprocess.Popen] = None
        self._profile_dir: Optional[str] = None

    def build_command(self, profile_dir: str) -> List[str]:
        return [
            self.chrome_bin,
            *CHROME_FLAGS,
            f"--remote-debugging-port={self.port}",
            f"--user-data-dir={profile_dir}",
            "about:blank",
        ]

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    def start(self) -> "ChromeLauncher":
        """Spawn Chrome.

        Raises:
            BrowserLaunchError: If the port is taken or the binary cannot be executed
        """
        if is_port_in_use(self.port):
            raise BrowserLaunchError(
                f"Port {self.port} already in use",
                binary_path=self.chrome_bin,
                details={"recovery": f"Stop the process listening on {self.port} or pick another --chrome-port"},
            )

        self._profile_dir = tempfile.mkdtemp(prefix="pagevitals-chrome-")
        try:
            self.process = subprocess.Popen(
                self.build_command(self._profile_dir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            shutil.rmtree(self._profile_dir, ignore_errors=True)
            self._profile_dir = None
            raise BrowserLaunchError(
                f"Failed to launch Chrome at {self.chrome_bin}: {e}",
                binary_path=self.chrome_bin,
                details={"recovery": "Set CHROME_BIN to a Chrome or Chromium executable"},
            ) from e

        logger.info(f"Chrome started (pid {self.process.pid}, port {self.port})")
        return self

    def kill(self) -> None:
        """Terminate Chrome and remove its profile directory. Never raises."""
        process, self.process = self.process, None
        if process is not None:
            try:
                process.kill()
                process.wait(timeout=5)
                logger.debug(f"Chrome (pid {process.pid}) terminated")
            except Exception as e:
                logger.debug(f"Ignoring error while killing Chrome: {e}")

        if self._profile_dir:
            shutil.rmtree(self._profile_dir, ignore_errors=True)
            self._profile_dir = None

    def __enter__(self) -> "ChromeLauncher":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.kill()
