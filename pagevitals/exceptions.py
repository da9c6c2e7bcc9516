"""Exception hierarchy for page measurement.

All errors inherit from CDPError. Launch and readiness failures abort a whole
run; everything else is raised inside one URL's measurement and handled at
the per-URL boundary in the CLI.
"""

from typing import Optional


class CDPError(Exception):
    """Base exception for all CDP-related errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class CDPConnectionError(CDPError):
    """WebSocket connection failures."""

    pass


class ConnectionFailedError(CDPConnectionError):
    """Initial connection failed.

    Common causes: target closed between discovery and connect, wrong port.
    """

    pass


class ConnectionClosedError(CDPConnectionError):
    """Connection closed while commands or event waits were outstanding."""

    pass


class CDPCommandError(CDPError):
    """Command execution failures."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        error_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.method = method
        self.error_code = error_code


class CommandFailedError(CDPCommandError):
    """Chrome answered a command with an error frame."""

    pass


class InvalidCommandError(CDPCommandError):
    """Command rejected locally before being sent."""

    pass


class EvaluationError(CDPCommandError):
    """Runtime.evaluate succeeded at protocol level but the page script threw.

    Raised when the evaluate result carries exceptionDetails.
    """

    pass


class CDPTimeoutError(CDPError):
    """An awaited event did not arrive within its timeout."""

    def __init__(
        self,
        message: str,
        command_method: Optional[str] = None,
        timeout: Optional[float] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.command_method = command_method
        self.timeout = timeout

    def __str__(self):
        if self.command_method and self.timeout:
            return f"Timeout waiting for {self.command_method} after {self.timeout}s"
        return self.message


class CDPTargetNotFoundError(CDPError):
    """No debuggable page target was available."""

    def __init__(
        self,
        message: str,
        target_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.target_id = target_id

    def __str__(self):
        if self.target_id:
            return f"Target not found: {self.target_id}"
        return self.message


class BrowserLaunchError(CDPError):
    """Chrome could not be started.

    Raised for a missing or non-executable binary and for a debugging port
    that is already bound. Fatal for the run; never retried.
    """

    def __init__(
        self,
        message: str,
        binary_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.binary_path = binary_path


class DebuggerNotReadyError(CDPError):
    """The /json/version endpoint never reported a WebSocket URL."""

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.attempts = attempts
