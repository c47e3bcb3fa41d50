"""Supervisor exceptions with structured context for diagnostics."""

from typing import Any, Dict, List, Optional


class SupervisorError(Exception):
    """Base exception for proxy supervision errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ):
        """Initialize supervisor error.

        Args:
            message: Human-readable error message
            details: Additional context for logging and debugging
            suggestion: Optional hint on how to resolve the problem
        """
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary suitable for structured logging."""
        error_dict: Dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        if self.suggestion:
            error_dict["suggestion"] = self.suggestion
        return error_dict


class SpawnError(SupervisorError):
    """The proxy binary could not be started."""

    def __init__(
        self,
        binary_path: str,
        args: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ):
        """Initialize spawn error.

        Args:
            binary_path: Path of the executable that failed to start
            args: Argument vector passed to the executable
            cause: Underlying OS error
        """
        reason = str(cause) if cause else "unknown error"
        super().__init__(
            f"Failed to launch {binary_path}: {reason}",
            details={
                "binary_path": binary_path,
                "args": list(args or []),
                "cause": reason,
            },
            suggestion="Check that the binary exists and is executable",
        )
        self.binary_path = binary_path
        self.argv = list(args or [])
        self.cause = cause


class PortAllocationError(SupervisorError):
    """No bindable TCP port could be found."""

    def __init__(
        self, preferred: Optional[int] = None, cause: Optional[BaseException] = None
    ):
        """Initialize port allocation error.

        Args:
            preferred: Port requested by the caller, if any
            cause: Error raised by the last bind attempt
        """
        super().__init__(
            f"Unable to allocate a TCP port (preferred: {preferred}): {cause}",
            details={"preferred": preferred, "cause": str(cause)},
        )
        self.preferred = preferred
        self.cause = cause


class PrematureExitError(SupervisorError):
    """The proxy process exited before it became ready."""

    def __init__(
        self,
        exit_code: int,
        port: Optional[int] = None,
        config_path: Optional[str] = None,
    ):
        """Initialize premature exit error.

        Args:
            exit_code: Exit code reported by the process (-1 if unknown)
            port: Port the process was expected to listen on
            config_path: Config file handed to the process (already removed)
        """
        super().__init__(
            f"CLIProxyAPI exited before ready (code {exit_code})",
            details={
                "exit_code": exit_code,
                "port": port,
                "config_path": config_path,
            },
            suggestion="Inspect the process stderr for startup errors",
        )
        self.exit_code = exit_code
        self.port = port
        self.config_path = config_path


class ReadinessTimeoutError(SupervisorError):
    """The proxy did not answer its readiness probe in time."""

    def __init__(
        self,
        url: str,
        attempts: int,
        elapsed: float,
        last_status: Optional[int] = None,
        last_error: Optional[str] = None,
    ):
        """Initialize readiness timeout error.

        Args:
            url: Probe target that never reported ready
            attempts: Number of probe requests issued
            elapsed: Seconds spent polling
            last_status: HTTP status of the last answered probe, if any
            last_error: Description of the last network failure, if any
        """
        super().__init__(
            f"Proxy did not become ready in time ({url}, "
            f"{attempts} attempts, {elapsed:.2f}s)",
            details={
                "url": url,
                "attempts": attempts,
                "elapsed_seconds": round(elapsed, 3),
                "last_status": last_status,
                "last_error": last_error,
            },
            suggestion="Increase retries or the ready timeout",
        )
        self.url = url
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_status = last_status
        self.last_error = last_error
        # Set by the lifecycle controller: the still-running process.
        self.process: Any = None


class LoginFailedError(SupervisorError):
    """The interactive login flow exited with a non-zero code."""

    def __init__(self, exit_code: int, provider: Optional[str] = None):
        """Initialize login failure.

        Args:
            exit_code: Exit code of the login process
            provider: Login provider that was requested
        """
        super().__init__(
            f"Login flow exited with code {exit_code}",
            details={"exit_code": exit_code, "provider": provider},
        )
        self.exit_code = exit_code
        self.provider = provider


class BinaryDownloadError(SupervisorError):
    """The proxy release could not be downloaded or unpacked."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status: Optional[int] = None,
        archive_name: Optional[str] = None,
    ):
        """Initialize download error.

        Args:
            message: Human-readable error message
            url: Release asset URL
            status: HTTP status of the download response, if any
            archive_name: Name of the release archive
        """
        super().__init__(
            message,
            details={"url": url, "status": status, "archive_name": archive_name},
        )
        self.url = url
        self.status = status
        self.archive_name = archive_name
