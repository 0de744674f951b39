"""emurun exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


class EmurunError(Exception):
    """Base exception for emurun errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(EmurunError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded, parsed or validated."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(EmurunError):
    """Base exception for supervisor errors."""

    def __init__(
        self,
        message: str,
        *,
        process_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and process context.

        Args:
            message: Human-readable error message.
            process_name: The name of the managed process involved, if any.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.process_name: str | None = process_name
        self.cause: Exception | None = cause


class StartupError(SupervisorError):
    """Base exception for failures before the target command runs."""


class AlreadyStartedError(StartupError):
    """Raised when a managed process is started more than once."""


class ProcessStartError(StartupError):
    """Raised when a managed process cannot be spawned."""


class ReadinessError(StartupError):
    """Raised when a managed process does not become ready.

    Either the process exited before printing its readiness sentinel, or
    the readiness timeout elapsed.

    Attributes:
        exit_code: Exit code of the process, if it exited.
    """

    def __init__(
        self,
        message: str,
        *,
        process_name: str | None = None,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and exit context.

        Args:
            message: Human-readable error message.
            process_name: The name of the managed process.
            exit_code: Exit code of the process, if it exited.
            cause: The underlying exception, if any.
        """
        super().__init__(message, process_name=process_name, cause=cause)
        self.exit_code: int | None = exit_code


class EnvironmentDerivationError(SupervisorError):
    """Raised when a process's environment helper fails or prints garbage.

    Attributes:
        exit_code: Exit code of the helper command, if it ran.
        output: Combined output of the helper command.
    """

    def __init__(
        self,
        message: str,
        *,
        process_name: str | None = None,
        exit_code: int | None = None,
        output: str = "",
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and helper context.

        Args:
            message: Human-readable error message.
            process_name: The name of the managed process.
            exit_code: Exit code of the helper command, if it ran.
            output: Combined output of the helper command.
            cause: The underlying exception, if any.
        """
        super().__init__(message, process_name=process_name, cause=cause)
        self.exit_code: int | None = exit_code
        self.output: str = output


class TargetExecutionError(SupervisorError):
    """Raised when the target command cannot be executed."""


class ProcessStopError(SupervisorError):
    """Raised when a managed process cannot be signalled to stop."""


class TeardownError(SupervisorError):
    """Raised after teardown when one or more processes failed to stop.

    Attributes:
        failures: Every stop failure, in stop order.
    """

    def __init__(self, message: str, *, failures: Sequence[ProcessStopError]) -> None:
        """Initialize with error message and the collected stop failures.

        Args:
            message: Human-readable error message.
            failures: The stop failures collected during teardown.
        """
        super().__init__(message)
        self.failures: tuple[ProcessStopError, ...] = tuple(failures)
