"""Shared CLI utilities.

Exit codes follow the `env`/`docker run` convention: the target's own
status when it ran, 125 when emurun itself failed and 127 when the target
could not be executed.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Never

from rich.markup import escape

if TYPE_CHECKING:
    from rich.console import Console

__all__ = ["ExitCode", "exit_with_error", "get_error_console"]


class ExitCode(IntEnum):
    """Exit codes used by emurun itself."""

    SUCCESS = 0
    USAGE_ERROR = 2
    SUPERVISOR_ERROR = 125
    TARGET_NOT_EXECUTABLE = 127


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr.

    Returns:
        Console instance writing to stderr.
    """
    from rich.console import Console

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.SUPERVISOR_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use (defaults to SUPERVISOR_ERROR).
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(
        f"[red]Error:[/red] {escape(message)}", highlight=False, soft_wrap=True
    )
    raise SystemExit(code)
