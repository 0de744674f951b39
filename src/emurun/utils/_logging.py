"""Structured logging for emurun.

Loggers are built with `structlog.wrap_logger`, so each one carries its own
processor chain and level filter and the global structlog configuration is
never modified. Output goes to standard error by default, keeping the target
command's standard output untouched.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TextIO, cast

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Map a level name such as "warning" to its `logging` constant.

    Unknown names fall back to INFO. With `respect_env`, a non-empty
    EMURUN_DEBUG forces DEBUG.
    """
    if respect_env and getenv("EMURUN_DEBUG", None):
        return logging.DEBUG

    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


@contextmanager
def log_output(log_file: str = "") -> Iterator[TextIO | None]:
    """Open the configured log file for appending, if there is one.

    The file and its parent directories are created as needed and the file
    is closed when the block exits.

    Args:
        log_file: Path of the log file. Empty means no file.

    Yields:
        The open file, or None when `log_file` is empty.
    """
    if not log_file:
        yield None
        return

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a") as f:
        yield f


def create_logger(
    *,
    level: str = "info",
    log_format: LogFormatType = "text",
    stream: TextIO | None = None,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a standalone structlog logger.

    Setting EMURUN_DEBUG in the environment enables DEBUG regardless of
    `level`.

    Args:
        level: Minimum level to emit (debug, info, warning, error).
        log_format: "json" for one JSON object per line, "text" for
            human-readable key=value lines.
        stream: Text stream to write to, such as a file from `log_output`.
            Defaults to stderr.

    Returns:
        A bound logger filtering below `level`.
    """
    output = stream if stream is not None else sys.stderr

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            structlog.WriteLogger(file=output),
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(
                _log_level_from_string(level, respect_env=True)
            ),
            context_class=dict,
        ),
    )


def create_null_logger() -> "FilteringBoundLogger":  # noqa: UP037
    """Create a logger that drops every event.

    Used by library classes that were not handed a logger.
    """
    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            structlog.ReturnLogger(),
            processors=[],
            wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
            context_class=dict,
        ),
    )
