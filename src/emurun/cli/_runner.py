"""Async runner for the emurun command.

This module wires the loaded configuration into a Supervisor and runs one
target command under it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from emurun.supervisor import ConsoleEventSink, Supervisor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rich.console import Console
    from structlog.typing import FilteringBoundLogger

    from emurun.config import Config, EmulatorConfig


def create_supervisor(
    config: Config,
    emulators: Sequence[EmulatorConfig],
    *,
    console: Console | None = None,
    logger: FilteringBoundLogger | None = None,
) -> Supervisor:
    """Create a supervisor for the selected emulators.

    Args:
        config: The loaded configuration.
        emulators: The emulators to run, in start order.
        console: Console receiving lifecycle status lines.
        logger: Structured logger for the supervisor.

    Returns:
        A supervisor ready to `run()` a target command.
    """
    return Supervisor(
        [emulator.to_spec() for emulator in emulators],
        verbose=config.verbose,
        ready_timeout=config.ready_timeout,
        stop_timeout=config.stop_timeout,
        event_sink=ConsoleEventSink(console),
        logger=logger,
    )


async def run_target(supervisor: Supervisor, argv: Sequence[str]) -> int:
    """Run the target command under the supervisor.

    Args:
        supervisor: The configured supervisor.
        argv: The target command and its arguments.

    Returns:
        The target's exit status.
    """
    return await supervisor.run(list(argv))
