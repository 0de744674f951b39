"""Supervisor orchestration.

This module provides the Supervisor class that starts the managed
processes, waits for all of them to become ready, runs the target command
with their environment contributions and tears everything down again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio

from emurun.exceptions import (
    ProcessStopError,
    StartupError,
    TargetExecutionError,
    TeardownError,
)
from emurun.utils import create_null_logger

from ._environment import build_environment
from ._group import ProcessGroup
from ._process import DEFAULT_STOP_TIMEOUT, ManagedProcess

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import anyio.abc
    from structlog.typing import FilteringBoundLogger

    from ._models import ManagedProcessSpec
    from ._protocol import ByteSink, EventSink


def exit_status(returncode: int) -> int:
    """Convert a child return code to a shell-style exit status.

    Args:
        returncode: Return code as reported by the process handle. Negative
            values mean the child was killed by that signal.

    Returns:
        The return code itself, or `128 + signum` for signal deaths.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


@final
class Supervisor:
    """Runs a target command alongside a set of managed processes.

    Processes are started, waited on and stopped in configuration order.
    Any startup failure aborts the run immediately and leaves processes that
    were already started running. A failing target command is held until
    teardown has finished. Stop failures are collected and raised together
    once every process had its chance to stop.
    """

    __slots__ = ("_group", "_logger", "_processes", "ready_timeout")

    def __init__(  # noqa: PLR0913
        self,
        specs: Sequence[ManagedProcessSpec],
        *,
        verbose: bool = False,
        ready_timeout: float | None = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        passthrough: ByteSink | None = None,
        event_sink: EventSink | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            specs: Managed processes, in start order.
            verbose: Mirror managed process output instead of discarding it.
            ready_timeout: Seconds to wait for each process to become ready,
                or None to wait indefinitely.
            stop_timeout: Seconds to wait for each process after SIGTERM.
            passthrough: Destination for managed process stderr, overriding
                the one chosen from `verbose`.
            event_sink: Sink for lifecycle events, if any.
            logger: Structured logger. Logging is disabled if None.

        Raises:
            ValueError: If two specs share a name.
        """
        names = [spec.name for spec in specs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"Duplicate process names: {', '.join(duplicates)}"
            raise ValueError(msg)

        self.ready_timeout = ready_timeout
        self._logger = logger or create_null_logger()
        self._group = ProcessGroup(self._logger)
        self._processes = tuple(
            ManagedProcess(
                spec,
                self._group,
                verbose=verbose,
                stop_timeout=stop_timeout,
                passthrough=passthrough,
                event_sink=event_sink,
                logger=self._logger,
            )
            for spec in specs
        )

    @property
    def processes(self) -> tuple[ManagedProcess, ...]:
        """Return the managed processes in start order."""
        return self._processes

    @property
    def group(self) -> ProcessGroup:
        """Return the process group controller."""
        return self._group

    async def run(self, argv: Sequence[str]) -> int:
        """Supervise one run of the target command.

        Args:
            argv: The target command and its arguments.

        Returns:
            The target's exit status.

        Raises:
            ValueError: If `argv` is empty.
            StartupError: If a process cannot be started or never becomes
                ready.
            EnvironmentDerivationError: If an environment helper fails.
            TargetExecutionError: If the target cannot be executed. Raised
                after teardown.
            TeardownError: If one or more processes could not be stopped.
        """
        if not argv:
            msg = "No target command given"
            raise ValueError(msg)

        try:
            _ = self._group.establish()
        except OSError as e:
            msg = f"Could not establish process group: {e}"
            raise StartupError(msg, cause=e) from e

        # Exceptions leaving a task group body arrive as an ExceptionGroup
        status: int | None = None
        error: Exception | None = None
        async with anyio.create_task_group() as tg:
            await tg.start(self._group.forward_signals)
            try:
                status = await self._supervise(tg, argv)
            except Exception as e:  # noqa: BLE001
                error = e
            finally:
                tg.cancel_scope.cancel()

        if error is not None:
            raise error
        assert status is not None  # noqa: S101
        return status

    async def _supervise(
        self,
        tg: anyio.abc.TaskGroup,
        argv: Sequence[str],
    ) -> int:
        for process in self._processes:
            await process.start(tg)

        for process in self._processes:
            await process.wait_ready(self.ready_timeout)
        self._logger.info("processes_ready", count=len(self._processes))

        contributions = [await process.env() for process in self._processes]
        env = build_environment(contributions)

        returncode: int | None = None
        target_error: TargetExecutionError | None = None
        try:
            returncode = await self._run_target(argv, env)
        except TargetExecutionError as e:
            target_error = e

        await self._stop_all()

        if target_error is not None:
            raise target_error
        assert returncode is not None  # noqa: S101
        return exit_status(returncode)

    async def _run_target(self, argv: Sequence[str], env: Mapping[str, str]) -> int:
        """Run the target in the foreground, sharing our standard streams.

        Returns:
            The target's raw return code. Non-zero codes are not errors.

        Raises:
            TargetExecutionError: If the target cannot be spawned.
        """
        self._logger.info("target_starting", argv=list(argv))
        try:
            process = await anyio.open_process(
                list(argv), stdin=None, stdout=None, stderr=None, env=env
            )
        except OSError as e:
            msg = f"Could not run target command {argv[0]!r}: {e}"
            raise TargetExecutionError(msg, cause=e) from e

        async with process:
            returncode = await process.wait()

        self._logger.info("target_exited", returncode=returncode)
        return returncode

    async def _stop_all(self) -> None:
        """Stop every process in start order, then report failures.

        Raises:
            TeardownError: If any stop failed.
        """
        failures: list[ProcessStopError] = []
        for process in self._processes:
            try:
                await process.stop()
            except ProcessStopError as e:
                self._logger.error(  # noqa: TRY400
                    "process_stop_failed", process=process.name, error=str(e)
                )
                failures.append(e)

        if failures:
            names = ", ".join(f.process_name or "?" for f in failures)
            msg = f"Failed to stop {len(failures)} process(es): {names}"
            raise TeardownError(msg, failures=failures)
