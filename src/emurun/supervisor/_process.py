"""Managed process lifecycle.

This module provides the ManagedProcess class that spawns one backing
service emulator, watches its standard error for the readiness sentinel,
queries its environment helper and stops it through the process group.
"""

from __future__ import annotations

import signal
import subprocess
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from emurun.exceptions import (
    AlreadyStartedError,
    EnvironmentDerivationError,
    ProcessStartError,
    ProcessStopError,
    ReadinessError,
)
from emurun.utils import create_null_logger

from ._environment import parse_env_lines
from ._models import (
    ManagedProcessSpec,
    ProcessEvent,
    ProcessEventType,
    ProcessState,
)
from ._output import DiscardSink, StreamSink
from ._readiness import ReadinessWatcher, ReadySignal

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._group import ProcessGroup
    from ._protocol import ByteSink, EventSink

DEFAULT_STOP_TIMEOUT = 10.0


def _get_timestamp() -> datetime:
    """Get the current time in UTC."""
    return datetime.now(UTC)


@final
class ManagedProcess:
    """Manages the lifecycle of one emulator child process.

    Lifecycle: `unstarted -> starting -> ready -> stopped`. `start()` does
    not block for readiness; `wait_ready()` does. The child's standard
    error is pumped through a ReadinessWatcher by a task running on the
    task group handed to `start()`.

    Attributes:
        spec: Immutable launch configuration.
        verbose: Whether child output is mirrored or discarded.
        stop_timeout: Seconds to wait for the child after SIGTERM before
            killing it.
    """

    __slots__ = (
        "_event_sink",
        "_group",
        "_logger",
        "_passthrough",
        "_process",
        "_ready",
        "_state",
        "spec",
        "stop_timeout",
        "verbose",
    )

    def __init__(  # noqa: PLR0913
        self,
        spec: ManagedProcessSpec,
        group: ProcessGroup,
        *,
        verbose: bool = False,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        passthrough: ByteSink | None = None,
        event_sink: EventSink | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the managed process.

        Args:
            spec: Launch configuration.
            group: Process group controller used to stop the child.
            verbose: Mirror child stderr to our stderr and let the child
                inherit our stdout. Otherwise both are discarded.
            stop_timeout: Seconds to wait after SIGTERM before killing.
            passthrough: Destination for child stderr. Overrides the
                sink chosen from `verbose`.
            event_sink: Sink for lifecycle events, if any.
            logger: Structured logger. Logging is disabled if None.
        """
        self.spec = spec
        self.verbose = verbose
        self.stop_timeout = stop_timeout
        self._group = group
        self._event_sink = event_sink
        self._logger = (logger or create_null_logger()).bind(process=spec.name)
        if passthrough is None:
            passthrough = StreamSink(sys.stderr.buffer) if verbose else DiscardSink()
        self._passthrough: ByteSink = passthrough
        self._process: anyio.abc.Process | None = None
        self._ready: ReadySignal | None = None
        self._state = ProcessState.UNSTARTED

    @property
    def name(self) -> str:
        """Return the unique name of this process."""
        return self.spec.name

    @property
    def state(self) -> ProcessState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def pid(self) -> int | None:
        """Return the child's process ID while it is held, None otherwise."""
        return self._process.pid if self._process is not None else None

    @property
    def ready(self) -> bool:
        """Return True once the readiness sentinel has been observed."""
        return self._ready is not None and self._ready.ready

    async def emit_event(
        self,
        event_type: ProcessEventType,
        *,
        message: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Emit a lifecycle event to the event sink.

        Args:
            event_type: Type of event to emit.
            message: Optional message for the event.
            exit_code: Exit code if the process terminated.
        """
        if self._event_sink is None:
            return
        event = ProcessEvent(
            process_name=self.name,
            event_type=event_type,
            timestamp=_get_timestamp(),
            pid=self.pid,
            exit_code=exit_code,
            message=message,
        )
        try:
            await self._event_sink.write_event(event)
        except Exception as e:  # noqa: BLE001
            # Event sink errors should not crash the process lifecycle
            self._logger.debug("event_sink_failed", error=str(e))

    async def start(self, task_group: anyio.abc.TaskGroup) -> None:
        """Spawn the child and begin watching its standard error.

        Returns as soon as the child is spawned; use `wait_ready()` to block
        for the sentinel.

        Args:
            task_group: Task group hosting the stderr pump for the child's
                lifetime.

        Raises:
            AlreadyStartedError: If the process was started before.
            ProcessStartError: If the child cannot be spawned.
        """
        if self._ready is not None:
            msg = f"Process '{self.name}' already started"
            raise AlreadyStartedError(msg, process_name=self.name)

        self._ready = ReadySignal()
        self._state = ProcessState.STARTING

        if not self.spec.command:
            self._state = ProcessState.FAILED
            msg = f"Process '{self.name}' has an empty command"
            raise ProcessStartError(msg, process_name=self.name)

        try:
            self._process = await anyio.open_process(
                self.spec.command,
                stdin=subprocess.DEVNULL,
                stdout=None if self.verbose else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                cwd=self.spec.cwd,
            )
        except OSError as e:
            self._state = ProcessState.FAILED
            msg = f"Failed to start process '{self.name}': {e}"
            raise ProcessStartError(msg, process_name=self.name, cause=e) from e

        watcher = ReadinessWatcher(
            self._passthrough, self.spec.ready_sentinel, self._ready
        )
        task_group.start_soon(
            self._pump_stderr, self._process, watcher, name=f"{self.name}-stderr"
        )

        self._logger.info("process_started", pid=self._process.pid)
        await self.emit_event(
            ProcessEventType.STARTED,
            message=f"Started with command: {' '.join(self.spec.command)}",
        )

    async def _pump_stderr(
        self,
        process: anyio.abc.Process,
        watcher: ReadinessWatcher,
    ) -> None:
        """Feed the child's stderr through the watcher until it closes.

        If the stream closes before the sentinel was seen, waits for the
        child to exit and fails the readiness signal.

        Args:
            process: The child process.
            watcher: The readiness watcher for this child.
        """
        if process.stderr is None or self._ready is None:
            return

        try:
            async for chunk in process.stderr:
                try:
                    _ = await watcher.write(chunk)
                except OSError as e:
                    # Stop mirroring but keep scanning, starting with this chunk
                    self._logger.warning("output_forward_failed", error=str(e))
                    watcher.passthrough = DiscardSink()
                    _ = await watcher.write(chunk)

                if watcher.done and self._state is ProcessState.STARTING:
                    self._state = ProcessState.READY
                    self._logger.info("process_ready")
                    await self.emit_event(ProcessEventType.READY)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed by stop(), which is expected
            pass

        if self._ready.settled:
            return

        exit_code = await process.wait()
        if self._state is not ProcessState.STOPPED:
            self._state = ProcessState.FAILED
        msg = (
            f"Process '{self.name}' exited with code {exit_code} "
            + f"before printing {self.spec.ready_sentinel!r}"
        )
        self._logger.error("process_exited_before_ready", exit_code=exit_code)
        await self.emit_event(
            ProcessEventType.FAILED, exit_code=exit_code, message="Exited before ready"
        )
        self._ready.fail(
            ReadinessError(msg, process_name=self.name, exit_code=exit_code)
        )

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Block until the readiness sentinel has been observed.

        Returns immediately if the process is already ready.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Raises:
            RuntimeError: If the process was never started.
            ReadinessError: If the child exited before becoming ready, or
                the timeout elapsed.
        """
        if self._ready is None:
            msg = f"Process '{self.name}' has not been started"
            raise RuntimeError(msg)

        try:
            with anyio.fail_after(timeout):
                await self._ready.wait()
        except TimeoutError as e:
            msg = f"Process '{self.name}' not ready after {timeout}s"
            raise ReadinessError(msg, process_name=self.name, cause=e) from e

    async def env(self) -> list[str]:
        """Run the environment helper and return its `KEY=VALUE` entries.

        Returns:
            The environment contribution, in output order.

        Raises:
            EnvironmentDerivationError: If the helper cannot be run, exits
                non-zero or prints a line that is not `KEY=VALUE`.
        """
        command = self.spec.env_command
        if not command:
            msg = f"Process '{self.name}' has an empty environment command"
            raise EnvironmentDerivationError(msg, process_name=self.name)

        try:
            result = await anyio.run_process(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
                cwd=self.spec.cwd,
            )
        except OSError as e:
            msg = f"Could not run environment helper for '{self.name}': {e}"
            raise EnvironmentDerivationError(
                msg, process_name=self.name, cause=e
            ) from e

        output = result.stdout.decode(errors="replace") if result.stdout else ""
        if result.returncode != 0:
            msg = (
                f"Environment helper for '{self.name}' "
                + f"exited with code {result.returncode}"
            )
            raise EnvironmentDerivationError(
                msg,
                process_name=self.name,
                exit_code=result.returncode,
                output=output,
            )

        entries = parse_env_lines(output)
        for entry in entries:
            key, sep, _ = entry.partition("=")
            if entry and not (sep and key):
                msg = f"Environment helper for '{self.name}' printed {entry!r}"
                raise EnvironmentDerivationError(
                    msg, process_name=self.name, exit_code=0, output=output
                )

        keys = [entry.partition("=")[0] for entry in entries if entry]
        self._logger.debug("environment_derived", keys=keys)
        return entries

    async def stop(self) -> None:
        """Signal the process group and wait for the child to be reaped.

        Sends SIGTERM to the whole group, since the child may have forked
        helpers. If the child is still alive after `stop_timeout`, it alone
        is killed. Reaping problems are logged, not raised.

        Raises:
            ProcessStopError: If the termination signal cannot be delivered.
        """
        process = self._process
        if process is None:
            self._state = ProcessState.STOPPED
            return

        try:
            self._group.send(signal.SIGTERM)
        except ProcessLookupError:
            # Group already gone: everything in it has exited
            pass
        except (OSError, RuntimeError) as e:
            msg = f"Failed to stop process '{self.name}': {e}"
            raise ProcessStopError(msg, process_name=self.name, cause=e) from e

        try:
            with anyio.move_on_after(self.stop_timeout):
                _ = await process.wait()

            if process.returncode is None:
                self._logger.warning("process_kill", timeout=self.stop_timeout)
                process.kill()

            await process.aclose()
        except OSError as e:
            self._logger.warning("process_reap_failed", error=str(e))

        self._state = ProcessState.STOPPED
        self._logger.info("process_stopped", exit_code=process.returncode)
        await self.emit_event(
            ProcessEventType.STOPPED,
            exit_code=process.returncode,
            message="Stopped by supervisor",
        )
        self._process = None
