"""Managed process lifecycle against real child processes.

Children here run in the test runner's own process group, so stopping goes
through a stand-in group that signals each registered child directly.
"""

import os
import signal
import sys
import textwrap
from collections.abc import Callable
from datetime import UTC

import anyio
import pytest
from anyio.abc import TaskGroup

from emurun.exceptions import (
    AlreadyStartedError,
    EnvironmentDerivationError,
    ProcessStartError,
    ReadinessError,
)
from emurun.supervisor import (
    ManagedProcess,
    ManagedProcessSpec,
    ProcessEventType,
    ProcessState,
)
from tests.conftest import RecordingByteSink, RecordingEventSink

pytestmark = pytest.mark.anyio

SENTINEL = "Server started, listening"

READY_CHILD = """
import sys, time
sys.stderr.write("booting\\n"); sys.stderr.flush()
time.sleep(0.05)
sys.stderr.write("Server sta"); sys.stderr.flush()
time.sleep(0.05)
sys.stderr.write("rted, listening on 8085\\n"); sys.stderr.flush()
time.sleep(30)
"""

EXITS_EARLY = """
import sys
sys.stderr.write("port already in use\\n")
sys.exit(3)
"""

IGNORES_SIGTERM = """
import signal, sys, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
sys.stderr.write("Server started, listening\\n"); sys.stderr.flush()
time.sleep(30)
"""

SILENT = "import time; time.sleep(30)"


class DirectGroup:
    """Signals registered children one by one."""

    def __init__(self) -> None:
        self.pids: list[int] = []
        self.sent: list[signal.Signals] = []

    def send(self, sig: signal.Signals) -> None:
        self.sent.append(sig)
        for pid in self.pids:
            os.kill(pid, sig)


class BrokenPipeSink:
    """Pass-through whose reader has gone away."""

    def __init__(self) -> None:
        self.attempts = 0

    async def write(self, data: bytes) -> None:
        self.attempts += 1
        raise BrokenPipeError(32, "Broken pipe")


def python(source: str) -> tuple[str, ...]:
    return (sys.executable, "-c", textwrap.dedent(source))


def make_spec(
    command: tuple[str, ...] = (),
    env_command: tuple[str, ...] = (),
) -> ManagedProcessSpec:
    return ManagedProcessSpec(
        name="pubsub",
        command=command or python(READY_CHILD),
        env_command=env_command or python("print('export A=1')"),
        ready_sentinel=SENTINEL,
    )


MakeProcess = Callable[..., ManagedProcess]


@pytest.fixture
def group() -> DirectGroup:
    return DirectGroup()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def make_process(group: DirectGroup, events: RecordingEventSink) -> MakeProcess:
    def _make(spec: ManagedProcessSpec, **kwargs: object) -> ManagedProcess:
        kwargs.setdefault("stop_timeout", 5.0)
        return ManagedProcess(
            spec,
            group,  # pyright: ignore[reportArgumentType]
            event_sink=events,
            **kwargs,  # pyright: ignore[reportArgumentType]
        )

    return _make


async def start(process: ManagedProcess, tg: TaskGroup, group: DirectGroup) -> int:
    await process.start(tg)
    assert process.pid is not None
    group.pids.append(process.pid)
    return process.pid


class TestLifecycle:
    async def test_start_ready_stop(
        self, make_process: MakeProcess, group: DirectGroup, events: RecordingEventSink
    ) -> None:
        passthrough = RecordingByteSink()
        process = make_process(make_spec(), passthrough=passthrough)
        assert process.state is ProcessState.UNSTARTED

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)
                assert process.state is ProcessState.STARTING

                await process.wait_ready(10)
                assert process.ready
                assert process.state is ProcessState.READY

                await process.stop()

        assert process.state is ProcessState.STOPPED
        assert process.pid is None
        assert group.sent == [signal.SIGTERM]
        assert passthrough.data.startswith(b"booting\nServer started, listening")
        assert [e.event_type for e in events.events] == [
            ProcessEventType.STARTED,
            ProcessEventType.READY,
            ProcessEventType.STOPPED,
        ]
        assert events.events[-1].exit_code == -signal.SIGTERM
        assert all(e.timestamp.tzinfo is UTC for e in events.events)

    async def test_wait_ready_returns_immediately_when_ready(
        self, make_process: MakeProcess, group: DirectGroup
    ) -> None:
        process = make_process(make_spec())

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)
                try:
                    await process.wait_ready(10)
                    with anyio.fail_after(0.1):
                        await process.wait_ready()
                finally:
                    await process.stop()

    async def test_broken_passthrough_still_detects_sentinel(
        self, make_process: MakeProcess, group: DirectGroup
    ) -> None:
        passthrough = BrokenPipeSink()
        process = make_process(make_spec(), passthrough=passthrough)

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)
                try:
                    await process.wait_ready(10)
                finally:
                    await process.stop()

        assert passthrough.attempts == 1

    async def test_start_twice_keeps_first_child(
        self, make_process: MakeProcess, group: DirectGroup
    ) -> None:
        process = make_process(make_spec())

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                first_pid = await start(process, tg, group)
                try:
                    with pytest.raises(AlreadyStartedError):
                        await process.start(tg)

                    assert process.pid == first_pid
                    os.kill(first_pid, 0)
                    await process.wait_ready(10)
                finally:
                    await process.stop()

    async def test_exit_before_ready_fails_readiness(
        self, make_process: MakeProcess, group: DirectGroup, events: RecordingEventSink
    ) -> None:
        process = make_process(make_spec(command=python(EXITS_EARLY)))

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)

                with pytest.raises(ReadinessError, match="before printing") as exc_info:
                    await process.wait_ready()

                assert exc_info.value.exit_code == 3
                assert exc_info.value.process_name == "pubsub"
                assert process.state is ProcessState.FAILED

                # Stopping a child that already exited neither blocks nor fails
                await process.stop()

        assert process.state is ProcessState.STOPPED
        assert [e.event_type for e in events.events] == [
            ProcessEventType.STARTED,
            ProcessEventType.FAILED,
            ProcessEventType.STOPPED,
        ]

    async def test_wait_ready_timeout(
        self, make_process: MakeProcess, group: DirectGroup
    ) -> None:
        process = make_process(make_spec(command=python(SILENT)))

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)
                try:
                    with pytest.raises(ReadinessError, match="not ready after"):
                        await process.wait_ready(0.2)
                finally:
                    await process.stop()

        assert process.state is ProcessState.STOPPED

    async def test_stop_kills_after_timeout(
        self, make_process: MakeProcess, group: DirectGroup, events: RecordingEventSink
    ) -> None:
        process = make_process(
            make_spec(command=python(IGNORES_SIGTERM)), stop_timeout=0.3
        )

        with anyio.fail_after(20):
            async with anyio.create_task_group() as tg:
                _ = await start(process, tg, group)
                await process.wait_ready(10)
                await process.stop()

        assert process.state is ProcessState.STOPPED
        assert events.events[-1].exit_code == -signal.SIGKILL

    async def test_start_failure(self, make_process: MakeProcess) -> None:
        process = make_process(make_spec(command=("/nonexistent/emulator",)))

        async with anyio.create_task_group() as tg:
            with pytest.raises(ProcessStartError, match="Failed to start process"):
                await process.start(tg)

        assert process.state is ProcessState.FAILED
        assert process.pid is None

    async def test_stop_without_start(
        self, make_process: MakeProcess, group: DirectGroup
    ) -> None:
        process = make_process(make_spec())

        await process.stop()

        assert process.state is ProcessState.STOPPED
        assert group.sent == []

    async def test_wait_ready_without_start(self, make_process: MakeProcess) -> None:
        process = make_process(make_spec())

        with pytest.raises(RuntimeError, match="has not been started"):
            await process.wait_ready()


class TestEnv:
    async def test_parses_export_lines(self, make_process: MakeProcess) -> None:
        helper = python("print('export A=1'); print('export B=2')")
        process = make_process(make_spec(env_command=helper))

        assert await process.env() == ["A=1", "B=2"]

    async def test_helper_failure(self, make_process: MakeProcess) -> None:
        helper = python("import sys; print('ERROR: no credentials'); sys.exit(2)")
        process = make_process(make_spec(env_command=helper))

        with pytest.raises(EnvironmentDerivationError) as exc_info:
            _ = await process.env()

        error = exc_info.value
        assert error.exit_code == 2
        assert "ERROR: no credentials" in error.output
        assert error.process_name == "pubsub"

    async def test_helper_stderr_is_captured(self, make_process: MakeProcess) -> None:
        helper = python("import sys; sys.stderr.write('boom\\n'); sys.exit(1)")
        process = make_process(make_spec(env_command=helper))

        with pytest.raises(EnvironmentDerivationError) as exc_info:
            _ = await process.env()

        assert "boom" in exc_info.value.output

    async def test_unparseable_line(self, make_process: MakeProcess) -> None:
        helper = python("print('export A=1'); print('Welcome to gcloud')")
        process = make_process(make_spec(env_command=helper))

        with pytest.raises(EnvironmentDerivationError, match="Welcome to gcloud"):
            _ = await process.env()

    async def test_missing_helper(self, make_process: MakeProcess) -> None:
        process = make_process(make_spec(env_command=("/nonexistent/helper",)))

        with pytest.raises(EnvironmentDerivationError) as exc_info:
            _ = await process.env()

        assert isinstance(exc_info.value.cause, OSError)
