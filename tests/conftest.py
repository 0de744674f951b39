"""Shared test fixtures for emurun tests."""

import io
import os
from pathlib import Path

import pytest
from rich.console import Console

from emurun.supervisor import ProcessEvent


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def console() -> Console:
    """Rich console writing to an in-memory buffer."""
    return Console(file=io.StringIO(), force_terminal=False, width=200)


@pytest.fixture(autouse=True)
def _clean_emurun_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep EMURUN_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("EMURUN_"):
            monkeypatch.delenv(key)


class RecordingByteSink:
    """Byte sink that keeps every chunk written to it."""

    def __init__(self) -> None:
        self.chunks: list[bytes] = []

    async def write(self, data: bytes) -> None:
        self.chunks.append(data)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


class RecordingEventSink:
    """Event sink that keeps every lifecycle event written to it."""

    def __init__(self) -> None:
        self.events: list[ProcessEvent] = []

    async def write_event(self, event: ProcessEvent) -> None:
        self.events.append(event)


FAKE_EMULATOR = """\
import pathlib
import signal
import sys
import time

mode = sys.argv[1]

if mode == "env":
    for entry in sys.argv[2:]:
        print(f"export {entry}")
    sys.exit(0)

if mode == "fail":
    sys.stderr.write("could not bind port\\n")
    sys.exit(4)

marker = pathlib.Path(sys.argv[2])


def _stop(signum, frame):
    marker.write_text("stopped")
    sys.exit(0)


signal.signal(signal.SIGTERM, _stop)
sys.stderr.write("booting\\n")
sys.stderr.flush()
sys.stderr.write("Server started, listening on 8085\\n")
sys.stderr.flush()
while True:
    time.sleep(0.05)
"""


@pytest.fixture
def fake_emulator(tmp_path: Path) -> Path:
    """Write a scriptable stand-in for an emulator and return its path.

    Modes:
        start MARKER: print the sentinel, run until SIGTERM, then write MARKER.
        env KEY=VALUE...: print `export KEY=VALUE` lines.
        fail: exit 4 without printing the sentinel.
    """
    script = tmp_path / "fake_emulator.py"
    _ = script.write_text(FAKE_EMULATOR)
    return script
