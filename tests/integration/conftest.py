import contextlib
import json
import os
import signal
import subprocess
import sys
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.integration)


@dataclass(frozen=True, slots=True)
class EmulatorEntry:
    """A fake emulator entry for `emurun.toml`."""

    name: str
    command: Sequence[str]
    env_command: Sequence[str]
    ready_sentinel: str = "Server started, listening"

    def to_toml(self) -> str:
        # JSON strings and arrays are valid TOML values
        return (
            "[[emulators]]\n"
            + f"name = {json.dumps(self.name)}\n"
            + f"command = {json.dumps(list(self.command))}\n"
            + f"env_command = {json.dumps(list(self.env_command))}\n"
            + f"ready_sentinel = {json.dumps(self.ready_sentinel)}\n"
        )


@dataclass(frozen=True, slots=True)
class EmurunEnv:
    """Isolated working directory for running emurun as a subprocess."""

    root: Path
    fake_emulator: Path

    def emulator(self, name: str, *env_entries: str) -> EmulatorEntry:
        """Entry for a fake emulator that contributes `env_entries`."""
        return EmulatorEntry(
            name=name,
            command=(*self.fake(), "start", str(self.marker(name))),
            env_command=(*self.fake(), "env", *env_entries),
        )

    def fake(self) -> tuple[str, ...]:
        """Command prefix running the fake emulator script."""
        return (sys.executable, str(self.fake_emulator))

    def marker(self, name: str) -> Path:
        """File the named fake emulator writes when it receives SIGTERM."""
        return self.root / f"{name}.stopped"

    def write_config(
        self, *entries: EmulatorEntry, ready_timeout: float = 20.0
    ) -> Path:
        path = self.root / "emurun.toml"
        body = f"ready_timeout = {ready_timeout}\nstop_timeout = 5.0\n\n"
        body += "\n".join(entry.to_toml() for entry in entries)
        _ = path.write_text(body)
        return path

    def command(self, *args: str) -> list[str]:
        return [sys.executable, "-m", "emurun", *args]

    def environ(self, **extra: str) -> dict[str, str]:
        env = {k: v for k, v in os.environ.items() if not k.startswith("EMURUN_")}
        env.update(extra)
        return env


RunEmurun = Callable[..., subprocess.CompletedProcess[str]]
SpawnEmurun = Callable[..., subprocess.Popen[str]]

SRC_DIR = Path(__file__).parents[2] / "src"


@pytest.fixture
def emurun_env(tmp_path: Path, fake_emulator: Path) -> EmurunEnv:
    return EmurunEnv(root=tmp_path, fake_emulator=fake_emulator)


@pytest.fixture
def spawn_emurun(emurun_env: EmurunEnv) -> Iterator[SpawnEmurun]:
    """Start `python -m emurun ARGS...` in its own session.

    The supervisor signals its whole process group, so it must never share
    one with the test runner. Whatever is left in the group afterwards is
    killed.
    """
    spawned: list[subprocess.Popen[str]] = []

    def _spawn(*args: str, **extra_env: str) -> subprocess.Popen[str]:
        env = emurun_env.environ(**extra_env)
        env["PYTHONPATH"] = os.pathsep.join(
            filter(None, [str(SRC_DIR), env.get("PYTHONPATH")])
        )
        process = subprocess.Popen(  # noqa: S603
            emurun_env.command(*args),
            cwd=emurun_env.root,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
        spawned.append(process)
        return process

    yield _spawn

    for process in spawned:
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
        if process.poll() is None:
            _ = process.wait()


@pytest.fixture
def run_emurun(spawn_emurun: SpawnEmurun) -> RunEmurun:
    """Run emurun to completion and return its exit status and output."""

    def _run(*args: str, **extra_env: str) -> subprocess.CompletedProcess[str]:
        process = spawn_emurun(*args, **extra_env)
        stdout, stderr = process.communicate(timeout=60)
        return subprocess.CompletedProcess(
            process.args, process.returncode, stdout, stderr
        )

    return _run
