"""Data models for the supervisor system.

This module defines the core data types for managed processes:
- ManagedProcessSpec: Immutable launch configuration
- ProcessState: Lifecycle states for managed processes
- ProcessEventType: Types of lifecycle events
- ProcessEvent: Immutable event records
"""

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003 - Used in runtime type annotations
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations


class ProcessState(StrEnum):
    """Managed process lifecycle states.

    - UNSTARTED: start() has not been called
    - STARTING: The child is running but has not printed its sentinel
    - READY: The readiness sentinel has been observed
    - STOPPED: The child has been signalled and reaped
    - FAILED: The child exited before becoming ready
    """

    UNSTARTED = "unstarted"
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


class ProcessEventType(StrEnum):
    """Types of managed process lifecycle events."""

    STARTED = "started"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ProcessEvent:
    """Immutable managed process lifecycle event.

    Attributes:
        process_name: Name of the process that generated the event.
        event_type: Type of lifecycle event.
        timestamp: When the event happened, timezone-aware UTC.
        pid: Process ID if applicable.
        exit_code: Exit code if the process terminated.
        message: Optional human-readable message.
    """

    process_name: str
    event_type: ProcessEventType
    timestamp: datetime
    pid: int | None = None
    exit_code: int | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ManagedProcessSpec:
    """Launch configuration for a managed process.

    Attributes:
        name: Unique identifier for the process.
        command: Command and arguments that start the process.
        env_command: Command and arguments of the helper that prints the
            process's environment contribution as `export KEY=VALUE` lines.
        ready_sentinel: Substring of the process's standard error that
            marks it as ready.
        cwd: Working directory for the process and its helper.
    """

    name: str
    command: tuple[str, ...]
    env_command: tuple[str, ...]
    ready_sentinel: str
    cwd: Path | None = None
