"""Supervisor package for running a command alongside emulator processes.

This package launches backing service emulators as child processes, waits
until each one prints its readiness sentinel, merges the environment
variables they advertise into the ambient environment, runs a target
command with that environment and stops the emulators when it exits.

Key Components:
    - ManagedProcessSpec: Launch configuration for a managed process
    - ProcessState: Lifecycle state enumeration
    - ProcessEvent: Lifecycle event records
    - ByteSink / EventSink: Protocols for output and event consumers
    - ReadySignal: One-shot readiness primitive
    - ReadinessWatcher: Sentinel scanner over a live output stream
    - ProcessGroup: Process-group signalling and signal forwarding
    - ManagedProcess: Single process lifecycle manager
    - Supervisor: Orchestrates one run of the target command

Example:
    >>> from emurun.supervisor import ManagedProcessSpec, Supervisor
    >>> spec = ManagedProcessSpec(
    ...     name="pubsub",
    ...     command=("gcloud", "beta", "emulators", "pubsub", "start"),
    ...     env_command=("gcloud", "beta", "emulators", "pubsub", "env-init"),
    ...     ready_sentinel="Server started, listening",
    ... )
    >>> supervisor = Supervisor([spec])
    >>> exit_code = await supervisor.run(["go", "test", "./..."])
"""

from ._environment import build_environment, parse_env_lines
from ._group import FORWARDED_SIGNALS, ProcessGroup
from ._models import (
    ManagedProcessSpec,
    ProcessEvent,
    ProcessEventType,
    ProcessState,
)
from ._output import ConsoleEventSink, DiscardSink, StreamSink
from ._process import DEFAULT_STOP_TIMEOUT, ManagedProcess
from ._protocol import ByteSink, EventSink
from ._readiness import ReadinessWatcher, ReadySignal
from ._supervisor import Supervisor, exit_status

__all__ = [
    "DEFAULT_STOP_TIMEOUT",
    "FORWARDED_SIGNALS",
    "ByteSink",
    "ConsoleEventSink",
    "DiscardSink",
    "EventSink",
    "ManagedProcess",
    "ManagedProcessSpec",
    "ProcessEvent",
    "ProcessEventType",
    "ProcessGroup",
    "ProcessState",
    "ReadinessWatcher",
    "ReadySignal",
    "StreamSink",
    "Supervisor",
    "build_environment",
    "exit_status",
    "parse_env_lines",
]
