"""Configuration models.

Pydantic models for the emurun configuration file. All models are frozen
and ignore unknown keys so a newer configuration file still loads.
"""

from enum import StrEnum
from pathlib import Path
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from emurun.presets import PRESETS
from emurun.supervisor import DEFAULT_STOP_TIMEOUT, ManagedProcessSpec


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty logs to standard error).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.TEXT
    file: str = ""


class EmulatorConfig(BaseModel):
    """One `[[emulators]]` entry.

    Attributes:
        name: Unique name, used in log lines and with `--emulator`.
        command: Command and arguments that start the emulator.
        env_command: Command and arguments printing `export KEY=VALUE` lines.
        ready_sentinel: Text on the emulator's stderr that marks it ready.
        cwd: Working directory for the emulator and its helper.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    command: tuple[str, ...] = Field(min_length=1)
    env_command: tuple[str, ...] = Field(min_length=1)
    ready_sentinel: str = Field(min_length=1)
    cwd: Path | None = None

    @classmethod
    def from_spec(cls, spec: ManagedProcessSpec) -> Self:
        """Create an emulator entry from a process spec."""
        return cls(
            name=spec.name,
            command=spec.command,
            env_command=spec.env_command,
            ready_sentinel=spec.ready_sentinel,
            cwd=spec.cwd,
        )

    def to_spec(self) -> ManagedProcessSpec:
        """Build the launch configuration for this emulator."""
        return ManagedProcessSpec(
            name=self.name,
            command=self.command,
            env_command=self.env_command,
            ready_sentinel=self.ready_sentinel,
            cwd=self.cwd,
        )


def _default_emulators() -> tuple[EmulatorConfig, ...]:
    return tuple(EmulatorConfig.from_spec(spec) for spec in PRESETS.values())


class Config(BaseModel):
    """Root emurun configuration.

    Attributes:
        verbose: Mirror emulator output instead of discarding it.
        ready_timeout: Seconds to wait for each emulator to become ready,
            or None to wait indefinitely.
        stop_timeout: Seconds to wait for each emulator after SIGTERM.
        emulators: Emulators to run, in start order.
        logging: Logging configuration.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    verbose: bool = False
    ready_timeout: float | None = Field(default=None, gt=0)
    stop_timeout: float = Field(default=DEFAULT_STOP_TIMEOUT, gt=0)
    emulators: tuple[EmulatorConfig, ...] = Field(default_factory=_default_emulators)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("emulators")
    @classmethod
    def _unique_names(
        cls, value: tuple[EmulatorConfig, ...]
    ) -> tuple[EmulatorConfig, ...]:
        names = [emulator.name for emulator in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"Duplicate emulator names: {', '.join(duplicates)}"
            raise ValueError(msg)
        return value
