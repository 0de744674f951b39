# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Configuration loading.

Sources are layered as plain dictionaries, lowest precedence first, and the
merged result is validated once into a Config.
"""

import json
import os
import re
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from emurun.exceptions import ConfigError, ConfigLoadError

from ._models import Config, EmulatorConfig

CONFIG_FILENAME = "emurun.toml"
ENV_PREFIX = "EMURUN_"

_BOOLEANS = {"true": True, "1": True, "false": False, "0": False}
_TOML_LOCATION = re.compile(r"at line (?P<line>\d+), column (?P<column>\d+)\)$")


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Load one TOML configuration file.

    Args:
        path: The file to load.

    Returns:
        The file's tables and keys as nested dictionaries.

    Raises:
        ConfigLoadError: If the file cannot be opened or is not valid TOML.
            Syntax errors carry the line and column of the problem.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        line, column = _error_location(e)
        raise ConfigLoadError(msg, path=path, line=line, column=column) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {e}"
        raise ConfigLoadError(msg, path=path) from e


def _error_location(
    error: tomllib.TOMLDecodeError,
) -> tuple[int | None, int | None]:
    """Extract the line and column tomllib appends to its messages."""
    match = _TOML_LOCATION.search(str(error))
    if match is None:
        return None, None
    return int(match["line"]), int(match["column"])


def deep_merge(
    base: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
    override: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Layer `override` on top of `base` without touching either.

    Tables present on both sides are merged key by key. Anything else in
    `override`, arrays included, replaces the base value outright, so an
    `[[emulators]]` list from a higher source replaces the whole default set.

    Returns:
        A new, independent dictionary.
    """
    result = {key: _copy_value(value) for key, value in base.items()}
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = _copy_value(value)
    return result


def _copy_value(value: Any) -> Any:  # pyright: ignore[reportExplicitAny]
    if isinstance(value, Mapping):
        return {k: _copy_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


def parse_env_vars(
    prefix: str = ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Collect configuration values from prefixed environment variables.

    The prefix is dropped, the rest is lowercased and `__` separates nested
    keys, so `EMURUN_LOGGING__LEVEL=debug` becomes `{"logging": {"level":
    "debug"}}`.

    Args:
        prefix: Variable name prefix.
        environ: Variables to read. Defaults to `os.environ`.

    Returns:
        The values found, nested by key path.
    """
    source = os.environ if environ is None else environ
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for name, raw in source.items():
        key = name.removeprefix(prefix)
        if key == name or not key:
            continue
        set_nested_key(result, key.lower().replace("__", "."), _parse_env_value(raw))

    return result


def _parse_env_value(value: str) -> Any:  # pyright: ignore[reportExplicitAny]
    """Infer the type of an environment variable's value.

    Tried in order: boolean (true/false/1/0), int, float (only with a
    decimal point), JSON array or object. Anything else stays a string.
    """
    boolean = _BOOLEANS.get(value.lower())
    if boolean is not None:
        return boolean

    try:
        return int(value)
    except ValueError:
        pass

    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass

    if value[:1] + value[-1:] in ("[]", "{}"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value


def set_nested_key(
    d: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    key_path: str,
    value: Any,  # pyright: ignore[reportExplicitAny]
) -> None:
    """Store `value` under a dotted path, creating tables along the way.

    A non-table value in the way is replaced by a table.

    Example:
        >>> d = {}
        >>> set_nested_key(d, "logging.level", "debug")
        >>> d
        {'logging': {'level': 'debug'}}
    """
    *parents, leaf = key_path.split(".")
    current = d
    for part in parents:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[leaf] = value


def find_config_file(cwd: Path | None = None) -> Path | None:
    """Return `emurun.toml` in the working directory, if it exists."""
    candidate = (cwd or Path.cwd()) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def load_config(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
    *,
    cwd: Path | None = None,
) -> Config:
    """Load configuration from file, environment and overrides.

    Sources, lowest precedence first: built-in defaults, the configuration
    file, `EMURUN_*` environment variables and `overrides`.

    Args:
        path: Explicit configuration file. Must exist. When None,
            `emurun.toml` in `cwd` is used if present.
        overrides: Values taking precedence over every other source, usually
            from command line options.
        cwd: Directory searched for `emurun.toml`. Defaults to the current
            working directory.

    Returns:
        The validated configuration.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or invalid TOML,
            or if the merged values fail validation.
    """
    if path is not None and not path.is_file():
        msg = f"Configuration file not found: {path}"
        raise ConfigLoadError(msg, path=path)

    config_path = path if path is not None else find_config_file(cwd)

    data = read_toml_file(config_path) if config_path is not None else {}
    data = deep_merge(data, parse_env_vars())
    if overrides:
        data = deep_merge(data, overrides)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigLoadError(msg, path=config_path) from e


def select_emulators(
    config: Config,
    names: list[str] | tuple[str, ...] | None = None,
) -> tuple[EmulatorConfig, ...]:
    """Return the emulators whose names are listed, in configuration order.

    Args:
        config: The loaded configuration.
        names: Emulator names to keep. Empty or None keeps every emulator.

    Returns:
        The selected emulators.

    Raises:
        ConfigError: If a name matches no configured emulator.
    """
    if not names:
        return config.emulators

    known = {emulator.name for emulator in config.emulators}
    unknown = [name for name in names if name not in known]
    if unknown:
        msg = (
            f"Unknown emulator(s): {', '.join(unknown)}. "
            + f"Configured: {', '.join(sorted(known)) or 'none'}"
        )
        raise ConfigError(msg)

    wanted = set(names)
    return tuple(emulator for emulator in config.emulators if emulator.name in wanted)
