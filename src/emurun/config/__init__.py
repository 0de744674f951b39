"""Configuration for emurun.

Configuration comes from built-in defaults, an optional `emurun.toml` file,
`EMURUN_*` environment variables and command line options, in increasing
order of precedence.

Example configuration file:

    verbose = false
    ready_timeout = 60.0

    [logging]
    level = "info"

    [[emulators]]
    name = "pubsub"
    command = ["gcloud", "-q", "beta", "emulators", "pubsub", "start"]
    env_command = ["gcloud", "-q", "beta", "emulators", "pubsub", "env-init"]
    ready_sentinel = "Server started, listening"
"""

from ._loader import (
    CONFIG_FILENAME,
    deep_merge,
    find_config_file,
    load_config,
    parse_env_vars,
    read_toml_file,
    select_emulators,
    set_nested_key,
)
from ._models import Config, EmulatorConfig, LogFormat, LoggingConfig, LogLevel

__all__ = [
    "CONFIG_FILENAME",
    "Config",
    "EmulatorConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "deep_merge",
    "find_config_file",
    "load_config",
    "parse_env_vars",
    "read_toml_file",
    "select_emulators",
    "set_nested_key",
]
