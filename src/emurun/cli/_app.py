"""The command-line interface for emurun."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated, Never

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from emurun.config import LogLevel, load_config, select_emulators
from emurun.exceptions import (
    ConfigError,
    EnvironmentDerivationError,
    StartupError,
    TargetExecutionError,
    TeardownError,
)
from emurun.utils import create_logger, log_output

from ._runner import create_supervisor, run_target
from ._shared import ExitCode, exit_with_error

HELP = "Run a command alongside local service emulators."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Create the emurun application.

    Args:
        console: Console for regular output.
        error_console: Console for errors and emulator status lines.
        exit_on_error: Exit on parse errors instead of raising them.

    Returns:
        The cyclopts application.
    """
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="emurun",
        help=HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.default
    def _default(  # noqa: PLR0913  # pyright: ignore[reportUnusedFunction]
        *target: Annotated[str, Parameter(allow_leading_hyphen=True)],
        verbose: Annotated[
            bool,
            Parameter(name=["--verbose", "-v"], help="Mirror emulator output"),
        ] = False,
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
        emulator: Annotated[
            list[str] | None,
            Parameter(
                name=["--emulator", "-e"],
                help="Run only the named emulator. Repeat to select several.",
            ),
        ] = None,
        ready_timeout: Annotated[
            float | None,
            Parameter(
                name="--ready-timeout",
                help="Seconds to wait for each emulator to become ready",
            ),
        ] = None,
        log_level: Annotated[
            LogLevel | None, Parameter(name="--log-level", help="Log level")
        ] = None,
    ) -> Never:
        """Start the emulators, run TARGET with their environment, stop them.

        Separate TARGET from emurun's own options with `--`.

        Args:
            target: The command to run and its arguments.
            verbose: Mirror emulator output to this terminal.
            config: Explicit path to config file.
            emulator: Names of the emulators to run. Defaults to all.
            ready_timeout: Seconds to wait for each emulator to become ready.
            log_level: Log level threshold.
        """
        if not target:
            exit_with_error(
                "No target command given", ExitCode.USAGE_ERROR, console=error_console
            )

        # Build CLI overrides from flags
        cli_overrides: dict[str, object] = {}
        if verbose:
            cli_overrides["verbose"] = True
        if ready_timeout is not None:
            cli_overrides["ready_timeout"] = ready_timeout
        if log_level is not None:
            cli_overrides["logging"] = {"level": log_level.value}

        try:
            loaded_config = load_config(config, cli_overrides)
            emulators = select_emulators(loaded_config, emulator)
        except ConfigError as e:
            exit_with_error(str(e), console=error_console)

        with log_output(loaded_config.logging.file) as log_stream:
            logger = create_logger(
                level=loaded_config.logging.level.value,
                log_format=loaded_config.logging.format.value,  # type: ignore[arg-type]
                stream=log_stream,
            )
            supervisor = create_supervisor(
                loaded_config, emulators, console=error_console, logger=logger
            )

            try:
                exit_code = anyio.run(run_target, supervisor, target)
            except StartupError as e:
                exit_with_error(f"Emulator startup failed: {e}", console=error_console)
            except EnvironmentDerivationError as e:
                message = f"Environment derivation failed: {e}"
                if e.output.strip():
                    message += f"\n{e.output.rstrip()}"
                exit_with_error(message, console=error_console)
            except TargetExecutionError as e:
                exit_with_error(
                    str(e), ExitCode.TARGET_NOT_EXECUTABLE, console=error_console
                )
            except TeardownError as e:
                exit_with_error(
                    f"Emulator teardown failed: {e}", console=error_console
                )

        raise SystemExit(exit_code)

    return app


def main() -> None:
    """Default entrypoint for the `emurun` CLI."""
    app = create_app()
    app()
