"""Environment contribution parsing and merging."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

EXPORT_PREFIX = "export "


def parse_env_lines(output: str) -> list[str]:
    """Parse the output of an environment helper into `KEY=VALUE` entries.

    Exactly one leading `export ` is stripped from each line and trailing
    empty lines are dropped. Windows line endings are tolerated.

    Args:
        output: Combined output of the helper command.

    Returns:
        The entries in output order.

    Example:
        >>> parse_env_lines("export A=1\\nexport B=2\\n")
        ['A=1', 'B=2']
    """
    lines = [line.removesuffix("\r") for line in output.split("\n")]
    while lines and not lines[-1]:
        _ = lines.pop()
    return [line.removeprefix(EXPORT_PREFIX) for line in lines]


def build_environment(
    contributions: Iterable[Iterable[str]],
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge environment contributions onto the ambient environment.

    Entries are applied in order, so a later entry overrides an earlier one
    with the same key, including ambient variables.

    Args:
        contributions: `KEY=VALUE` entry lists, one per managed process, in
            start order.
        base: Starting environment. Defaults to `os.environ`.

    Returns:
        The merged environment.

    Raises:
        ValueError: If an entry has no `=`.
    """
    env = dict(os.environ if base is None else base)
    for entries in contributions:
        for entry in entries:
            if not entry:
                continue
            key, sep, value = entry.partition("=")
            if not sep or not key:
                msg = f"Malformed environment entry: {entry!r}"
                raise ValueError(msg)
            env[key] = value
    return env
