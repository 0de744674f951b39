"""emurun: run a command alongside local service emulators."""

from emurun.exceptions import EmurunError

__version__ = "0.1.0"

__all__ = ["EmurunError", "__version__"]
