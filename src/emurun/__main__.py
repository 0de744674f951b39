"""Allow running emurun with `python -m emurun`."""

from emurun.cli import main

if __name__ == "__main__":
    main()
