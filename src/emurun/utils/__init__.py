"""Shared utilities for emurun."""

from ._logging import LogFormatType, create_logger, create_null_logger, log_output

__all__ = ["LogFormatType", "create_logger", "create_null_logger", "log_output"]
