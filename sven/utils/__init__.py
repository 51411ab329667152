"""Utility functions."""

from sven.utils.shell import SUPPORTED_SHELLS, escape_value, format_export

__all__ = ["SUPPORTED_SHELLS", "escape_value", "format_export"]
