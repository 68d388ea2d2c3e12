"""Output formatters for tshl results."""

from tshl.formatters.json import format_as_json

__all__ = ["format_as_json"]
