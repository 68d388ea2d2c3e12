"""JSON formatter for highlight results."""

import json
from typing import Any, Optional, Union

from tshl.models.highlight import HighlightResult, HighlightSpan


def _span_to_dict(span: HighlightSpan, source: Optional[Union[str, bytes]]) -> dict[str, Any]:
    """Convert a HighlightSpan to a dictionary."""
    data: dict[str, Any] = {
        "start": span.start,
        "end": span.end,
        "capture": span.capture,
    }
    if source is not None:
        text = source[span.start : span.end]
        data["text"] = text.decode("utf-8", errors="replace") if isinstance(text, bytes) else text
    return data


def format_as_json(
    result: HighlightResult,
    source: Optional[Union[str, bytes]] = None,
    *,
    pretty: bool = True,
) -> str:
    """Format a highlight result as JSON.

    Args:
        result: The highlight result to format
        source: If given, each span also carries the text it covers
        pretty: If True, format with indentation for readability

    Returns:
        JSON-formatted string
    """
    data = {
        "rule_count": result.rule_count,
        "match_count": result.match_count,
        "diagnostics": result.diagnostics,
        "spans": [_span_to_dict(span, source) for span in result.spans],
    }
    if pretty:
        return json.dumps(data, indent=2)
    return json.dumps(data)
