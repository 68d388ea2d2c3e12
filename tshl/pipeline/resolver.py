"""Resolve overlapping captures into one capture name per span."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from tshl.config import ResolverSettings, get_settings
from tshl.models.highlight import HighlightSpan
from tshl.pipeline.query.models import QueryMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    start: int
    end: int
    name: str
    priority: int
    rule_index: int
    depth: int
    ordinal: int
    sequence: int  # Position of the owning match in the stream

    @property
    def order(self) -> tuple[int, int, int, int]:
        return (self.rule_index, self.depth, self.ordinal, self.sequence)

    def strictly_contains(self, other: "_Entry") -> bool:
        return (
            self.start <= other.start
            and other.end <= self.end
            and (self.start, self.end) != (other.start, other.end)
        )


def _collect_entries(matches: Iterable[QueryMatch], settings: ResolverSettings) -> list[_Entry]:
    entries: list[_Entry] = []
    prefix = settings.private_prefix
    for sequence, match in enumerate(matches):
        rule = match.rule
        priority = rule.priority if rule.priority is not None else settings.default_priority
        for capture in match.captures:
            if prefix and capture.name.startswith(prefix):
                continue
            if capture.end_byte <= capture.start_byte:
                continue
            entries.append(
                _Entry(
                    start=capture.start_byte,
                    end=capture.end_byte,
                    name=capture.name,
                    priority=priority,
                    rule_index=rule.index,
                    depth=capture.depth,
                    ordinal=capture.ordinal,
                    sequence=sequence,
                )
            )
    return entries


def _select(active: list[_Entry]) -> _Entry:
    """Pick the capture governing an interval covered by all of ``active``.

    Highest priority first; then captures that strictly contain another
    covering capture defer to it; then the latest declared wins.
    """
    top = max(entry.priority for entry in active)
    candidates = [entry for entry in active if entry.priority == top]
    innermost = [
        entry
        for entry in candidates
        if not any(entry.strictly_contains(other) for other in candidates)
    ]
    return max(innermost, key=lambda entry: entry.order)


def resolve_captures(
    matches: Iterable[QueryMatch],
    settings: Optional[ResolverSettings] = None,
) -> list[HighlightSpan]:
    """
    Fold an ordered match stream into non-overlapping highlight spans.

    Args:
        matches: Matches that survived predicate filtering, in stream order
        settings: Resolver settings (defaults to the global settings)

    Returns:
        Spans ordered by start offset; adjacent spans with the same capture
        name are merged
    """
    settings = settings or get_settings().resolver
    entries = _collect_entries(matches, settings)
    if not entries:
        return []

    boundaries = sorted({e.start for e in entries} | {e.end for e in entries})
    by_start = sorted(entries, key=lambda e: e.start)

    pieces: list[list] = []  # [start, end, name]
    active: list[_Entry] = []
    next_entry = 0
    for start, end in zip(boundaries, boundaries[1:]):
        while next_entry < len(by_start) and by_start[next_entry].start <= start:
            active.append(by_start[next_entry])
            next_entry += 1
        # Every boundary is a start or an end, so whatever is still open at
        # ``start`` covers the whole interval
        active = [e for e in active if e.end > start]
        if not active:
            continue

        winner = _select(active)
        if pieces and pieces[-1][1] == start and pieces[-1][2] == winner.name:
            pieces[-1][1] = end
        else:
            pieces.append([start, end, winner.name])

    logger.debug("Resolved %d capture(s) into %d span(s)", len(entries), len(pieces))
    return [HighlightSpan(start=s, end=e, capture=name) for s, e, name in pieces]
