"""Tests for capture resolution."""

from typing import Optional

from tshl.config import ResolverSettings
from tshl.pipeline.query import Capture, NodePattern, QueryMatch, Rule
from tshl.pipeline.resolver import resolve_captures


def match(
    rule_index: int,
    *captures: tuple[str, int, int],
    priority: Optional[int] = None,
    depth: int = 0,
) -> QueryMatch:
    """A match of rule ``rule_index`` binding ``(name, start, end)`` captures."""
    rule = Rule(index=rule_index, pattern=NodePattern("node"), priority=priority)
    bound = tuple(
        Capture(name, start, end, depth=depth, ordinal=ordinal)
        for ordinal, (name, start, end) in enumerate(captures)
    )
    start = min(c.start_byte for c in bound) if bound else 0
    end = max(c.end_byte for c in bound) if bound else 0
    return QueryMatch(rule=rule, start_byte=start, end_byte=end, captures=bound)


def spans(matches) -> list[tuple[int, int, str]]:
    return [(span.start, span.end, span.capture) for span in resolve_captures(matches)]


class TestContainment:
    """Tests for nested captures."""

    def test_contained_capture_wins(self):
        """Test that a narrower capture overrides a wider one inside it."""
        result = spans([match(0, ("org.headline", 0, 10)), match(0, ("org.tag", 4, 7))])
        assert result == [(0, 4, "org.headline"), (4, 7, "org.tag"), (7, 10, "org.headline")]

    def test_inner_wins_regardless_of_rule_order(self):
        """Test that containment beats declaration order."""
        result = spans([match(1, ("outer", 0, 10)), match(0, ("inner", 2, 4))])
        assert result == [(0, 2, "outer"), (2, 4, "inner"), (4, 10, "outer")]

    def test_same_rule_nested_captures(self):
        """Test captures of one match nested inside each other."""
        result = spans([match(0, ("org.headline.stars", 0, 2), ("org.headline", 0, 8))])
        assert result == [(0, 2, "org.headline.stars"), (2, 8, "org.headline")]


class TestTies:
    """Tests for captures covering the same text."""

    def test_same_span_later_rule_wins(self):
        """Test that the later declared rule wins on identical spans."""
        result = spans([match(0, ("org.cookie", 0, 5)), match(1, ("org.cookie.partial", 0, 5))])
        assert result == [(0, 5, "org.cookie.partial")]

    def test_later_rule_wins_in_any_stream_order(self):
        """Test that the rule index decides, not the stream position."""
        result = spans([match(1, ("b", 0, 5)), match(0, ("a", 0, 5))])
        assert result == [(0, 5, "b")]

    def test_partial_overlap(self):
        """Test that the later rule takes the overlap of partially overlapping captures."""
        result = spans([match(0, ("a", 4, 8)), match(1, ("b", 0, 6))])
        assert result == [(0, 6, "b"), (6, 8, "a")]

    def test_deeper_capture_wins_within_rule(self):
        """Test ties inside one rule go to the later, deeper capture."""
        result = spans([match(0, ("outer", 0, 3)), match(0, ("inner", 0, 3), depth=1)])
        assert result == [(0, 3, "inner")]


class TestPriority:
    """Tests for explicit rule priorities."""

    def test_higher_priority_wins(self):
        """Test that priority beats declaration order."""
        result = spans([match(0, ("a", 0, 5), priority=150), match(1, ("b", 0, 5))])
        assert result == [(0, 5, "a")]

    def test_priority_beats_containment(self):
        """Test that a wide high-priority capture hides narrower ones."""
        result = spans([match(0, ("wide", 0, 10), priority=200), match(1, ("narrow", 2, 4))])
        assert result == [(0, 10, "wide")]

    def test_default_priority_from_settings(self):
        """Test that rules without a priority use the configured default."""
        matches = [match(0, ("a", 0, 5), priority=50), match(1, ("b", 0, 5))]
        low_default = resolve_captures(matches, ResolverSettings(default_priority=10))
        assert [span.capture for span in low_default] == ["a"]


class TestOutput:
    """Tests for the shape of the resolved spans."""

    def test_empty(self):
        """Test that no matches resolve to no spans."""
        assert resolve_captures([]) == []
        assert spans([match(0)]) == []

    def test_private_captures_hidden(self):
        """Test that underscore captures never produce spans."""
        result = spans([match(0, ("_stars", 0, 3), ("org.headline.level3", 4, 9))])
        assert result == [(4, 9, "org.headline.level3")]

    def test_custom_private_prefix(self):
        """Test a configured private prefix."""
        matches = [match(0, ("hidden.x", 0, 3), ("_shown", 4, 6))]
        resolved = resolve_captures(matches, ResolverSettings(private_prefix="hidden."))
        assert [(s.start, s.end, s.capture) for s in resolved] == [(4, 6, "_shown")]

    def test_zero_length_capture_ignored(self):
        """Test that empty captures are dropped."""
        assert spans([match(0, ("a", 3, 3))]) == []

    def test_adjacent_same_name_merged(self):
        """Test that touching pieces with the same capture merge."""
        result = spans([match(0, ("a", 0, 3)), match(0, ("a", 3, 6))])
        assert result == [(0, 6, "a")]

    def test_gaps_are_kept(self):
        """Test that uncovered text produces no span."""
        result = spans([match(0, ("a", 0, 2)), match(0, ("a", 4, 6))])
        assert result == [(0, 2, "a"), (4, 6, "a")]

    def test_spans_do_not_overlap(self):
        """Test that output spans are ordered and disjoint."""
        result = spans(
            [
                match(0, ("a", 0, 20)),
                match(1, ("b", 5, 15)),
                match(2, ("c", 10, 25)),
                match(3, ("d", 12, 13)),
            ]
        )
        for (_, end, _), (start, _, _) in zip(result, result[1:]):
            assert end <= start
        assert result == [
            (0, 5, "a"),
            (5, 10, "b"),
            (10, 12, "c"),
            (12, 13, "d"),
            (13, 25, "c"),
        ]
