"""Structural matching of compiled rules against a syntax tree."""

import logging
from collections.abc import Iterator, Sequence
from typing import Optional

from tshl.pipeline.tree import SyntaxNode, walk

from .models import (
    AlternationPattern,
    Capture,
    CaptureRef,
    ChildItem,
    NodePattern,
    Pattern,
    QueryMatch,
    Quantifier,
    Rule,
)

logger = logging.getLogger(__name__)

Captures = tuple[Capture, ...]
Step = tuple[int, Captures]  # (index after the consumed siblings, captures so far)


def _next_named(nodes: Sequence[SyntaxNode], pos: int) -> int:
    """Index of the first named node at or after ``pos`` (len(nodes) if none)."""
    while pos < len(nodes) and not nodes[pos].is_named:
        pos += 1
    return pos


def _bind(
    refs: tuple[CaptureRef, ...], nodes: Sequence[SyntaxNode], start: int, end: int, caps: Captures
) -> Captures:
    """Bind capture names to the span of ``nodes[start:end]``."""
    if not refs or end <= start:
        return caps
    start_byte = nodes[start].start_byte
    end_byte = nodes[end - 1].end_byte
    return caps + tuple(
        Capture(ref.name, start_byte, end_byte, ref.depth, ref.ordinal) for ref in refs
    )


class Matcher:
    """Finds every structural match of a set of rules in a tree.

    Matching never mutates the tree and keeps no state between calls apart
    from a per-node-type index of candidate rules.
    """

    def __init__(self, rules: Sequence[Rule]):
        self.rules = sorted(rules, key=lambda rule: rule.index)
        self._by_kind: dict[str, list[Rule]] = {}
        self._wildcard: list[Rule] = []
        for rule in self.rules:
            kinds = rule.root_kinds()
            if kinds is None:
                self._wildcard.append(rule)
                continue
            for kind in kinds:
                self._by_kind.setdefault(kind, []).append(rule)
        self._candidates: dict[str, list[Rule]] = {}

    def candidate_rules(self, node_type: str) -> list[Rule]:
        """Rules whose top-level pattern could start on a node of this type."""
        if node_type not in self._candidates:
            merged = self._by_kind.get(node_type, []) + self._wildcard
            self._candidates[node_type] = sorted(merged, key=lambda rule: rule.index)
        return self._candidates[node_type]

    def matches(self, root: SyntaxNode) -> Iterator[QueryMatch]:
        """
        Yield all matches in traversal order.

        Matches at the same node come out in rule declaration order.

        Args:
            root: Root of the tree to search

        Yields:
            One QueryMatch per distinct capture set of each rule at each node
        """
        for node, parent, siblings, index in walk(root):
            for rule in self.candidate_rules(node.type):
                yield from self._match_at(rule, parent, siblings, index)

    def match_rule(self, root: SyntaxNode, rule: Rule) -> Iterator[tuple[int, QueryMatch]]:
        """Yield (traversal position, match) for a single rule.

        Independent of any other rule, so separate rules can be matched on
        separate threads and merged by position afterwards.
        """
        kinds = rule.root_kinds()
        for position, (node, parent, siblings, index) in enumerate(walk(root)):
            if kinds is not None and node.type not in kinds:
                continue
            for match in self._match_at(rule, parent, siblings, index):
                yield position, match

    def _match_at(
        self,
        rule: Rule,
        parent: Optional[SyntaxNode],
        siblings: Sequence[SyntaxNode],
        index: int,
    ) -> Iterator[QueryMatch]:
        seen: set[Captures] = set()
        for end, caps in self._consume_item(rule.pattern, parent, siblings, index, ()):
            if end <= index or caps in seen:
                continue
            seen.add(caps)
            yield QueryMatch(
                rule=rule,
                start_byte=siblings[index].start_byte,
                end_byte=siblings[end - 1].end_byte,
                captures=caps,
            )
            if rule.pattern.quantifier != Quantifier.ONE:
                # A repeated top-level pattern reports only its longest run
                return

    # Single items

    def _consume_item(
        self,
        pattern: Pattern,
        parent: Optional[SyntaxNode],
        nodes: Sequence[SyntaxNode],
        start: int,
        caps: Captures,
    ) -> Iterator[Step]:
        """Match ``pattern`` (quantifier and captures included) starting exactly at ``start``."""
        if pattern.quantifier == Quantifier.ONE:
            for end, found in self._consume_once(pattern, parent, nodes, start, caps):
                yield end, _bind(pattern.captures, nodes, start, end, found)
            return

        runs = self._run_from(pattern, None, parent, nodes, start, caps)
        for end, found in reversed(runs):
            yield end, _bind(pattern.captures, nodes, start, end, found)
        if pattern.quantifier.optional:
            yield start, caps

    def _consume_once(
        self,
        pattern: Pattern,
        parent: Optional[SyntaxNode],
        nodes: Sequence[SyntaxNode],
        start: int,
        caps: Captures,
    ) -> Iterator[Step]:
        """Match one repetition of ``pattern`` at ``start``, without its own captures."""
        if start >= len(nodes):
            return
        if isinstance(pattern, NodePattern):
            for found in self._match_node(pattern, nodes[start], caps):
                yield start + 1, found
        elif isinstance(pattern, AlternationPattern):
            for alternative in pattern.alternatives:
                yield from self._consume_item(alternative, parent, nodes, start, caps)
        else:
            yield from self._match_sequence(
                pattern.children, 0, parent, nodes, start, caps, pattern.anchor_end, exact=True
            )

    def _match_node(self, pattern: NodePattern, node: SyntaxNode, caps: Captures) -> Iterator[Captures]:
        if not pattern.accepts(node.type, node.is_named):
            return
        if pattern.negated_fields:
            present = {node.field_name_for_child(i) for i in range(len(node.children))}
            if any(name in present for name in pattern.negated_fields):
                return
        if not pattern.children:
            yield caps
            return
        children = list(node.children)
        for _, found in self._match_sequence(
            pattern.children, 0, node, children, 0, caps, pattern.anchor_end
        ):
            yield found

    # Repetition

    def _run_from(
        self,
        pattern: Pattern,
        field: Optional[str],
        parent: Optional[SyntaxNode],
        nodes: Sequence[SyntaxNode],
        start: int,
        caps: Captures,
    ) -> list[Step]:
        """Greedy repetitions of ``pattern`` beginning exactly at ``start``.

        Returns one step per repetition count (1, 2, ...). Repetitions must be
        consecutive, apart from anonymous tokens between named repetitions.
        The first successful alternative of each repetition is kept, so the
        run is deterministic.
        """
        runs: list[Step] = []
        limit = 1 if pattern.quantifier == Quantifier.ZERO_OR_ONE else len(nodes)
        cursor, current = start, caps
        while len(runs) < limit and cursor < len(nodes):
            step = self._one_repetition(pattern, field, parent, nodes, cursor, current)
            if step is None and runs and _next_named(nodes, cursor) != cursor:
                step = self._one_repetition(
                    pattern, field, parent, nodes, _next_named(nodes, cursor), current
                )
            if step is None or step[0] <= cursor:
                break
            cursor, current = step
            runs.append(step)
        return runs

    def _one_repetition(
        self,
        pattern: Pattern,
        field: Optional[str],
        parent: Optional[SyntaxNode],
        nodes: Sequence[SyntaxNode],
        start: int,
        caps: Captures,
    ) -> Optional[Step]:
        if not self._field_ok(field, parent, start):
            return None
        return next(iter(self._consume_once(pattern, parent, nodes, start, caps)), None)

    # Sibling sequences

    @staticmethod
    def _field_ok(field: Optional[str], parent: Optional[SyntaxNode], index: int) -> bool:
        if field is None:
            return True
        if parent is None:
            return False
        return parent.field_name_for_child(index) == field

    @staticmethod
    def _starts(item: ChildItem, nodes: Sequence[SyntaxNode], pos: int, exact: bool) -> range:
        if exact:
            return range(pos, pos + 1)
        if item.anchored:
            first = _next_named(nodes, pos)
            return range(first, first + 1)
        return range(pos, len(nodes))

    def _match_sequence(
        self,
        items: tuple[ChildItem, ...],
        i: int,
        parent: Optional[SyntaxNode],
        nodes: Sequence[SyntaxNode],
        pos: int,
        caps: Captures,
        anchor_end: bool,
        exact: bool = False,
    ) -> Iterator[Step]:
        """Match ``items[i:]`` against ``nodes[pos:]`` left to right.

        Unanchored items may skip siblings; anchored items must take the next
        named sibling. Quantified items are greedy and give back repetitions
        only when the rest of the sequence cannot match otherwise; an
        unanchored one then moves on to runs starting further right. With
        ``exact`` the first item must start at ``pos``.
        """
        if i == len(items):
            if anchor_end and _next_named(nodes, pos) < len(nodes):
                return
            yield pos, caps
            return

        item = items[i]
        pattern = item.pattern
        starts = self._starts(item, nodes, pos, exact and i == 0)

        if pattern.quantifier == Quantifier.ONE:
            for j in starts:
                if j >= len(nodes) or not self._field_ok(item.field, parent, j):
                    continue
                for end, found in self._consume_once(pattern, parent, nodes, j, caps):
                    found = _bind(pattern.captures, nodes, j, end, found)
                    yield from self._match_sequence(items, i + 1, parent, nodes, end, found, anchor_end)
            return

        def candidates() -> Iterator[tuple[int, int, Captures]]:
            # Every start position in order, longest run first at each one;
            # the empty run comes last.
            for j in starts:
                runs = self._run_from(pattern, item.field, parent, nodes, j, caps)
                for end, found in reversed(runs):
                    yield j, end, found
            if pattern.quantifier.optional:
                yield pos, pos, caps

        # Stop at the first candidate that lets the remainder match
        for j, end, found in candidates():
            matched = False
            bound = _bind(pattern.captures, nodes, j, end, found)
            for step in self._match_sequence(items, i + 1, parent, nodes, end, bound, anchor_end):
                matched = True
                yield step
            if matched:
                return
