"""Data models for compiled highlight queries."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class Quantifier(Enum):
    """Repetition markers for sub-patterns."""

    ONE = ""
    ZERO_OR_ONE = "?"
    ZERO_OR_MORE = "*"
    ONE_OR_MORE = "+"

    @property
    def optional(self) -> bool:
        return self in (Quantifier.ZERO_OR_ONE, Quantifier.ZERO_OR_MORE)


class PredicateOperator(Enum):
    """Supported text predicates."""

    MATCH = "match?"
    NOT_MATCH = "not-match?"
    EQ = "eq?"
    NOT_EQ = "not-eq?"
    ANY_OF = "any-of?"
    NOT_ANY_OF = "not-any-of?"

    @property
    def negated(self) -> bool:
        return self.value.startswith("not-")


@dataclass(frozen=True)
class CaptureRef:
    """A capture name attached to a pattern."""

    name: str
    depth: int  # Nesting depth of the pattern carrying the capture
    ordinal: int  # Order of appearance within the rule


@dataclass(frozen=True)
class NodePattern:
    """Matches a single node.

    ``kind`` of None is a wildcard: ``(_)`` when ``named`` is True, bare ``_``
    otherwise. Anonymous literals (``"["``) have ``named`` False and a kind.
    """

    kind: Optional[str]
    named: bool = True
    children: tuple["ChildItem", ...] = ()
    negated_fields: tuple[str, ...] = ()
    anchor_end: bool = False
    captures: tuple[CaptureRef, ...] = ()
    quantifier: Quantifier = Quantifier.ONE

    @property
    def is_anonymous_literal(self) -> bool:
        return not self.named and self.kind is not None

    def accepts(self, node_type: str, is_named: bool) -> bool:
        """Check the node-type constraint alone."""
        if self.kind is None:
            return is_named or not self.named
        return self.kind == node_type and self.named == is_named


@dataclass(frozen=True)
class AlternationPattern:
    """Matches whichever alternative matches, tried in order."""

    alternatives: tuple["Pattern", ...]
    captures: tuple[CaptureRef, ...] = ()
    quantifier: Quantifier = Quantifier.ONE


@dataclass(frozen=True)
class GroupPattern:
    """Matches a run of consecutive siblings."""

    children: tuple["ChildItem", ...]
    anchor_end: bool = False
    captures: tuple[CaptureRef, ...] = ()
    quantifier: Quantifier = Quantifier.ONE


Pattern = Union[NodePattern, AlternationPattern, GroupPattern]


@dataclass(frozen=True)
class ChildItem:
    """One entry of a child sequence.

    ``anchored`` ties the item to its predecessor (or, for the first item, to
    the start of the sibling list) with no named sibling in between.
    """

    pattern: Pattern
    field: Optional[str] = None
    anchored: bool = False


@dataclass(frozen=True)
class CaptureOperand:
    name: str


@dataclass(frozen=True)
class LiteralOperand:
    value: str


Operand = Union[CaptureOperand, LiteralOperand]


@dataclass(frozen=True)
class Predicate:
    """A text test over resolved captures."""

    operator: PredicateOperator
    operands: tuple[Operand, ...]
    regex: Optional[re.Pattern[str]] = field(default=None, compare=False)

    @property
    def capture_names(self) -> list[str]:
        return [op.name for op in self.operands if isinstance(op, CaptureOperand)]

    def __str__(self) -> str:
        parts = [f"#{self.operator.value}"]
        for op in self.operands:
            parts.append(f"@{op.name}" if isinstance(op, CaptureOperand) else f'"{op.value}"')
        return f"({' '.join(parts)})"


@dataclass(frozen=True)
class Rule:
    """One compiled top-level pattern with its predicates."""

    index: int  # Declaration order, also resolution priority among equals
    pattern: Pattern
    predicates: tuple[Predicate, ...] = ()
    metadata: dict[str, Optional[str]] = field(default_factory=dict, compare=False)
    priority: Optional[int] = None
    line: int = 1
    column: int = 1
    text: str = field(default="", compare=False)

    @property
    def capture_names(self) -> list[str]:
        """Names captured by this rule, in order of appearance."""
        refs = sorted(iter_captures(self.pattern), key=lambda ref: ref.ordinal)
        names: list[str] = []
        for ref in refs:
            if ref.name not in names:
                names.append(ref.name)
        return names

    def root_kinds(self) -> Optional[frozenset[str]]:
        """Node types the top-level pattern could start on; None means any."""
        return root_kinds(self.pattern)


@dataclass
class Diagnostic:
    """A compile problem attributed to one top-level rule."""

    rule_index: int
    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"{self.line}:{self.column}: {self.message} (rule {self.rule_index})"


@dataclass
class CompiledQuery:
    """Result of compiling a rule file."""

    rules: list[Rule] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    @property
    def capture_names(self) -> list[str]:
        names: list[str] = []
        for rule in self.rules:
            for name in rule.capture_names:
                if name not in names:
                    names.append(name)
        return names


@dataclass(frozen=True)
class Capture:
    """A capture bound by a successful match."""

    name: str
    start_byte: int
    end_byte: int
    depth: int = 0
    ordinal: int = 0


@dataclass(frozen=True)
class QueryMatch:
    """A structural match of one rule at one tree position."""

    rule: Rule
    start_byte: int
    end_byte: int
    captures: tuple[Capture, ...]


def iter_captures(pattern: Pattern):
    """Yield every CaptureRef declared in a pattern tree."""
    yield from pattern.captures
    if isinstance(pattern, AlternationPattern):
        for alternative in pattern.alternatives:
            yield from iter_captures(alternative)
    else:
        for item in pattern.children:
            yield from iter_captures(item.pattern)


def root_kinds(pattern: Pattern) -> Optional[frozenset[str]]:
    if isinstance(pattern, NodePattern):
        return None if pattern.kind is None else frozenset([pattern.kind])
    if isinstance(pattern, AlternationPattern):
        kinds: set[str] = set()
        for alternative in pattern.alternatives:
            alt_kinds = root_kinds(alternative)
            if alt_kinds is None:
                return None
            kinds |= alt_kinds
        return frozenset(kinds)
    # A group starts wherever its first item can start, unless that item may
    # match nothing
    if not pattern.children or pattern.children[0].pattern.quantifier.optional:
        return None
    return root_kinds(pattern.children[0].pattern)
