"""Compiler for the tree-pattern query language.

Rules look like tree-sitter queries:

    (headline (stars) @org.headline.stars) @org.headline
    ((checkbox status: (_) @_status) @org.checkbox.done
     (#any-of? @_status "x" "X"))
    (list . (listitem) @first (listitem)* @rest .)

Each top-level form is compiled on its own, so a broken rule is reported and
skipped while the rest of the file still compiles.
"""

import bisect
import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .models import (
    AlternationPattern,
    CaptureOperand,
    CaptureRef,
    ChildItem,
    CompiledQuery,
    Diagnostic,
    GroupPattern,
    LiteralOperand,
    NodePattern,
    Operand,
    Pattern,
    Predicate,
    PredicateOperator,
    Quantifier,
    Rule,
)
from .schema import GrammarSchema

logger = logging.getLogger(__name__)


class QueryParseError(Exception):
    """Raised when a rule cannot be compiled."""

    def __init__(self, message: str, line: int = 0, column: int = 0, rule_index: int = -1):
        self.message = message
        self.line = line
        self.column = column
        self.rule_index = rule_index
        super().__init__(f"{line}:{column}: {message}" if line else message)


class TokenKind(Enum):
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    DOT = "."
    QUESTION = "?"
    STAR = "*"
    PLUS = "+"
    BANG = "!"
    FIELD = "field"
    CAPTURE = "capture"
    PREDICATE = "predicate"
    STRING = "string"
    IDENT = "identifier"
    ERROR = "error"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int
    column: int
    start: int
    end: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>;[^\n]*)
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<unterminated>"[^\n]*)
  | (?P<field>[A-Za-z_][A-Za-z0-9_]*)\s*:
  | (?P<capture>@[A-Za-z0-9_][A-Za-z0-9_.\-]*)
  | (?P<predicate>\#[A-Za-z_][A-Za-z0-9_\-]*[?!])
  | (?P<ident>[A-Za-z0-9_][A-Za-z0-9_\-]*)
  | (?P<punct>[()\[\].?*+!])
  | (?P<other>.)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}

_SUFFIX_KINDS = (TokenKind.QUESTION, TokenKind.STAR, TokenKind.PLUS, TokenKind.CAPTURE)
_OPENERS = (TokenKind.LPAREN, TokenKind.LBRACKET)
_QUANTIFIERS = {
    TokenKind.QUESTION: Quantifier.ZERO_OR_ONE,
    TokenKind.STAR: Quantifier.ZERO_OR_MORE,
    TokenKind.PLUS: Quantifier.ONE_OR_MORE,
}


def _unescape(body: str) -> str:
    out: list[str] = []
    chars = iter(body)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        escaped = next(chars, "\\")
        out.append(_ESCAPES.get(escaped, escaped))
    return "".join(out)


def tokenize(source: str) -> list[Token]:
    """Split query source into tokens.

    Lexical problems become ERROR tokens so that they are reported against the
    rule they appear in.
    """
    line_starts = [0] + [m.end() for m in re.finditer(r"\n", source)]

    def position(offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(line_starts, offset)
        return line, offset - line_starts[line - 1] + 1

    tokens: list[Token] = []
    for match in _TOKEN_RE.finditer(source):
        group = match.lastgroup
        if group in ("ws", "comment"):
            continue
        line, column = position(match.start())
        text = match.group(group)  # type: ignore[arg-type]
        if group == "string":
            kind, value = TokenKind.STRING, _unescape(text[1:-1])
        elif group == "unterminated":
            kind, value = TokenKind.ERROR, "unterminated string literal"
        elif group == "field":
            kind, value = TokenKind.FIELD, text
        elif group == "capture":
            kind, value = TokenKind.CAPTURE, text[1:]
        elif group == "predicate":
            kind, value = TokenKind.PREDICATE, text[1:]
        elif group == "ident":
            kind, value = TokenKind.IDENT, text
        elif group == "punct":
            kind, value = TokenKind(text), text
        else:
            kind, value = TokenKind.ERROR, f"unexpected character {text!r}"
        tokens.append(Token(kind, value, line, column, match.start(), match.end()))
    return tokens


def split_forms(tokens: list[Token]) -> list[list[Token]]:
    """Group tokens into top-level forms by bracket balance.

    Trailing quantifiers and captures stay with the form they follow. A form
    that never closes runs to the end of the input; ``_restart_index`` finds
    where to resume once such a form has failed to compile.
    """
    forms: list[list[Token]] = []
    current: list[Token] = []
    depth = 0
    for tok in tokens:
        if current and depth == 0 and tok.kind not in _SUFFIX_KINDS:
            forms.append(current)
            current = []
        current.append(tok)
        if tok.kind in _OPENERS:
            depth += 1
        elif tok.kind in (TokenKind.RPAREN, TokenKind.RBRACKET) and depth > 0:
            depth -= 1
    if current:
        forms.append(current)
    return forms


def _restart_index(form: list[Token]) -> Optional[int]:
    """Where the next rule most likely begins inside an unclosed form.

    That is the first bracket opened in the first column while the form is
    still open. Balanced forms have no restart point.
    """
    restart: Optional[int] = None
    depth = 0
    for index, tok in enumerate(form):
        at_line_start = index > 0 and tok.column == 1 and tok.kind in _OPENERS
        if restart is None and depth > 0 and at_line_start:
            restart = index
        if tok.kind in _OPENERS:
            depth += 1
        elif tok.kind in (TokenKind.RPAREN, TokenKind.RBRACKET) and depth > 0:
            depth -= 1
    return restart if depth > 0 else None


def _is_anonymous(pattern: Pattern) -> bool:
    if isinstance(pattern, NodePattern):
        return pattern.is_anonymous_literal
    if isinstance(pattern, AlternationPattern):
        return any(_is_anonymous(alternative) for alternative in pattern.alternatives)
    return False


class _RuleParser:
    """Recursive-descent parser for a single top-level form."""

    def __init__(
        self,
        tokens: list[Token],
        rule_index: int,
        source: str,
        schema: Optional[GrammarSchema] = None,
    ):
        self.tokens = tokens
        self.pos = 0
        self.rule_index = rule_index
        self.source = source
        self.schema = schema
        self._open: list[Token] = []
        self._ordinal = 0
        self._declared: set[str] = set()
        # Each predicate keeps the captures bound before it
        self._predicates: list[tuple[Predicate, Token, frozenset[str]]] = []
        self._metadata: dict[str, Optional[str]] = {}
        self._priority: Optional[int] = None

    # Token helpers

    def _error(self, message: str, tok: Optional[Token] = None) -> QueryParseError:
        if tok is None:
            tok = self.tokens[min(self.pos, len(self.tokens) - 1)]
        return QueryParseError(message, tok.line, tok.column, self.rule_index)

    def _peek(self, offset: int = 0) -> Optional[Token]:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _next(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise self._unclosed()
        self.pos += 1
        if tok.kind == TokenKind.ERROR:
            raise self._error(tok.value, tok)
        return tok

    def _unclosed(self) -> QueryParseError:
        if self._open:
            opener = self._open[-1]
            closer = ")" if opener.kind == TokenKind.LPAREN else "]"
            return self._error(
                f"unbalanced parentheses: '{opener.value}' is never closed (expected '{closer}')",
                opener,
            )
        return self._error("unexpected end of rule", self.tokens[-1])

    def _at_predicate(self) -> bool:
        tok, nxt = self._peek(), self._peek(1)
        return (
            tok is not None
            and tok.kind == TokenKind.LPAREN
            and nxt is not None
            and nxt.kind == TokenKind.PREDICATE
        )

    # Entry point

    def parse_rule(self) -> Rule:
        first = self.tokens[0]
        if self._at_predicate():
            raise self._error("predicate outside of a pattern", first)
        if first.kind == TokenKind.DOT:
            raise self._error("anchor outside of a pattern", first)

        pattern = self._parse_item(depth=0)
        if self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            raise self._error(f"unexpected '{tok.value}' after pattern", tok)

        for predicate, tok, bound_before in self._predicates:
            for name in predicate.capture_names:
                if name not in self._declared:
                    raise self._error(
                        f"predicate {predicate} references undeclared capture '@{name}'", tok
                    )
                if name not in bound_before:
                    raise self._error(
                        f"predicate {predicate} references capture '@{name}' before it is bound",
                        tok,
                    )

        last = self.tokens[-1]
        return Rule(
            index=self.rule_index,
            pattern=pattern,
            predicates=tuple(predicate for predicate, _, _ in self._predicates),
            metadata=dict(self._metadata),
            priority=self._priority,
            line=first.line,
            column=first.column,
            text=self.source[first.start : last.end],
        )

    # Patterns

    def _parse_item(self, depth: int) -> Pattern:
        tok = self._peek()
        if tok is None:
            raise self._unclosed()

        pattern: Pattern
        if tok.kind == TokenKind.LPAREN:
            pattern = self._parse_parenthesized(depth)
        elif tok.kind == TokenKind.LBRACKET:
            pattern = self._parse_alternation(depth)
        elif tok.kind == TokenKind.STRING:
            self._next()
            self._check_anonymous_type(tok)
            pattern = NodePattern(kind=tok.value, named=False)
        elif tok.kind == TokenKind.IDENT and tok.value == "_":
            self._next()
            pattern = NodePattern(kind=None, named=False)
        elif tok.kind in (TokenKind.RPAREN, TokenKind.RBRACKET):
            raise self._error(f"unbalanced parentheses: unexpected '{tok.value}'", tok)
        elif tok.kind == TokenKind.ERROR:
            raise self._error(tok.value, tok)
        else:
            raise self._error(f"unexpected '{tok.value}', expected a pattern", tok)

        return self._parse_suffixes(pattern, depth)

    def _parse_suffixes(self, pattern: Pattern, depth: int) -> Pattern:
        while True:
            tok = self._peek()
            if tok is None or tok.kind not in _SUFFIX_KINDS:
                return pattern
            self._next()
            if tok.kind == TokenKind.CAPTURE:
                ref = CaptureRef(name=tok.value, depth=depth, ordinal=self._ordinal)
                self._ordinal += 1
                self._declared.add(tok.value)
                pattern = replace(pattern, captures=pattern.captures + (ref,))
            else:
                if pattern.quantifier != Quantifier.ONE:
                    raise self._error("a pattern may carry only one quantifier", tok)
                pattern = replace(pattern, quantifier=_QUANTIFIERS[tok.kind])

    def _parse_alternation(self, depth: int) -> Pattern:
        opener = self._next()
        self._open.append(opener)
        alternatives: list[Pattern] = []
        while True:
            tok = self._peek()
            if tok is None:
                raise self._unclosed()
            if tok.kind == TokenKind.RBRACKET:
                break
            if tok.kind == TokenKind.RPAREN:
                raise self._error("unbalanced parentheses: ')' closes '['", tok)
            if self._at_predicate():
                self._parse_predicate()
                continue
            alternatives.append(self._parse_item(depth))
        self._next()
        self._open.pop()
        if not alternatives:
            raise self._error("empty alternation", opener)
        return AlternationPattern(alternatives=tuple(alternatives))

    def _parse_parenthesized(self, depth: int) -> Pattern:
        opener = self._next()
        self._open.append(opener)
        head = self._peek()
        if head is None:
            raise self._unclosed()

        pattern: Pattern
        if head.kind == TokenKind.PREDICATE:
            raise self._error("predicate outside of a pattern", head)
        if head.kind == TokenKind.RPAREN:
            raise self._error("empty pattern '()'", opener)

        if head.kind == TokenKind.STRING:
            self._next()
            nxt = self._peek()
            if nxt is not None and nxt.kind != TokenKind.RPAREN:
                raise self._error(
                    f'anonymous node "{head.value}" cannot carry field or child constraints', nxt
                )
            self._check_anonymous_type(head)
            pattern = NodePattern(kind=head.value, named=False)
        elif head.kind == TokenKind.IDENT:
            self._next()
            kind = None if head.value == "_" else head.value
            if kind is not None and self.schema is not None and not self.schema.has_node_type(kind):
                raise self._error(f"unknown node type '{kind}'", head)
            children, negated, anchor_end = self._parse_children(depth + 1, parent_kind=kind)
            pattern = NodePattern(
                kind=kind,
                named=True,
                children=children,
                negated_fields=negated,
                anchor_end=anchor_end,
            )
        elif head.kind in (TokenKind.LPAREN, TokenKind.LBRACKET, TokenKind.DOT):
            pattern = self._parse_group(depth)
        else:
            raise self._error(f"unexpected '{head.value}', expected a node type", head)

        closer = self._next()
        if closer.kind != TokenKind.RPAREN:
            raise self._error(f"unbalanced parentheses: '{closer.value}' closes '('", closer)
        self._open.pop()
        return pattern

    def _parse_group(self, depth: int) -> Pattern:
        children, negated, anchor_end = self._parse_children(depth, parent_kind=None, group=True)
        if not children:
            raise self._error("group contains no patterns")
        if negated:
            raise self._error(f"negated field '!{negated[0]}' outside of a node pattern")
        after = self._peek(1)
        quantified = after is not None and after.kind in _QUANTIFIERS
        only = children[0]
        if len(children) == 1 and not (anchor_end or only.anchored or only.field or quantified):
            # ((pattern) (#pred ...)) is just the pattern with predicates
            return only.pattern
        return GroupPattern(children=children, anchor_end=anchor_end)

    def _parse_children(
        self, depth: int, parent_kind: Optional[str], group: bool = False
    ) -> tuple[tuple[ChildItem, ...], tuple[str, ...], bool]:
        items: list[ChildItem] = []
        negated: list[str] = []
        pending_anchor: Optional[Token] = None

        while True:
            tok = self._peek()
            if tok is None:
                raise self._unclosed()
            if tok.kind == TokenKind.RPAREN:
                break
            if tok.kind == TokenKind.RBRACKET:
                raise self._error("unbalanced parentheses: ']' closes '('", tok)

            if tok.kind == TokenKind.DOT:
                if pending_anchor is not None:
                    raise self._error("consecutive anchors", tok)
                self._next()
                pending_anchor = tok
                continue

            if self._at_predicate():
                self._parse_predicate()
                continue

            if tok.kind == TokenKind.BANG:
                self._next()
                name_tok = self._next()
                if name_tok.kind != TokenKind.IDENT:
                    raise self._error("expected a field name after '!'", name_tok)
                self._check_field(parent_kind, name_tok.value, name_tok, group)
                negated.append(name_tok.value)
                continue

            field_name: Optional[str] = None
            if tok.kind == TokenKind.FIELD:
                self._next()
                field_name = tok.value
                self._check_field(parent_kind, field_name, tok, group)

            pattern = self._parse_item(depth)
            anchored = pending_anchor is not None
            if anchored:
                if _is_anonymous(pattern):
                    raise self._error("an anchor cannot be applied to an anonymous node", pending_anchor)
                if items and _is_anonymous(items[-1].pattern):
                    raise self._error("an anchor cannot be applied to an anonymous node", pending_anchor)
            items.append(ChildItem(pattern=pattern, field=field_name, anchored=anchored))
            pending_anchor = None

        anchor_end = pending_anchor is not None
        if anchor_end:
            if not items:
                raise self._error("anchor without a sibling pattern", pending_anchor)
            if _is_anonymous(items[-1].pattern):
                raise self._error("an anchor cannot be applied to an anonymous node", pending_anchor)
        return tuple(items), tuple(negated), anchor_end

    def _check_field(self, parent_kind: Optional[str], field_name: str, tok: Token, group: bool) -> None:
        if group or parent_kind is None or self.schema is None:
            return
        if not self.schema.has_field(parent_kind, field_name):
            raise self._error(f"node type '{parent_kind}' has no field '{field_name}'", tok)

    def _check_anonymous_type(self, tok: Token) -> None:
        if self.schema is not None and not self.schema.has_anonymous_type(tok.value):
            raise self._error(f'unknown anonymous node "{tok.value}"', tok)

    # Predicates

    def _parse_predicate(self) -> None:
        opener = self._next()
        self._open.append(opener)
        name_tok = self._next()
        operands: list[Operand] = []
        while True:
            tok = self._next()
            if tok.kind == TokenKind.RPAREN:
                break
            if tok.kind == TokenKind.CAPTURE:
                operands.append(CaptureOperand(tok.value))
            elif tok.kind in (TokenKind.STRING, TokenKind.IDENT):
                operands.append(LiteralOperand(tok.value))
            else:
                raise self._error(f"unexpected '{tok.value}' in predicate #{name_tok.value}", tok)
        self._open.pop()

        if name_tok.value.endswith("!"):
            self._apply_directive(name_tok, operands)
            return

        try:
            operator = PredicateOperator(name_tok.value)
        except ValueError:
            valid = ", ".join(f"#{op.value}" for op in PredicateOperator)
            raise self._error(
                f"unknown predicate '#{name_tok.value}'. Valid predicates: {valid}", name_tok
            )

        predicate = self._build_predicate(operator, operands, name_tok)
        self._predicates.append((predicate, name_tok, frozenset(self._declared)))

    def _build_predicate(
        self, operator: PredicateOperator, operands: list[Operand], tok: Token
    ) -> Predicate:
        label = f"#{operator.value}"
        if not operands or not isinstance(operands[0], CaptureOperand):
            raise self._error(f"{label} expects a capture as its first argument", tok)

        if operator in (PredicateOperator.MATCH, PredicateOperator.NOT_MATCH):
            if len(operands) != 2 or not isinstance(operands[1], LiteralOperand):
                raise self._error(f"{label} expects a capture and a regex string", tok)
            try:
                regex = re.compile(operands[1].value)
            except re.error as e:
                raise self._error(f"invalid regex {operands[1].value!r} in {label}: {e}", tok)
            return Predicate(operator, tuple(operands), regex)

        if operator in (PredicateOperator.EQ, PredicateOperator.NOT_EQ):
            if len(operands) != 2:
                raise self._error(f"{label} expects exactly two arguments, got {len(operands)}", tok)
            return Predicate(operator, tuple(operands))

        if len(operands) < 2:
            raise self._error(f"{label} expects a capture and at least one string", tok)
        if not all(isinstance(op, LiteralOperand) for op in operands[1:]):
            raise self._error(f"{label} accepts only strings after the capture", tok)
        return Predicate(operator, tuple(operands))

    def _apply_directive(self, tok: Token, operands: list[Operand]) -> None:
        if tok.value != "set!":
            raise self._error(f"unknown directive '#{tok.value}'", tok)
        if not 1 <= len(operands) <= 2 or not all(isinstance(op, LiteralOperand) for op in operands):
            raise self._error("#set! expects a key and an optional value", tok)
        key = operands[0].value  # type: ignore[union-attr]
        value = operands[1].value if len(operands) == 2 else None  # type: ignore[union-attr]
        if key == "priority":
            try:
                self._priority = int(value or "")
            except ValueError:
                raise self._error(f"priority must be an integer, got {value!r}", tok)
        self._metadata[key] = value


def _parse_form(
    form: list[Token], index: int, source: str, schema: Optional[GrammarSchema]
) -> Rule:
    return _RuleParser(form, index, source, schema).parse_rule()


def _unclosed_error(
    form: list[Token], index: int, source: str, schema: Optional[GrammarSchema]
) -> QueryParseError:
    """Error for a form cut short at its restart point, which leaves a bracket open."""
    try:
        _parse_form(form, index, source, schema)
    except QueryParseError as e:
        return e
    first = form[0]
    return QueryParseError("unbalanced parentheses", first.line, first.column, index)


def compile_query(
    source: str,
    schema: Optional[GrammarSchema] = None,
    *,
    strict: bool = False,
) -> CompiledQuery:
    """
    Compile query source into rules.

    A rule that leaves a bracket open is reported on its own; compilation
    resumes at the next bracket opened in the first column.

    Args:
        source: Rule file contents
        schema: Optional grammar schema used to validate node types and fields
        strict: Raise on the first problem instead of collecting diagnostics

    Returns:
        CompiledQuery with the rules that compiled and one diagnostic per
        rule that did not

    Raises:
        QueryParseError: If ``strict`` is set and any rule is invalid
    """
    compiled = CompiledQuery()
    pending = split_forms(tokenize(source))

    index = 0
    while pending:
        form = pending.pop(0)
        try:
            compiled.rules.append(_parse_form(form, index, source, schema))
        except QueryParseError as e:
            error = e
            restart = _restart_index(form)
            if restart is not None:
                pending[:0] = split_forms(form[restart:])
                error = _unclosed_error(form[:restart], index, source, schema)
            if strict:
                raise error
            diagnostic = Diagnostic(
                rule_index=index, line=error.line, column=error.column, message=error.message
            )
            logger.warning("Skipping invalid rule: %s", diagnostic)
            compiled.diagnostics.append(diagnostic)
        index += 1

    logger.debug(
        "Compiled %d rule(s) with %d diagnostic(s)",
        len(compiled.rules),
        len(compiled.diagnostics),
    )
    return compiled
