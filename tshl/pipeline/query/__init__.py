"""Tree-pattern queries: compiler, matcher and predicate evaluator."""

from .matcher import Matcher
from .models import (
    AlternationPattern,
    Capture,
    CaptureOperand,
    CaptureRef,
    ChildItem,
    CompiledQuery,
    Diagnostic,
    GroupPattern,
    LiteralOperand,
    NodePattern,
    Predicate,
    PredicateOperator,
    QueryMatch,
    Quantifier,
    Rule,
)
from .parser import QueryParseError, compile_query, tokenize
from .predicates import capture_text, evaluate, satisfies
from .schema import GrammarSchema

__all__ = [
    "AlternationPattern",
    "Capture",
    "CaptureOperand",
    "CaptureRef",
    "ChildItem",
    "CompiledQuery",
    "Diagnostic",
    "GrammarSchema",
    "GroupPattern",
    "LiteralOperand",
    "Matcher",
    "NodePattern",
    "Predicate",
    "PredicateOperator",
    "QueryMatch",
    "QueryParseError",
    "Quantifier",
    "Rule",
    "capture_text",
    "compile_query",
    "evaluate",
    "satisfies",
    "tokenize",
]
