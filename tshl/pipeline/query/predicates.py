"""Evaluation of text predicates over captured spans."""

import logging
import re
from collections.abc import Sequence
from typing import Optional, Union

from tshl.config import PredicateSettings, get_settings

from .models import Capture, CaptureOperand, Operand, Predicate, PredicateOperator, Rule

logger = logging.getLogger(__name__)

Source = Union[str, bytes]


def capture_text(source: Source, capture: Capture) -> str:
    """Text covered by a capture."""
    chunk = source[capture.start_byte : capture.end_byte]
    if isinstance(chunk, bytes):
        return chunk.decode("utf-8", errors="replace")
    return chunk


def _resolve(operand: Operand, captures: Sequence[Capture], source: Source) -> Optional[list[str]]:
    """Texts an operand stands for; None when a capture is not bound."""
    if not isinstance(operand, CaptureOperand):
        return [operand.value]
    texts = [capture_text(source, c) for c in captures if c.name == operand.name]
    return texts or None


def evaluate(
    predicate: Predicate,
    captures: Sequence[Capture],
    source: Source,
    settings: Optional[PredicateSettings] = None,
) -> bool:
    """
    Evaluate one predicate against the captures of a match.

    A capture bound several times (inside a repetition) must satisfy the test
    for every binding. The negated operators are exact complements of their
    positive forms whenever every operand resolves.

    Args:
        predicate: Compiled predicate
        captures: Captures produced by the structural match
        source: Text the tree was parsed from (str or UTF-8 bytes)
        settings: Predicate settings (defaults to the global settings)

    Returns:
        False when the predicate fails or cannot be evaluated
    """
    settings = settings or get_settings().predicate
    resolved = [_resolve(operand, captures, source) for operand in predicate.operands]
    if any(texts is None for texts in resolved):
        logger.debug("Predicate %s references an unbound capture", predicate)
        return False

    subject: list[str] = resolved[0]  # type: ignore[assignment]
    operator = predicate.operator

    if operator in (PredicateOperator.MATCH, PredicateOperator.NOT_MATCH):
        regex = predicate.regex or re.compile(resolved[1][0])  # type: ignore[index]
        if any(len(text) > settings.regex_subject_limit for text in subject):
            logger.warning(
                "Capture text exceeds %d characters; %s not evaluated",
                settings.regex_subject_limit,
                predicate,
            )
            return False
        positive = all(regex.search(text) is not None for text in subject)
    elif operator in (PredicateOperator.EQ, PredicateOperator.NOT_EQ):
        other: list[str] = resolved[1]  # type: ignore[assignment]
        positive = all(left == right for left in subject for right in other)
    else:
        choices = {texts[0] for texts in resolved[1:]}  # type: ignore[index]
        positive = all(text in choices for text in subject)

    return not positive if operator.negated else positive


def satisfies(
    rule: Rule,
    captures: Sequence[Capture],
    source: Source,
    settings: Optional[PredicateSettings] = None,
) -> bool:
    """Check every predicate of a rule in declaration order."""
    for predicate in rule.predicates:
        if not evaluate(predicate, captures, source, settings):
            return False
    return True
