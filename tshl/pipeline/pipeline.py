"""Top-level pipeline orchestration.

This module runs the stages of a highlight pass:
Compile → Match → Filter (predicates) → Resolve

A pass always runs to completion. Re-running it on a changed tree is the only
way to refresh the output; nothing is cached between passes.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

from tshl.config import PipelineSettings, get_settings
from tshl.models.highlight import HighlightResult
from tshl.pipeline.query import CompiledQuery, GrammarSchema, Matcher, QueryMatch, Rule, compile_query
from tshl.pipeline.query.predicates import Source, satisfies
from tshl.pipeline.resolver import resolve_captures
from tshl.pipeline.tree import SyntaxNode

logger = logging.getLogger(__name__)


def _run_compile_stage(
    query: Union[str, CompiledQuery], schema: Optional[GrammarSchema]
) -> CompiledQuery:
    if isinstance(query, CompiledQuery):
        return query
    logger.info("Stage 1/3: Compiling rules...")
    compiled = compile_query(query, schema)
    logger.info(
        "Compile complete: %d rule(s), %d skipped", len(compiled.rules), len(compiled.diagnostics)
    )
    return compiled


def _match_sequential(
    root: SyntaxNode, rules: list[Rule], source: Source, settings: PipelineSettings
) -> list[QueryMatch]:
    matcher = Matcher(rules)
    return [
        match
        for match in matcher.matches(root)
        if satisfies(match.rule, match.captures, source, settings.predicate)
    ]


def _match_parallel(
    root: SyntaxNode, rules: list[Rule], source: Source, settings: PipelineSettings
) -> list[QueryMatch]:
    """Match each rule on its own worker and merge into traversal order."""
    matcher = Matcher(rules)

    def run(rule: Rule) -> list[tuple[int, QueryMatch]]:
        return [
            (position, match)
            for position, match in matcher.match_rule(root, rule)
            if satisfies(rule, match.captures, source, settings.predicate)
        ]

    with ThreadPoolExecutor(max_workers=settings.matcher.max_workers) as pool:
        per_rule = list(pool.map(run, matcher.rules))

    keyed = [
        (position, match.rule.index, discovered, match)
        for results in per_rule
        for discovered, (position, match) in enumerate(results)
    ]
    keyed.sort(key=lambda item: item[:3])
    return [match for *_, match in keyed]


def collect_matches(
    root: SyntaxNode,
    rules: list[Rule],
    source: Source,
    settings: Optional[PipelineSettings] = None,
) -> list[QueryMatch]:
    """
    Find all matches whose predicates hold.

    Args:
        root: Root of the syntax tree
        rules: Compiled rules
        source: Text the tree was parsed from
        settings: Pipeline settings (defaults to the global settings)

    Returns:
        Matches in traversal order, ties broken by rule declaration order.
        The order is the same whether or not worker threads are used.
    """
    settings = settings or get_settings()
    if settings.matcher.max_workers > 1 and len(rules) > 1:
        logger.debug("Matching %d rule(s) on %d worker(s)", len(rules), settings.matcher.max_workers)
        return _match_parallel(root, rules, source, settings)
    return _match_sequential(root, rules, source, settings)


def highlight(
    root: SyntaxNode,
    query: Union[str, CompiledQuery],
    source: Source,
    schema: Optional[GrammarSchema] = None,
    settings: Optional[PipelineSettings] = None,
) -> HighlightResult:
    """
    Run a full highlight pass.

    Args:
        root: Root of the syntax tree produced by an external parser
        query: Rule source text or an already compiled query
        source: Text the tree was parsed from (str or UTF-8 bytes)
        schema: Optional grammar schema used when ``query`` is source text
        settings: Pipeline settings (defaults to the global settings)

    Returns:
        HighlightResult with the final span → capture assignment
    """
    settings = settings or get_settings()
    compiled = _run_compile_stage(query, schema)

    logger.info("Stage 2/3: Matching %d rule(s)...", len(compiled.rules))
    matches = collect_matches(root, compiled.rules, source, settings)
    logger.info("Matching complete: %d match(es)", len(matches))

    logger.info("Stage 3/3: Resolving captures...")
    spans = resolve_captures(matches, settings.resolver)
    logger.info("Resolved %d span(s)", len(spans))

    return HighlightResult(
        spans=spans,
        rule_count=len(compiled.rules),
        match_count=len(matches),
        diagnostics=[str(diagnostic) for diagnostic in compiled.diagnostics],
    )
