"""CLI interface for tshl."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from tree_sitter_language_pack import get_parser

from tshl.config import MatcherSettings, PipelineSettings, get_settings, set_settings
from tshl.formatters import format_as_json
from tshl.models.highlight import HighlightResult
from tshl.pipeline.languages import LANGUAGE_CONFIGS
from tshl.pipeline.pipeline import highlight
from tshl.pipeline.query import CompiledQuery, GrammarSchema, compile_query

console = Console()
logger = logging.getLogger(__name__)

# Longest span text shown in the console table
MAX_TEXT_WIDTH = 40


def setup_logging(log_level: str) -> None:
    """Configure logging with rich handler."""
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_schema(language: Optional[str], node_types: Optional[Path]) -> Optional[GrammarSchema]:
    """Schema from a node-types.json file, else from the built-in language config."""
    if node_types is not None:
        return GrammarSchema.from_node_types(json.loads(node_types.read_text(encoding="utf-8")))
    if language is not None and language in LANGUAGE_CONFIGS:
        return LANGUAGE_CONFIGS[language].get_schema()
    return None


def _load_query(language: str, query_file: Optional[Path]) -> str:
    if query_file is not None:
        return query_file.read_text(encoding="utf-8")
    if language not in LANGUAGE_CONFIGS:
        available = ", ".join(sorted(LANGUAGE_CONFIGS))
        raise click.UsageError(
            f"No built-in rules for '{language}' (available: {available}); pass --query"
        )
    return LANGUAGE_CONFIGS[language].get_highlight_query()


def display_diagnostics(compiled: CompiledQuery) -> None:
    """Display compile diagnostics as a table."""
    if not compiled.diagnostics:
        console.print(
            f"[bold green]✓[/bold green] {len(compiled.rules)} rule(s) compiled, "
            f"{len(compiled.capture_names)} capture name(s)"
        )
        return

    table = Table(title="[bold red]Invalid rules[/bold red]", show_header=True, header_style="bold")
    table.add_column("Rule", justify="right")
    table.add_column("Location", style="cyan")
    table.add_column("Problem")
    for diagnostic in compiled.diagnostics:
        table.add_row(
            str(diagnostic.rule_index),
            f"{diagnostic.line}:{diagnostic.column}",
            diagnostic.message,
        )
    console.print(table)
    console.print(
        f"{len(compiled.rules)} rule(s) compiled, "
        f"[red]{len(compiled.diagnostics)} skipped[/red]"
    )


def _shorten(text: str) -> str:
    text = text.replace("\n", "⏎")
    if len(text) > MAX_TEXT_WIDTH:
        return text[: MAX_TEXT_WIDTH - 1] + "…"
    return text


def display_highlights(result: HighlightResult, source: bytes) -> None:
    """Display resolved spans with the text they cover."""
    if not result.spans:
        console.print("[yellow]No captures matched.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Span", justify="right", style="dim")
    table.add_column("Capture", style="cyan")
    table.add_column("Text")
    for span in result.spans:
        text = source[span.start : span.end].decode("utf-8", errors="replace")
        table.add_row(f"{span.start}-{span.end}", span.capture, _shorten(text))
    console.print(table)
    console.print(
        f"[dim]{result.rule_count} rule(s), {result.match_count} match(es), "
        f"{result.span_count} span(s)[/dim]"
    )


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default="WARNING",
    help="Set the logging level",
)
def main(log_level: str) -> None:
    """Tree-pattern highlighting for syntax trees."""
    setup_logging(log_level.upper())


@main.command()
@click.argument("query_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--language",
    "-l",
    type=str,
    default=None,
    help="Validate node types and fields against this built-in language schema",
)
@click.option(
    "--node-types",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Validate against a tree-sitter node-types.json file",
)
def check(query_file: Path, language: Optional[str], node_types: Optional[Path]) -> None:
    """Compile a rule file and report invalid rules."""
    schema = _load_schema(language, node_types)
    compiled = compile_query(query_file.read_text(encoding="utf-8"), schema)
    display_diagnostics(compiled)
    if compiled.diagnostics:
        sys.exit(1)


@main.command(name="highlight")
@click.argument("source_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--language", "-l", type=str, required=True, help="Tree-sitter language name")
@click.option(
    "--query",
    "query_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Rule file to use instead of the built-in rules",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default="console",
    help="Output format (default: console)",
)
@click.option(
    "--workers",
    type=int,
    default=1,
    help="Number of threads matching rules (default: 1)",
)
def highlight_command(
    source_file: Path,
    language: str,
    query_file: Optional[Path],
    output_format: str,
    workers: int,
) -> None:
    """Highlight a file using a grammar from tree-sitter-language-pack."""
    query = _load_query(language, query_file)
    try:
        parser = get_parser(language)  # type: ignore[arg-type]
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] no parser for '{language}': {e}")
        sys.exit(1)

    settings = get_settings()
    set_settings(
        PipelineSettings(
            matcher=MatcherSettings(max_workers=max(workers, 1)),
            predicate=settings.predicate,
            resolver=settings.resolver,
        )
    )

    source = source_file.read_bytes()
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.warning("Parse tree contains errors for %s", source_file)

    schema = LANGUAGE_CONFIGS[language].get_schema() if language in LANGUAGE_CONFIGS else None
    result = highlight(tree.root_node, query, source, schema=schema)

    if output_format.lower() == "json":
        click.echo(format_as_json(result, source))
    else:
        display_highlights(result, source)


if __name__ == "__main__":
    main()
