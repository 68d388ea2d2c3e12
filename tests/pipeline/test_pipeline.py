"""Tests for the full highlight pass."""

from tests.tree_helper import capture_of, checkbox_item, cookie_headline
from tshl.config import MatcherSettings, PipelineSettings, set_settings
from tshl.pipeline.languages import LANGUAGE_CONFIGS
from tshl.pipeline.pipeline import collect_matches, highlight
from tshl.pipeline.query import compile_query
from tshl.pipeline.tree import branch, build_tree, leaf


def parallel_settings(workers: int = 4) -> PipelineSettings:
    return PipelineSettings(matcher=MatcherSettings(max_workers=workers))


class TestHighlight:
    """Tests for highlight() on in-memory trees."""

    def test_sibling_groups_override(self):
        """Test that a later group takes the text it shares with an earlier one."""
        source = "a b c"
        tree = build_tree(source, branch("doc", leaf("a", "a"), leaf("b", "b"), leaf("c", "c")))
        result = highlight(tree, "((a) . (b)) @first\n((b) . (c)) @second", source)
        assert result.to_mapping() == {(0, 2): "first", (2, 5): "second"}
        assert result.rule_count == 2
        assert result.match_count == 2

    def test_rerun_is_identical(self):
        """Test that running twice on the same tree gives the same output."""
        source, tree = cookie_headline("3", "7")
        query = LANGUAGE_CONFIGS["org"].get_highlight_query()
        first = highlight(tree, query, source)
        second = highlight(tree, query, source)
        assert first == second

    def test_accepts_compiled_query(self, org_query):
        """Test that a precompiled query skips compilation."""
        source, tree = checkbox_item("X")
        result = highlight(tree, org_query, source)
        assert result.rule_count == len(org_query.rules)
        assert capture_of(result, source, "X") == "org.checkbox.checked"

    def test_invalid_rules_are_reported(self):
        """Test that broken rules are skipped but reported."""
        source = "a b"
        tree = build_tree(source, branch("doc", leaf("a", "a"), leaf("b", "b")))
        result = highlight(tree, "(a) @x\n((b) @y\n(b) @z", source)
        assert result.rule_count == 2
        assert len(result.diagnostics) == 1
        assert result.diagnostics[0].startswith("2:1: unbalanced parentheses")
        assert result.to_mapping() == {(0, 1): "x", (2, 3): "z"}

    def test_predicates_filter_matches(self):
        """Test that matches failing a predicate contribute nothing."""
        source = "a b"
        tree = build_tree(source, branch("doc", leaf("w", "a"), leaf("w", "b")))
        result = highlight(tree, '((w) @hit (#eq? @hit "b"))', source)
        assert result.match_count == 1
        assert result.to_mapping() == {(2, 3): "hit"}

    def test_schema_validation(self):
        """Test that a schema rejects rules naming unknown fields."""
        source, tree = checkbox_item("X")
        schema = LANGUAGE_CONFIGS["org"].get_schema()
        result = highlight(tree, "(checkbox state: (_)) @bad\n(bullet) @b", source, schema=schema)
        assert result.rule_count == 1
        assert "has no field 'state'" in result.diagnostics[0]


class TestParallelMatching:
    """Tests for matching rules on worker threads."""

    def test_same_stream_as_sequential(self, org_query):
        """Test that worker threads produce the same ordered match stream."""
        source, tree = cookie_headline("3", "7", stars="****")
        sequential = collect_matches(tree, org_query.rules, source)
        parallel = collect_matches(tree, org_query.rules, source, parallel_settings())
        assert parallel == sequential
        assert sequential

    def test_same_spans_as_sequential(self, org_query):
        """Test that worker threads produce the same highlights."""
        source, tree = checkbox_item("-")
        sequential = highlight(tree, org_query, source)
        parallel = highlight(tree, org_query, source, settings=parallel_settings(3))
        assert parallel == sequential

    def test_global_settings(self, org_query):
        """Test that the global settings select parallel matching."""
        source, tree = cookie_headline("7", "7")
        expected = highlight(tree, org_query, source)
        set_settings(parallel_settings(2))
        assert highlight(tree, org_query, source) == expected


class TestTreeSitterTrees:
    """Tests against trees produced by a real tree-sitter parser."""

    def test_python_highlights(self, python_parser):
        """Test the bundled Python rules on a parsed file."""
        text = 'def greet(name):\n    return "hi " + name\n\nMAX = 3\n'
        source = text.encode("utf-8")
        tree = python_parser.parse(source)
        result = highlight(tree.root_node, LANGUAGE_CONFIGS["python"].get_highlight_query(), source)

        assert not result.diagnostics
        assert capture_of(result, text, "def") == "keyword"
        assert capture_of(result, text, "greet") == "function"
        assert capture_of(result, text, "return") == "keyword"
        assert capture_of(result, text, '"hi "') == "string"
        assert capture_of(result, text, "MAX") == "constant"
        assert capture_of(result, text, "3") == "number"
        assert capture_of(result, text, "name") is None

    def test_method_calls_and_builtins(self, python_parser):
        """Test call and self highlighting."""
        text = "class Greeter:\n    def run(self):\n        self.say()\n"
        source = text.encode("utf-8")
        tree = python_parser.parse(source)
        result = highlight(tree.root_node, LANGUAGE_CONFIGS["python"].get_highlight_query(), source)

        assert capture_of(result, text, "Greeter") == "type"
        assert capture_of(result, text, "run") == "function"
        assert capture_of(result, text, "self") == "variable.builtin"
        assert capture_of(result, text, "say") == "function.method"
