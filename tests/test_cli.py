"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from tshl.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestCheck:
    """Tests for the check command."""

    def test_valid_rules(self, runner, tmp_path):
        """Test that a valid rule file exits cleanly."""
        query_file = tmp_path / "highlights.scm"
        query_file.write_text("(identifier) @variable\n(string) @string\n")
        result = runner.invoke(main, ["check", str(query_file)])
        assert result.exit_code == 0
        assert "2 rule(s) compiled" in result.output
        assert "2 capture name(s)" in result.output

    def test_invalid_rules(self, runner, tmp_path):
        """Test that invalid rules are listed and fail the command."""
        query_file = tmp_path / "highlights.scm"
        query_file.write_text("(a) @x\n((b) @y\n(c) @z\n")
        result = runner.invoke(main, ["check", str(query_file)])
        assert result.exit_code == 1
        assert "1 skipped" in result.output

    def test_language_schema(self, runner, tmp_path):
        """Test validation against a built-in grammar schema."""
        query_file = tmp_path / "highlights.scm"
        query_file.write_text("(headline title: (item)) @x\n")
        assert runner.invoke(main, ["check", str(query_file)]).exit_code == 0
        result = runner.invoke(main, ["check", str(query_file), "--language", "org"])
        assert result.exit_code == 1

    def test_node_types_file(self, runner, tmp_path):
        """Test validation against a node-types.json file."""
        query_file = tmp_path / "highlights.scm"
        query_file.write_text("(pair key: (string)) @p\n")
        node_types = tmp_path / "node-types.json"
        node_types.write_text(
            json.dumps(
                [
                    {"type": "pair", "named": True, "fields": {"key": {}, "value": {}}},
                    {"type": "string", "named": True},
                ]
            )
        )
        result = runner.invoke(main, ["check", str(query_file), "--node-types", str(node_types)])
        assert result.exit_code == 0


class TestHighlight:
    """Tests for the highlight command."""

    def test_json_output(self, runner, tmp_path):
        """Test highlighting a Python file with the built-in rules."""
        source_file = tmp_path / "example.py"
        source_file.write_text('def greet():\n    return "hi"\n')
        result = runner.invoke(
            main, ["highlight", str(source_file), "--language", "python", "--format", "json"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        by_text = {span["text"]: span["capture"] for span in data["spans"]}
        assert by_text["def"] == "keyword"
        assert by_text["greet"] == "function"
        assert by_text['"hi"'] == "string"
        assert data["diagnostics"] == []

    def test_custom_query_with_workers(self, runner, tmp_path):
        """Test a user rule file matched on several threads."""
        source_file = tmp_path / "example.py"
        source_file.write_text("x = 1\ny = 2\n")
        query_file = tmp_path / "highlights.scm"
        query_file.write_text("(integer) @number\n(identifier) @variable\n")
        result = runner.invoke(
            main,
            [
                "highlight",
                str(source_file),
                "--language",
                "python",
                "--query",
                str(query_file),
                "--format",
                "json",
                "--workers",
                "2",
            ],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [(span["text"], span["capture"]) for span in data["spans"]] == [
            ("x", "variable"),
            ("1", "number"),
            ("y", "variable"),
            ("2", "number"),
        ]

    def test_console_output(self, runner, tmp_path):
        """Test the default table output."""
        source_file = tmp_path / "example.py"
        source_file.write_text("pass\n")
        result = runner.invoke(main, ["highlight", str(source_file), "--language", "python"])
        assert result.exit_code == 0
        assert "keyword" in result.output

    def test_language_without_rules(self, runner, tmp_path):
        """Test that a language without built-in rules needs --query."""
        source_file = tmp_path / "example.go"
        source_file.write_text("package main\n")
        result = runner.invoke(main, ["highlight", str(source_file), "--language", "go"])
        assert result.exit_code == 2
        assert "pass --query" in result.output
