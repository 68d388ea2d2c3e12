import pytest
from tree_sitter_language_pack import get_parser

from tshl.config import PipelineSettings, set_settings
from tshl.pipeline.languages import LANGUAGE_CONFIGS
from tshl.pipeline.query import CompiledQuery, compile_query


@pytest.fixture(autouse=True)
def default_settings():
    """Start every test from default settings."""
    set_settings(PipelineSettings())
    yield
    set_settings(PipelineSettings())


@pytest.fixture
def org_query() -> CompiledQuery:
    """The bundled Org highlight rules, validated against the Org schema."""
    config = LANGUAGE_CONFIGS["org"]
    return compile_query(config.get_highlight_query(), config.get_schema(), strict=True)


@pytest.fixture
def python_parser():
    """Get a Python parser."""
    return get_parser("python")
