"""Base interface for language-specific highlight configuration."""

from abc import ABC, abstractmethod
from typing import Optional

from tshl.pipeline.query import GrammarSchema


class LanguageConfig(ABC):
    """Base class for language-specific configuration."""

    @abstractmethod
    def get_language_name(self) -> str:
        """Return the primary language name."""
        pass

    @abstractmethod
    def get_highlight_query(self) -> str:
        """Return the source of the highlight rules for this language."""
        pass

    def get_schema(self) -> Optional[GrammarSchema]:
        """Return the grammar schema used to validate the rules, if known."""
        return None
