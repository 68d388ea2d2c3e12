"""Language-specific highlight rules and grammar schemas."""

from .base import LanguageConfig
from .org import OrgConfig
from .python import PythonConfig

# Registry mapping language names to their configurations
LANGUAGE_CONFIGS: dict[str, LanguageConfig] = {
    "org": OrgConfig(),
    "python": PythonConfig(),
}

__all__ = [
    "LanguageConfig",
    "LANGUAGE_CONFIGS",
    "OrgConfig",
    "PythonConfig",
]
