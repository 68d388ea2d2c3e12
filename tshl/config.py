"""Configuration for the highlight pipeline using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatcherSettings(BaseSettings):
    """Settings for structural matching."""

    model_config = SettingsConfigDict(
        env_prefix="TSHL_MATCHER_",
    )

    max_workers: int = Field(
        default=1,
        ge=1,
        description="Number of worker threads matching rules (1 = sequential)",
    )


class PredicateSettings(BaseSettings):
    """Settings for predicate evaluation."""

    model_config = SettingsConfigDict(
        env_prefix="TSHL_PREDICATE_",
    )

    regex_subject_limit: int = Field(
        default=10_000,
        ge=1,
        description=(
            "Longest capture text (in characters) a #match? predicate will scan. "
            "This bounds input size only; a pathological pattern can still "
            "backtrack for a long time on shorter text"
        ),
    )


class ResolverSettings(BaseSettings):
    """Settings for capture resolution."""

    model_config = SettingsConfigDict(
        env_prefix="TSHL_RESOLVER_",
    )

    default_priority: int = Field(
        default=100,
        description="Priority of rules that do not declare one with #set! priority",
    )

    private_prefix: str = Field(
        default="_",
        description="Captures starting with this prefix feed predicates but are never highlighted",
    )


class PipelineSettings(BaseSettings):
    """Global settings for the entire pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="TSHL_",
    )

    matcher: MatcherSettings = Field(default_factory=MatcherSettings)
    predicate: PredicateSettings = Field(default_factory=PredicateSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)


# Global settings instance that can be accessed throughout the application
_settings: PipelineSettings | None = None


def get_settings() -> PipelineSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = PipelineSettings()
    return _settings


def set_settings(settings: PipelineSettings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings
