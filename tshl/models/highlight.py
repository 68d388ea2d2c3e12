"""Models for resolved highlights."""

from pydantic import BaseModel, Field


class HighlightSpan(BaseModel):
    """A span of text and the capture name that governs its presentation."""

    start: int = Field(ge=0, description="Start offset (inclusive)")
    end: int = Field(ge=0, description="End offset (exclusive)")
    capture: str = Field(description="Winning capture name, e.g. 'org.headline.level1'")

    def __str__(self) -> str:
        return f"[{self.start}, {self.end}) @{self.capture}"


class HighlightResult(BaseModel):
    """Output of a full highlight pass."""

    spans: list[HighlightSpan] = Field(
        default_factory=list, description="Non-overlapping spans ordered by start offset"
    )
    rule_count: int = Field(default=0, description="Number of compiled rules applied")
    match_count: int = Field(default=0, description="Matches that survived predicate filtering")
    diagnostics: list[str] = Field(
        default_factory=list, description="Compile diagnostics for rules that were skipped"
    )

    @property
    def span_count(self) -> int:
        return len(self.spans)

    def to_mapping(self) -> dict[tuple[int, int], str]:
        """Ordered ``{(start, end): capture}`` mapping."""
        return {(span.start, span.end): span.capture for span in self.spans}

    def capture_at(self, offset: int) -> str | None:
        """Capture governing a single offset, if any."""
        for span in self.spans:
            if span.start <= offset < span.end:
                return span.capture
        return None
