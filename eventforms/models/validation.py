"""Validation result models - validation problems are data, never exceptions."""

from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    """Outcome of validating one document snapshot against a rule set."""

    is_valid: bool = False
    can_publish: bool = False
    # Rule set not resolved yet: publish disabled, no user-facing messages
    pending: bool = False
    field_errors: dict[str, str] = Field(default_factory=dict)
    section_errors: dict[str, list[str]] = Field(default_factory=dict)
    # Flat path -> messages view of everything above
    errors: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(len(messages) for messages in self.errors.values())


class SectionSummary(BaseModel):
    """Per-section status for display."""

    valid: bool
    error_count: int
    errors: list[str] = Field(default_factory=list)


class ValidationSummary(BaseModel):
    """Condensed validation status for a status panel."""

    overall_valid: bool
    can_publish: bool
    pending: bool
    total_errors: int
    section_summaries: dict[str, SectionSummary] = Field(default_factory=dict)
