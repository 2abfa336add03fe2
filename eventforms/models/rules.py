"""Section rule models - per event type requirements fetched at runtime."""

from pydantic import BaseModel, Field


class SectionRule(BaseModel):
    """Declarative requirement for one section under one event type."""

    section_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    required: bool
    minimum_entries: int = Field(..., ge=0)


class RuleSet(BaseModel):
    """All section rules declared for an event type."""

    event_type: str = Field(..., min_length=1)
    display_name: str = ""
    sections: list[SectionRule]

    def rule_for(self, section_id: str) -> SectionRule | None:
        for rule in self.sections:
            if rule.section_id == section_id:
                return rule
        return None
