"""Event document models.

Documents are stored leniently: a partially filled report (empty title,
unknown priority, half-typed entities) must be representable in the cache.
Constraints are enforced by the validator, not at construction time.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from eventforms.models.common import EventStatus, Priority


class EventMetadata(BaseModel):
    """Top-level descriptive fields of an event."""

    model_config = ConfigDict(frozen=True)

    title: str | None = ""
    description: str | None = ""
    priority: str | None = Priority.medium.value
    occurred_at: str | None = ""  # ISO-8601 timestamp


class EventDocument(BaseModel):
    """One reported event and its nested section collections."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    event_type: str  # Plain string so unknown discriminants can be reported
    organization_id: str = ""
    site_id: str = ""
    status: EventStatus = EventStatus.draft
    metadata: EventMetadata = Field(default_factory=EventMetadata)
    # section_id -> ordered entries (normally entity dicts)
    sections: dict[str, list[Any]] = Field(default_factory=dict)

    @property
    def is_published(self) -> bool:
        return self.status == EventStatus.published

    def section(self, section_id: str) -> list[Any]:
        """Entries of a section, empty when the section is absent."""
        return self.sections.get(section_id) or []


@dataclass(frozen=True)
class DocumentSnapshot:
    """Immutable cache entry: a document plus its cache version."""

    document: EventDocument
    version: int
