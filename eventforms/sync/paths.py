"""Dotted field paths addressed by field sync controllers.

Document fields: `metadata.title`, `metadata.priority`, `event_type`, ...
Entity fields: `sections.<section_id>.<entity_id>.<field>`. Entities are
addressed by id rather than index so removals never shift a target.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from eventforms.models.document import EventDocument

# Top-level keys that are never written through a field controller
_READ_ONLY_ROOTS = ("id", "status")


@dataclass(frozen=True)
class FieldPath:
    """Parsed field path."""

    raw: str
    parts: tuple[str, ...]
    section_id: str | None = None
    entity_id: str | None = None

    @classmethod
    def parse(cls, path: str) -> "FieldPath":
        """Parse and check a dotted path.

        Raises:
            ValueError: Path is empty, malformed or read-only
        """
        parts = tuple(path.split("."))
        if not path or any(not part for part in parts):
            raise ValueError(f"Invalid field path: {path!r}")
        if parts[0] in _READ_ONLY_ROOTS:
            raise ValueError(f"Field {parts[0]} cannot be edited")
        if parts[0] == "sections":
            if len(parts) != 4:
                raise ValueError(
                    f"Entity field paths look like sections.<section>.<entity_id>.<field>: {path!r}"
                )
            return cls(raw=path, parts=parts, section_id=parts[1], entity_id=parts[2])
        return cls(raw=path, parts=parts)

    @property
    def is_entity_field(self) -> bool:
        return self.entity_id is not None

    @property
    def field(self) -> str:
        return self.parts[-1]

    def belongs_to(self, section_id: str, entity_id: str) -> bool:
        return self.section_id == section_id and self.entity_id == entity_id

    def with_entity(self, entity_id: str) -> "FieldPath":
        """Same field on another entity of the same section."""
        if not self.is_entity_field:
            raise ValueError(f"{self.raw} is not an entity field")
        return FieldPath.parse(f"sections.{self.section_id}.{entity_id}.{self.field}")

    def read(self, document: EventDocument) -> Any:
        """Current value at this path, None when absent."""
        if self.is_entity_field:
            for entry in document.section(self.section_id or ""):
                if isinstance(entry, Mapping) and entry.get("id") == self.entity_id:
                    return entry.get(self.field)
            return None

        current: Any = document.model_dump(mode="json")
        for part in self.parts:
            if not isinstance(current, Mapping):
                return None
            current = current.get(part)
        return current

    def read_entity(self, entity: Mapping[str, Any]) -> Any:
        return entity.get(self.field)

    def as_patch(self, value: Any) -> dict[str, Any]:
        """Nested partial document carrying only this field (document fields only)."""
        if self.is_entity_field:
            raise ValueError("Entity fields are patched through the entity endpoints")
        patch: dict[str, Any] = {self.parts[-1]: value}
        for part in reversed(self.parts[:-1]):
            patch = {part: patch}
        return patch
