"""Tests for dotted field paths."""

from typing import Any

import pytest

from eventforms.sync.paths import FieldPath


class TestFieldPathParse:
    def test_document_field(self) -> None:
        path = FieldPath.parse("metadata.title")
        assert path.is_entity_field is False
        assert path.field == "title"
        assert path.parts == ("metadata", "title")

    def test_entity_field(self) -> None:
        path = FieldPath.parse("sections.persons.p-1.name")
        assert path.is_entity_field is True
        assert path.section_id == "persons"
        assert path.entity_id == "p-1"
        assert path.field == "name"
        assert path.belongs_to("persons", "p-1")
        assert not path.belongs_to("persons", "p-2")

    @pytest.mark.parametrize(
        "raw",
        ["", "metadata..title", "id", "status", "sections.persons.name", "sections.persons.p-1.name.x"],
    )
    def test_rejects_invalid_paths(self, raw: str) -> None:
        with pytest.raises(ValueError):
            FieldPath.parse(raw)


class TestFieldPathAccess:
    def test_read_document_field(self, seeded: Any) -> None:
        assert FieldPath.parse("metadata.priority").read(seeded) == "high"
        assert FieldPath.parse("event_type").read(seeded) == "shoplifting"
        assert FieldPath.parse("metadata.nothing").read(seeded) is None

    def test_read_entity_field(self, seeded: Any) -> None:
        assert FieldPath.parse("sections.persons.p-1.role").read(seeded) == "suspect"
        assert FieldPath.parse("sections.persons.ghost.role").read(seeded) is None

    def test_as_patch_nests_single_field(self) -> None:
        assert FieldPath.parse("metadata.title").as_patch("New") == {"metadata": {"title": "New"}}
        assert FieldPath.parse("event_type").as_patch("accident") == {"event_type": "accident"}

    def test_as_patch_refuses_entity_fields(self) -> None:
        with pytest.raises(ValueError):
            FieldPath.parse("sections.persons.p-1.name").as_patch("x")
