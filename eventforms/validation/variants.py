"""Event type variants - tagged dispatch table for polymorphic validation.

Each variant owns the field schema of every section it recognizes. Which
sections are required, and how many entries they need, is not hardcoded
here: those rules are fetched at runtime (see SectionRuleProvider).
"""

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel

from eventforms.models.common import EventType, SectionId
from eventforms.models.entities import Evidence, Person, Product, Vehicle


@dataclass(frozen=True)
class SectionSchema:
    """Field schema and labels for one section."""

    section_id: str
    entity_model: type[BaseModel]
    singular: str
    plural: str


@dataclass(frozen=True)
class EventVariant:
    """Everything the validator needs to know about one event type."""

    event_type: EventType
    display_name: str
    sections: Mapping[str, SectionSchema]

    def recognizes(self, section_id: str) -> bool:
        return section_id in self.sections


PERSONS = SectionSchema(SectionId.persons.value, Person, "person", "persons")
VEHICLES = SectionSchema(SectionId.vehicles.value, Vehicle, "vehicle", "vehicles")
PRODUCTS = SectionSchema(SectionId.products.value, Product, "product", "products")
EVIDENCE = SectionSchema(
    SectionId.evidence.value, Evidence, "piece of evidence", "pieces of evidence"
)


def _sections(*schemas: SectionSchema) -> dict[str, SectionSchema]:
    return {schema.section_id: schema for schema in schemas}


VARIANTS: dict[str, EventVariant] = {
    EventType.shoplifting.value: EventVariant(
        event_type=EventType.shoplifting,
        display_name="Shoplifting Incident",
        sections=_sections(PERSONS, PRODUCTS, VEHICLES),
    ),
    EventType.accident.value: EventVariant(
        event_type=EventType.accident,
        display_name="Accident Report",
        sections=_sections(PERSONS, VEHICLES, PRODUCTS),
    ),
    EventType.vandalism.value: EventVariant(
        event_type=EventType.vandalism,
        display_name="Vandalism Report",
        sections=_sections(PERSONS, VEHICLES, PRODUCTS, EVIDENCE),
    ),
}


def get_variant(event_type: str | None) -> EventVariant | None:
    """Look up the variant for a type discriminant, None if unrecognized."""
    if not event_type:
        return None
    return VARIANTS.get(event_type)
