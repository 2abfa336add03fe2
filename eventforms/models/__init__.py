"""Models package - re-exports for convenience."""

from eventforms.models.common import EventStatus, EventType, PersonRole, Priority, SectionId
from eventforms.models.document import DocumentSnapshot, EventDocument, EventMetadata
from eventforms.models.entities import Evidence, Person, Product, Vehicle
from eventforms.models.rules import RuleSet, SectionRule
from eventforms.models.validation import SectionSummary, ValidationResult, ValidationSummary

__all__ = [
    # Common
    "EventType",
    "EventStatus",
    "Priority",
    "PersonRole",
    "SectionId",
    # Document
    "EventDocument",
    "EventMetadata",
    "DocumentSnapshot",
    # Entities
    "Person",
    "Vehicle",
    "Product",
    "Evidence",
    # Rules
    "SectionRule",
    "RuleSet",
    # Validation
    "ValidationResult",
    "ValidationSummary",
    "SectionSummary",
]
