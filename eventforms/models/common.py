"""Common enums shared across all models."""

from enum import Enum


class EventType(str, Enum):
    """Event type discriminant."""

    shoplifting = "shoplifting"
    accident = "accident"
    vandalism = "vandalism"


class EventStatus(str, Enum):
    """Publication status (draft -> published only)."""

    draft = "draft"
    published = "published"


class Priority(str, Enum):
    """Event priority."""

    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class PersonRole(str, Enum):
    """Role of a person involved in an event."""

    suspect = "suspect"
    victim = "victim"
    witness = "witness"
    employee = "employee"


class SectionId(str, Enum):
    """Named entity collections within an event."""

    persons = "persons"
    vehicles = "vehicles"
    products = "products"
    evidence = "evidence"
