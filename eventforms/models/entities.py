"""Entity variants stored in event sections.

These are the strict schemas: the validator checks cached entries against
them, and their `error_messages` give the user-facing text per field.
"""

from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from eventforms.models.common import PersonRole

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class Person(BaseModel):
    """Person involved in an event."""

    error_messages: ClassVar[dict[str, str]] = {
        "name": "Name is required",
        "role": "Role must be one of suspect, victim, witness, employee",
        "age": "Age must be a whole number between 0 and 150",
    }

    id: NonEmptyStr
    name: NonEmptyStr
    role: PersonRole
    age: int | None = Field(default=None, ge=0, le=150)


class Vehicle(BaseModel):
    """Vehicle involved in an event."""

    error_messages: ClassVar[dict[str, str]] = {
        "make": "Make is required",
        "model": "Model is required",
    }

    id: NonEmptyStr
    make: NonEmptyStr
    model: NonEmptyStr
    license_plate: str | None = None


class Product(BaseModel):
    """Product involved in an event."""

    error_messages: ClassVar[dict[str, str]] = {
        "name": "Product name is required",
        "quantity": "Quantity must be at least 1",
        "unit_value": "Unit value must be non-negative",
    }

    id: NonEmptyStr
    name: NonEmptyStr
    sku: str | None = None
    quantity: int = Field(..., ge=1)
    unit_value: float = Field(..., ge=0)


class Evidence(BaseModel):
    """Piece of evidence attached to an event."""

    model_config = ConfigDict(extra="allow")

    error_messages: ClassVar[dict[str, str]] = {
        "description": "Evidence description is required",
    }

    id: NonEmptyStr
    description: NonEmptyStr
