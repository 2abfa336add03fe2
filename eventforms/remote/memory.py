"""In-memory implementation of the remote document store.

Behaves like the real event API: server-side recursive merge on patch,
server-assigned entity ids, per-type rule tables, and publish refused when
server-side validation fails. Failure injection and a call log make it the
standard collaborator in tests.
"""

import asyncio
import copy
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from eventforms.cache.store import merge_patch
from eventforms.config import get_settings
from eventforms.errors import NotFoundError, RemoteRejectedError, RuleSetShapeError, TransportError
from eventforms.models.common import EventStatus, Priority, SectionId
from eventforms.models.document import EventDocument
from eventforms.validation.rules import parse_rule_set
from eventforms.validation.validator import validate
from eventforms.validation.variants import get_variant

DEFAULT_RULE_TABLES: dict[str, dict[str, Any]] = {
    "shoplifting": {
        "event_type": "shoplifting",
        "display_name": "Shoplifting Incident",
        "sections": [
            {"section_id": "persons", "display_name": "Persons Involved", "required": True, "minimum_entries": 1},
            {"section_id": "products", "display_name": "Products Involved", "required": True, "minimum_entries": 1},
        ],
    },
    "accident": {
        "event_type": "accident",
        "display_name": "Accident Report",
        "sections": [
            {"section_id": "persons", "display_name": "Persons Involved", "required": True, "minimum_entries": 1},
            {"section_id": "vehicles", "display_name": "Vehicles Involved", "required": False, "minimum_entries": 0},
        ],
    },
    "vandalism": {
        "event_type": "vandalism",
        "display_name": "Vandalism Report",
        "sections": [
            {"section_id": "persons", "display_name": "Persons Involved", "required": False, "minimum_entries": 0},
            {"section_id": "evidence", "display_name": "Evidence", "required": True, "minimum_entries": 1},
        ],
    },
}

_DEFAULT_SECTIONS = (SectionId.persons.value, SectionId.vehicles.value, SectionId.products.value)

# Fields a patch may never touch; status only changes through publish
_PROTECTED_FIELDS = ("id", "status")


class InMemoryRemoteStore:
    """In-memory implementation of RemoteDocumentStore."""

    def __init__(
        self,
        *,
        rule_tables: Mapping[str, Any] | None = None,
        latency_ms: int | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize store.

        Args:
            rule_tables: Raw rule table payload per event type
            latency_ms: Simulated latency per call (default from Settings)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._documents: dict[str, dict[str, Any]] = {}
        self._rule_tables: dict[str, Any] = copy.deepcopy(
            dict(rule_tables) if rule_tables is not None else DEFAULT_RULE_TABLES
        )
        if latency_ms is None:
            latency_ms = get_settings().reference_latency_ms
        self._latency_seconds = latency_ms / 1000
        self._sleep = sleep_fn or asyncio.sleep
        self._failures: dict[str, list[int]] = {}
        # (operation, document_id or event_type, detail)
        self.calls: list[tuple[str, str, Any]] = []

    def fail_next(self, operation: str, times: int = 1, status_code: int = 503) -> None:
        """Make the next `times` calls of an operation raise TransportError."""
        self._failures.setdefault(operation, []).extend([status_code] * times)

    def set_rule_payload(self, event_type: str, payload: Any) -> None:
        """Replace the raw rule table served for a type (may be malformed)."""
        self._rule_tables[event_type] = copy.deepcopy(payload)

    def seed(self, document: EventDocument | Mapping[str, Any]) -> EventDocument:
        """Store a document directly, bypassing the call log."""
        if isinstance(document, EventDocument):
            data = document.model_dump(mode="json")
        else:
            data = EventDocument.model_validate(document).model_dump(mode="json")
        self._documents[data["id"]] = data
        return EventDocument.model_validate(copy.deepcopy(data))

    def stored(self, document_id: str) -> EventDocument | None:
        """Server-side copy of a document (test inspection)."""
        data = self._documents.get(document_id)
        return EventDocument.model_validate(copy.deepcopy(data)) if data is not None else None

    def calls_for(self, operation: str) -> list[tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] == operation]

    async def fetch(self, document_id: str) -> EventDocument:
        await self._enter("fetch", document_id)
        return self._snapshot(self._require(document_id))

    async def patch(self, document_id: str, partial: Mapping[str, Any]) -> EventDocument:
        await self._enter("patch", document_id, copy.deepcopy(dict(partial)))
        data = self._require(document_id)
        updates = {k: v for k, v in partial.items() if k not in _PROTECTED_FIELDS}

        merged = merge_patch(copy.deepcopy(data), updates)
        document = EventDocument.model_validate(merged)
        self._documents[document_id] = document.model_dump(mode="json")
        return self._snapshot(self._documents[document_id])

    async def create_entity(
        self, document_id: str, section_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        await self._enter("create_entity", document_id, (section_id, copy.deepcopy(dict(payload))))
        data = self._require(document_id)
        entity = {k: copy.deepcopy(v) for k, v in payload.items() if k != "id"}
        entity["id"] = f"{section_id}-{uuid.uuid4().hex}"
        data.setdefault("sections", {}).setdefault(section_id, []).append(entity)
        return copy.deepcopy(entity)

    async def update_entity(
        self,
        document_id: str,
        section_id: str,
        entity_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        await self._enter(
            "update_entity", document_id, (section_id, entity_id, copy.deepcopy(dict(fields)))
        )
        entries = self._entries(document_id, section_id)
        index = self._require_index(entries, section_id, entity_id)
        updates = {k: copy.deepcopy(v) for k, v in fields.items() if k != "id"}
        entries[index] = {**entries[index], **updates}
        return copy.deepcopy(entries[index])

    async def delete_entity(self, document_id: str, section_id: str, entity_id: str) -> None:
        await self._enter("delete_entity", document_id, (section_id, entity_id))
        entries = self._entries(document_id, section_id)
        index = self._require_index(entries, section_id, entity_id)
        entries.pop(index)

    async def publish(self, document_id: str) -> EventDocument:
        await self._enter("publish", document_id)
        data = self._require(document_id)
        document = EventDocument.model_validate(copy.deepcopy(data))

        if document.is_published:
            raise RemoteRejectedError("Event is already published", status_code=409)

        try:
            rules = parse_rule_set(self._rule_tables.get(document.event_type), document.event_type)
        except RuleSetShapeError as e:
            raise RemoteRejectedError("Event type configuration unavailable", status_code=400) from e

        if not validate(document, rules).can_publish:
            raise RemoteRejectedError("Event validation failed", status_code=400)

        data["status"] = EventStatus.published.value
        return self._snapshot(data)

    async def fetch_section_rules(self, event_type: str) -> Any:
        await self._enter("fetch_section_rules", event_type)
        if event_type not in self._rule_tables:
            raise NotFoundError(f"Event type {event_type} not found")
        return copy.deepcopy(self._rule_tables[event_type])

    async def create_document(
        self, event_type: str, organization_id: str, site_id: str
    ) -> EventDocument:
        await self._enter("create_document", event_type, (organization_id, site_id))
        variant = get_variant(event_type)
        section_ids = list(variant.sections) if variant is not None else list(_DEFAULT_SECTIONS)

        document = EventDocument(
            id=str(uuid.uuid4()),
            event_type=event_type,
            organization_id=organization_id,
            site_id=site_id,
            status=EventStatus.draft,
            metadata={
                "title": "",
                "description": "",
                "priority": Priority.medium.value,
                "occurred_at": datetime.now(UTC).isoformat(),
            },
            sections={section_id: [] for section_id in section_ids},
        )
        self._documents[document.id] = document.model_dump(mode="json")
        return self._snapshot(self._documents[document.id])

    async def _enter(self, operation: str, key: str, detail: Any = None) -> None:
        """Record the call, simulate latency and apply injected failures."""
        self.calls.append((operation, key, detail))
        if self._latency_seconds > 0:
            await self._sleep(self._latency_seconds)

        pending = self._failures.get(operation)
        if pending:
            status_code = pending.pop(0)
            raise TransportError(f"{operation} failed with HTTP {status_code}", status_code=status_code)

    def _require(self, document_id: str) -> dict[str, Any]:
        data = self._documents.get(document_id)
        if data is None:
            raise NotFoundError(f"Event {document_id} not found")
        return data

    def _entries(self, document_id: str, section_id: str) -> list[Any]:
        data = self._require(document_id)
        return data.setdefault("sections", {}).setdefault(section_id, [])

    @staticmethod
    def _require_index(entries: list[Any], section_id: str, entity_id: str) -> int:
        for index, entry in enumerate(entries):
            if isinstance(entry, Mapping) and entry.get("id") == entity_id:
                return index
        raise NotFoundError(f"Entity {entity_id} not found in section {section_id}")

    @staticmethod
    def _snapshot(data: dict[str, Any]) -> EventDocument:
        return EventDocument.model_validate(copy.deepcopy(data))
