"""Document cache - authoritative local snapshot store per document id.

Each document lives in its own arena slot with a lock, a versioned
immutable snapshot and an explicit subscriber list. Every write builds a
complete new snapshot under the slot lock and swaps it in with a single
assignment, so readers only ever see whole snapshots.
"""

import copy
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from eventforms.errors import NotFoundError
from eventforms.models.common import EventStatus
from eventforms.models.document import DocumentSnapshot, EventDocument

logger = logging.getLogger(__name__)

Subscriber = Callable[[DocumentSnapshot], None]


def merge_patch(target: dict[str, Any], partial: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge `partial` into `target` in place.

    Mappings merge key by key (so `sections` merges per section id and
    `metadata` per field); lists and scalars replace.
    """
    for key, value in partial.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            merge_patch(current, value)
        elif isinstance(value, Mapping):
            target[key] = merge_patch({}, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _find_entity(entries: list[Any], entity_id: str) -> int | None:
    for index, entry in enumerate(entries):
        if isinstance(entry, Mapping) and entry.get("id") == entity_id:
            return index
    return None


@dataclass
class _CacheSlot:
    """Arena slot for one document id."""

    lock: threading.RLock = field(default_factory=threading.RLock)
    snapshot: DocumentSnapshot | None = None
    subscribers: list[Subscriber] = field(default_factory=list)


class DocumentCache:
    """Explicit in-process store of document snapshots keyed by id."""

    def __init__(self) -> None:
        self._slots: dict[str, _CacheSlot] = {}
        self._arena_lock = threading.Lock()

    def _slot(self, document_id: str) -> _CacheSlot:
        with self._arena_lock:
            slot = self._slots.get(document_id)
            if slot is None:
                slot = _CacheSlot()
                self._slots[document_id] = slot
            return slot

    def get(self, document_id: str) -> DocumentSnapshot | None:
        """Get the current snapshot, None if the document is not cached."""
        slot = self._slots.get(document_id)
        return slot.snapshot if slot is not None else None

    def require(self, document_id: str) -> DocumentSnapshot:
        """Get the current snapshot or raise NotFoundError."""
        snapshot = self.get(document_id)
        if snapshot is None:
            raise NotFoundError(f"Document {document_id} is not cached")
        return snapshot

    def set(self, document_id: str, document: EventDocument | Mapping[str, Any]) -> DocumentSnapshot:
        """Store a complete document, replacing any cached snapshot."""
        if not isinstance(document, EventDocument):
            document = EventDocument.model_validate(document)
        if document.id != document_id:
            raise ValueError(f"Document id {document.id} does not match cache key {document_id}")

        slot = self._slot(document_id)
        with slot.lock:
            previous = slot.snapshot
            if previous is not None:
                document = self._keep_published(previous.document, document)
            version = previous.version + 1 if previous is not None else 1
            snapshot = DocumentSnapshot(document=document, version=version)
            slot.snapshot = snapshot
        self._notify(slot, snapshot)
        return snapshot

    def patch(self, document_id: str, partial: Mapping[str, Any]) -> DocumentSnapshot:
        """Deep-merge a partial document into the cached snapshot.

        Raises:
            NotFoundError: Document is not cached. This is the not-found
                signal; the cache is left unchanged and no snapshot is created.
        """
        if "id" in partial and partial["id"] != document_id:
            raise ValueError("Document id is immutable")

        def apply(data: dict[str, Any]) -> None:
            merge_patch(data, partial)

        snapshot, _ = self._write(document_id, apply)
        return snapshot

    def get_entity(self, document_id: str, section_id: str, entity_id: str) -> dict[str, Any] | None:
        """Get a copy of one entity, None when the document or entity is unknown."""
        snapshot = self.get(document_id)
        if snapshot is None:
            return None
        entries = snapshot.document.section(section_id)
        index = _find_entity(entries, entity_id)
        return copy.deepcopy(entries[index]) if index is not None else None

    def update_entity(
        self, document_id: str, section_id: str, entity_id: str, fields: Mapping[str, Any]
    ) -> DocumentSnapshot:
        """Merge fields into one entity of a section."""

        def apply(data: dict[str, Any]) -> None:
            entries = self._entries(data, section_id)
            index = self._require_index(entries, section_id, entity_id)
            entries[index] = {**entries[index], **copy.deepcopy(dict(fields))}

        snapshot, _ = self._write(document_id, apply)
        return snapshot

    def insert_entity(
        self,
        document_id: str,
        section_id: str,
        entity: Mapping[str, Any],
        index: int | None = None,
    ) -> DocumentSnapshot:
        """Insert an entity at `index` (append when None)."""

        def apply(data: dict[str, Any]) -> None:
            entries = self._entries(data, section_id)
            position = len(entries) if index is None else max(0, min(index, len(entries)))
            entries.insert(position, copy.deepcopy(dict(entity)))

        snapshot, _ = self._write(document_id, apply)
        return snapshot

    def remove_entity(
        self, document_id: str, section_id: str, entity_id: str
    ) -> tuple[int, dict[str, Any]]:
        """Remove an entity and return its prior index and value."""

        def apply(data: dict[str, Any]) -> tuple[int, dict[str, Any]]:
            entries = self._entries(data, section_id)
            index = self._require_index(entries, section_id, entity_id)
            return index, entries.pop(index)

        _, removed = self._write(document_id, apply)
        return removed

    def replace_entity(
        self, document_id: str, section_id: str, entity_id: str, entity: Mapping[str, Any]
    ) -> DocumentSnapshot:
        """Replace an entity in place (keeps its position)."""

        def apply(data: dict[str, Any]) -> None:
            entries = self._entries(data, section_id)
            index = self._require_index(entries, section_id, entity_id)
            entries[index] = copy.deepcopy(dict(entity))

        snapshot, _ = self._write(document_id, apply)
        return snapshot

    def subscribe(self, document_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every new snapshot of a document.

        Returns:
            Function that removes the subscription
        """
        slot = self._slot(document_id)
        with slot.lock:
            slot.subscribers.append(callback)

        def unsubscribe() -> None:
            with slot.lock:
                if callback in slot.subscribers:
                    slot.subscribers.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        """Drop all cached documents and subscribers (useful for testing)."""
        with self._arena_lock:
            self._slots.clear()

    def _write(
        self, document_id: str, apply: Callable[[dict[str, Any]], Any]
    ) -> tuple[DocumentSnapshot, Any]:
        slot = self._slots.get(document_id)
        if slot is None:
            raise NotFoundError(f"Document {document_id} is not cached")

        with slot.lock:
            previous = slot.snapshot
            if previous is None:
                raise NotFoundError(f"Document {document_id} is not cached")

            data = copy.deepcopy(previous.document.model_dump(mode="json"))
            extra = apply(data)
            document = EventDocument.model_validate(data)
            document = self._keep_published(previous.document, document)
            snapshot = DocumentSnapshot(document=document, version=previous.version + 1)
            slot.snapshot = snapshot

        self._notify(slot, snapshot)
        return snapshot, extra

    @staticmethod
    def _entries(data: dict[str, Any], section_id: str) -> list[Any]:
        sections = data.setdefault("sections", {})
        entries = sections.get(section_id)
        if entries is None:
            entries = []
            sections[section_id] = entries
        return entries

    @staticmethod
    def _require_index(entries: list[Any], section_id: str, entity_id: str) -> int:
        index = _find_entity(entries, entity_id)
        if index is None:
            raise NotFoundError(f"Entity {entity_id} not found in section {section_id}")
        return index

    @staticmethod
    def _keep_published(previous: EventDocument, incoming: EventDocument) -> EventDocument:
        # Status is monotonic: draft -> published only
        if previous.is_published and not incoming.is_published:
            return incoming.model_copy(update={"status": EventStatus.published})
        return incoming

    def _notify(self, slot: _CacheSlot, snapshot: DocumentSnapshot) -> None:
        with slot.lock:
            subscribers = list(slot.subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception(
                    "Cache subscriber failed",
                    extra={"structured": {"document_id": snapshot.document.id}},
                )
