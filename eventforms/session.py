"""Event form session - wires cache, field sync, mutator, rules and publish gate.

A session is the surface presentation code talks to for one document:
field controllers for the inputs, insert/remove for the section lists, a
fresh validation result on demand or on every cache change, and publish.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from eventforms.cache.store import DocumentCache
from eventforms.config import Settings, get_settings
from eventforms.models.document import DocumentSnapshot, EventDocument
from eventforms.models.validation import ValidationResult, ValidationSummary
from eventforms.remote.base import RemoteDocumentStore
from eventforms.sync.collection import CollectionMutator, MutationResult
from eventforms.sync.field import FieldSyncController
from eventforms.sync.instrumentation import SyncLogger, SyncMetrics
from eventforms.sync.publish import PublishGate, PublishOutcome
from eventforms.sync.registry import FieldSyncRegistry
from eventforms.validation.provider import SectionRuleProvider
from eventforms.validation.validator import validate, validate_section, validation_summary

logger = logging.getLogger(__name__)

ValidationListener = Callable[[ValidationResult], None]


class EventFormSession:
    """Editing session for one event document."""

    def __init__(
        self,
        document_id: str,
        remote: RemoteDocumentStore,
        *,
        cache: DocumentCache | None = None,
        rules: SectionRuleProvider | None = None,
        settings: Settings | None = None,
        metrics: SyncMetrics | None = None,
        logger: SyncLogger | None = None,
    ) -> None:
        """Initialize session.

        Args:
            document_id: Document being edited
            remote: Remote document store
            cache: Shared document cache (a private one is created if omitted)
            rules: Shared rule provider (a private one is created if omitted)
            settings: Settings override (default: get_settings())
            metrics: Metrics recorder passed to all sync components
            logger: Structured logger passed to all sync components
        """
        settings = settings or get_settings()
        self.document_id = document_id
        self.cache = cache or DocumentCache()
        self.rules = rules or SectionRuleProvider(remote)
        self.fields = FieldSyncRegistry(
            self.cache,
            remote,
            debounce_ms=settings.debounce_ms,
            metrics=metrics,
            logger=logger,
        )
        self.collections = CollectionMutator(
            self.cache,
            remote,
            registry=self.fields,
            provisional_prefix=settings.provisional_id_prefix,
            metrics=metrics,
            logger=logger,
        )
        self.gate = PublishGate(self.cache, remote, self.rules, metrics=metrics, logger=logger)
        self._remote = remote
        self._listeners: list[ValidationListener] = []
        self._event_type: str | None = None
        self._refresh_task: asyncio.Task[Any] | None = None
        self._unsubscribe = self.cache.subscribe(document_id, self._on_snapshot)

    @property
    def document(self) -> EventDocument | None:
        snapshot = self.cache.get(self.document_id)
        return snapshot.document if snapshot is not None else None

    async def load(self) -> EventDocument:
        """Fetch the document and the rule set of its type.

        Raises:
            NotFoundError: Document does not exist remotely
            TransportError: Fetch failed
        """
        document = await self._remote.fetch(self.document_id)
        self._event_type = document.event_type
        self.cache.set(self.document_id, document)
        await self.rules.refresh(document.event_type)
        self._notify()
        return document

    def field(self, path: str) -> FieldSyncController:
        """Controller for one field path of this document."""
        return self.fields.get(self.document_id, path)

    async def insert(
        self, section_id: str, payload: Mapping[str, Any] | BaseModel
    ) -> MutationResult:
        return await self.collections.insert(self.document_id, section_id, payload)

    async def remove(self, section_id: str, entity_id: str) -> MutationResult:
        return await self.collections.remove(self.document_id, section_id, entity_id)

    def section_error(self, section_id: str) -> str | None:
        return self.collections.section_error(self.document_id, section_id)

    def validation(self) -> ValidationResult:
        """Validate the live snapshot against the current type's rule set."""
        document = self.document
        if document is None:
            return ValidationResult(pending=True)
        return validate(document, self.rules.resolve(document.event_type))

    def section_validation(self, section_id: str) -> ValidationResult:
        document = self.document
        if document is None:
            return ValidationResult(pending=True)
        return validate_section(document, section_id, self.rules.resolve(document.event_type))

    def summary(self) -> ValidationSummary | None:
        document = self.document
        if document is None:
            return None
        return validation_summary(document, self.validation())

    def subscribe_validation(self, listener: ValidationListener) -> Callable[[], None]:
        """Call `listener` with a fresh result after every cache change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, flush_pending: bool = True) -> PublishOutcome:
        """Publish the document.

        Args:
            flush_pending: Fire pending field timers and wait for their
                writes first, so the gate sees every settled edit
        """
        if flush_pending:
            await self.fields.flush_document(self.document_id)
        return await self.gate.publish(self.document_id)

    async def wait_for_rules(self) -> None:
        """Wait for a rule refresh triggered by a type change."""
        if self._refresh_task is not None:
            await asyncio.shield(self._refresh_task)

    def close(self) -> None:
        """Cancel pending field timers and stop listening to the cache."""
        self.fields.cancel_document(self.document_id)
        self._unsubscribe()
        self._listeners.clear()

    def _on_snapshot(self, snapshot: DocumentSnapshot) -> None:
        event_type = snapshot.document.event_type
        if event_type != self._event_type:
            self._event_type = event_type
            self._schedule_refresh(event_type)
        self._notify()

    def _schedule_refresh(self, event_type: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller); load() or the next change refreshes
            return
        self._refresh_task = loop.create_task(self._refresh(event_type))

    async def _refresh(self, event_type: str) -> None:
        await self.rules.refresh(event_type)
        if self._event_type == event_type:
            self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        result = self.validation()
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception(
                    "Validation listener failed",
                    extra={"structured": {"document_id": self.document_id}},
                )
