"""Collection mutator - immediate optimistic insert/remove of section entities.

Entity ids are server-assigned. While a create is in flight the entity is
shown under a provisional client id from a separate namespace
(Settings.provisional_id_prefix), replaced in place once the server answers.
"""

import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from eventforms.cache.store import DocumentCache
from eventforms.config import get_settings
from eventforms.errors import NotFoundError, TransportError
from eventforms.remote.base import RemoteDocumentStore
from eventforms.sync.instrumentation import SyncContext, SyncLogger, SyncMetrics
from eventforms.sync.registry import FieldSyncRegistry

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of an insert or remove; failures are data, not exceptions."""

    ok: bool
    entity: dict[str, Any] | None = None
    error: str | None = None


class CollectionMutator:
    """Insert/remove entities in named sections without debouncing."""

    def __init__(
        self,
        cache: DocumentCache,
        remote: RemoteDocumentStore,
        *,
        registry: FieldSyncRegistry | None = None,
        provisional_prefix: str | None = None,
        metrics: SyncMetrics | None = None,
        logger: SyncLogger | None = None,
    ) -> None:
        """Initialize mutator.

        Args:
            cache: Document cache receiving optimistic updates
            remote: Remote document store
            registry: Field controllers to cancel when an entity is removed
            provisional_prefix: Prefix of provisional ids (default from Settings)
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
        """
        self._cache = cache
        self._remote = remote
        self._registry = registry
        self._prefix = provisional_prefix or get_settings().provisional_id_prefix
        self._metrics = metrics or SyncMetrics()
        self._logger = logger or SyncLogger()
        self._errors: dict[tuple[str, str], str] = {}
        self._creating: set[tuple[str, str, str]] = set()
        # (document_id, section_id, provisional id) -> server-assigned id
        self._resolved: dict[tuple[str, str, str], str] = {}

    def is_provisional(self, entity_id: str) -> bool:
        return entity_id.startswith(self._prefix)

    def resolve_id(self, document_id: str, section_id: str, entity_id: str) -> str:
        """Server-assigned id for a provisional id whose create resolved."""
        return self._resolved.get((document_id, section_id, entity_id), entity_id)

    def section_error(self, document_id: str, section_id: str) -> str | None:
        """Last insert/remove error of one section."""
        return self._errors.get((document_id, section_id))

    def clear_section_error(self, document_id: str, section_id: str) -> None:
        self._errors.pop((document_id, section_id), None)

    async def insert(
        self,
        document_id: str,
        section_id: str,
        payload: Mapping[str, Any] | BaseModel,
    ) -> MutationResult:
        """Create an entity, showing it optimistically under a provisional id."""
        ctx = SyncContext(document_id=document_id, operation="entity_insert", target=section_id)
        key = (document_id, section_id)
        self._errors.pop(key, None)

        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json", exclude_none=True)
        else:
            data = dict(payload)
        data.pop("id", None)

        provisional_id = f"{self._prefix}{uuid.uuid4().hex}"
        try:
            self._cache.insert_entity(document_id, section_id, {**data, "id": provisional_id})
        except NotFoundError as e:
            return self._fail(ctx, key, "Event not found", e)

        self._creating.add((document_id, section_id, provisional_id))
        # Field edits made while the create is in flight wait for the real id
        if self._registry is not None:
            self._registry.hold_entity(document_id, section_id, provisional_id)
        start_time = time.monotonic()
        try:
            created = await self._remote.create_entity(document_id, section_id, data)
            if not isinstance(created, Mapping) or not created.get("id"):
                raise TransportError("Create response did not include an entity id")
        except Exception as e:
            self._drop_provisional(document_id, section_id, provisional_id)
            if self._registry is not None:
                self._registry.release_entity(document_id, section_id, provisional_id, None)
            if not isinstance(e, (TransportError, NotFoundError)):
                logger.exception(
                    f"Unexpected failure creating entity in {section_id}",
                    extra={"structured": {"document_id": document_id, "section_id": section_id}},
                )
            return self._fail(ctx, key, f"Failed to add to {section_id}: {e}", e, start_time)
        finally:
            self._creating.discard((document_id, section_id, provisional_id))

        created = dict(created)
        entity_id = str(created["id"])
        self._resolved[(document_id, section_id, provisional_id)] = entity_id
        try:
            self._cache.replace_entity(document_id, section_id, provisional_id, created)
        except NotFoundError:
            # Document dropped from the cache meanwhile; the server copy stands
            pass
        if self._registry is not None:
            self._registry.release_entity(document_id, section_id, provisional_id, entity_id)

        self._succeed(ctx, "created", start_time)
        return MutationResult(ok=True, entity=created)

    async def remove(self, document_id: str, section_id: str, entity_id: str) -> MutationResult:
        """Remove an entity optimistically; restore it at its index on failure."""
        ctx = SyncContext(document_id=document_id, operation="entity_remove", target=section_id)
        key = (document_id, section_id)
        self._errors.pop(key, None)

        if (document_id, section_id, entity_id) in self._creating:
            return self._fail(
                ctx, key, "This item is still being created", TransportError("provisional")
            )

        entity_id = self.resolve_id(document_id, section_id, entity_id)

        # Pending field writes must not fire for an entity that is going away
        discarded = (
            self._registry.cancel_entity(document_id, section_id, entity_id)
            if self._registry is not None
            else []
        )

        try:
            index, entity = self._cache.remove_entity(document_id, section_id, entity_id)
        except NotFoundError as e:
            return self._fail(ctx, key, "Item not found", e)

        start_time = time.monotonic()
        try:
            await self._remote.delete_entity(document_id, section_id, entity_id)
        except NotFoundError:
            # Already gone on the server: the local removal is correct
            pass
        except Exception as e:
            try:
                self._cache.insert_entity(document_id, section_id, entity, index=index)
            except NotFoundError:
                pass
            for controller in discarded:
                controller.error = "Unsaved changes to this item were discarded"
            if not isinstance(e, TransportError):
                logger.exception(
                    f"Unexpected failure deleting entity {entity_id}",
                    extra={"structured": {"document_id": document_id, "section_id": section_id}},
                )
            return self._fail(ctx, key, f"Failed to remove from {section_id}: {e}", e, start_time)

        self._succeed(ctx, "removed", start_time)
        return MutationResult(ok=True, entity=entity)

    def _drop_provisional(self, document_id: str, section_id: str, provisional_id: str) -> None:
        try:
            self._cache.remove_entity(document_id, section_id, provisional_id)
        except NotFoundError:
            pass

    def _succeed(self, ctx: SyncContext, outcome: str, start_time: float) -> None:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_latency(ctx.operation, outcome, elapsed_ms)
        self._metrics.inc_outcome(ctx.operation, outcome)
        self._logger.log_attempt(ctx, outcome, elapsed_ms)

    def _fail(
        self,
        ctx: SyncContext,
        key: tuple[str, str],
        message: str,
        error: Exception,
        start_time: float | None = None,
    ) -> MutationResult:
        elapsed_ms = (time.monotonic() - start_time) * 1000 if start_time is not None else 0.0
        self._metrics.inc_outcome(ctx.operation, "failed")
        self._logger.log_attempt(ctx, "failed", elapsed_ms, error_reason=type(error).__name__)
        self._errors[key] = message
        return MutationResult(ok=False, error=message)
