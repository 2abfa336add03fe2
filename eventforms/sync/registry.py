"""Registry of field sync controllers keyed by (document id, field path)."""

import asyncio
from collections.abc import Awaitable, Callable

from eventforms.cache.store import DocumentCache
from eventforms.remote.base import RemoteDocumentStore
from eventforms.sync.field import FieldSyncController
from eventforms.sync.instrumentation import SyncLogger, SyncMetrics
from eventforms.sync.paths import FieldPath


class FieldSyncRegistry:
    """Get-or-create store of controllers so each field path has one writer."""

    def __init__(
        self,
        cache: DocumentCache,
        remote: RemoteDocumentStore,
        *,
        debounce_ms: int | None = None,
        metrics: SyncMetrics | None = None,
        logger: SyncLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._debounce_ms = debounce_ms
        self._metrics = metrics
        self._logger = logger
        self._sleep = sleep_fn
        self._by_key: dict[tuple[str, str], FieldSyncController] = {}
        # Raw paths of provisional entities -> raw paths after create resolved
        self._aliases: dict[tuple[str, str], str] = {}
        # (document_id, section_id, provisional entity id) with a create in flight
        self._held: set[tuple[str, str, str]] = set()

    def get(self, document_id: str, path: str) -> FieldSyncController:
        """Get existing controller for a field path or create one."""
        field_path = FieldPath.parse(path)
        raw = self._aliases.get((document_id, field_path.raw))
        if raw is not None:
            field_path = FieldPath.parse(raw)
        key = (document_id, field_path.raw)
        if key not in self._by_key:
            self._by_key[key] = FieldSyncController(
                document_id,
                field_path,
                self._cache,
                self._remote,
                debounce_ms=self._debounce_ms,
                metrics=self._metrics,
                logger=self._logger,
                sleep_fn=self._sleep,
                hold=self._is_held,
            )
        return self._by_key[key]

    def controllers(self, document_id: str) -> list[FieldSyncController]:
        return [c for (doc_id, _), c in self._by_key.items() if doc_id == document_id]

    def entity_controllers(
        self, document_id: str, section_id: str, entity_id: str
    ) -> list[FieldSyncController]:
        return [
            c for c in self.controllers(document_id) if c.path.belongs_to(section_id, entity_id)
        ]

    def cancel_entity(
        self,
        document_id: str,
        section_id: str,
        entity_id: str,
        error: str | None = None,
    ) -> list[FieldSyncController]:
        """Cancel pending timers of every field under an entity.

        Returns:
            Controllers whose unsent draft was discarded
        """
        return [
            controller
            for controller in self.entity_controllers(document_id, section_id, entity_id)
            if controller.cancel(error)
        ]

    def hold_entity(self, document_id: str, section_id: str, provisional_id: str) -> None:
        """Keep writes to a provisional entity waiting until its create resolves."""
        self._held.add((document_id, section_id, provisional_id))

    def release_entity(
        self,
        document_id: str,
        section_id: str,
        provisional_id: str,
        entity_id: str | None,
    ) -> None:
        """Move held controllers to the server-assigned id.

        Args:
            entity_id: Server-assigned id, or None when the create failed
                (held edits are then discarded with a visible error)
        """
        self._held.discard((document_id, section_id, provisional_id))
        if entity_id is None:
            self.cancel_entity(
                document_id, section_id, provisional_id, error="This item could not be created"
            )
            return

        for controller in self.entity_controllers(document_id, section_id, provisional_id):
            old_raw = controller.path.raw
            controller.retarget(controller.path.with_entity(entity_id))
            del self._by_key[(document_id, old_raw)]
            self._by_key[(document_id, controller.path.raw)] = controller
            self._aliases[(document_id, old_raw)] = controller.path.raw

    def cancel_document(self, document_id: str) -> None:
        for controller in self.controllers(document_id):
            controller.cancel()

    async def flush_document(self, document_id: str) -> None:
        """Fire pending timers of a document and wait for writes to settle."""
        controllers = self.controllers(document_id)
        if controllers:
            await asyncio.gather(*(controller.flush() for controller in controllers))

    def clear(self) -> None:
        """Cancel and drop all controllers (useful for testing)."""
        for controller in self._by_key.values():
            controller.cancel()
        self._by_key.clear()
        self._aliases.clear()
        self._held.clear()

    def _is_held(self, document_id: str, path: FieldPath) -> bool:
        if not path.is_entity_field:
            return False
        return (document_id, path.section_id or "", path.entity_id or "") in self._held
