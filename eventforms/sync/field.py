"""Field sync controller - debounced, optimistic, rollback-on-failure writes.

One controller owns one (document id, field path). It is an explicit state
machine driven by a cancellable timer task:

    IDLE --update_value--> EDITING --quiet window--> SAVING --settled--> IDLE
                              ^                        |
                              +----- queued edit ------+

- Timer expiry with draft == baseline suppresses the write entirely.
- At most one write is in flight per controller; edits that arrive while
  saving are queued and re-arm the timer only after the write settles.
- cancel() drops a pending timer but never an in-flight write.
- An entity whose create is still in flight is held: its timer re-arms
  until the registry retargets the controller at the server-assigned id.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from eventforms.cache.store import DocumentCache
from eventforms.config import get_settings
from eventforms.errors import NotFoundError, TransportError
from eventforms.remote.base import RemoteDocumentStore
from eventforms.sync.instrumentation import SyncContext, SyncLogger, SyncMetrics
from eventforms.sync.paths import FieldPath

logger = logging.getLogger(__name__)


class FieldState(str, Enum):
    """Lifecycle state of a field controller."""

    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


class FieldSyncController:
    """Debounced optimistic write pipeline for one field path."""

    def __init__(
        self,
        document_id: str,
        path: str | FieldPath,
        cache: DocumentCache,
        remote: RemoteDocumentStore,
        *,
        debounce_ms: int | None = None,
        metrics: SyncMetrics | None = None,
        logger: SyncLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        hold: Callable[[str, FieldPath], bool] | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            document_id: Document the field belongs to
            path: Dotted field path (see eventforms.sync.paths)
            cache: Document cache receiving optimistic updates
            remote: Remote document store
            debounce_ms: Quiescence window (default: Settings.debounce_ms)
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            hold: Returns True while the target entity cannot be written yet
                (its create is in flight); the write waits another window
        """
        self.document_id = document_id
        self.path = FieldPath.parse(path) if isinstance(path, str) else path
        self._cache = cache
        self._remote = remote
        if debounce_ms is None:
            debounce_ms = get_settings().debounce_ms
        self._debounce_seconds = debounce_ms / 1000
        self._metrics = metrics or SyncMetrics()
        self._logger = logger or SyncLogger()
        self._sleep = sleep_fn or asyncio.sleep
        self._hold = hold
        self._ctx = SyncContext(document_id=document_id, operation="field_write", target=self.path.raw)

        self.state = FieldState.IDLE
        self.error: str | None = None
        self._draft: Any = None
        self._baseline: Any = None
        self._queued = False
        self._timer: asyncio.Task[None] | None = None
        self._write_task: asyncio.Task[None] | None = None

    @property
    def value(self) -> Any:
        """Draft while editing or saving, otherwise the cached value."""
        if self.state == FieldState.IDLE:
            return self._cached_value()
        return self._draft

    @property
    def baseline(self) -> Any:
        """Value captured at edit start (None while idle)."""
        return self._baseline if self.state != FieldState.IDLE else None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def is_saving(self) -> bool:
        return self.state == FieldState.SAVING

    def update_value(self, value: Any) -> None:
        """Store a new draft and (re)start the quiescence window.

        Must be called from a running event loop.
        """
        if self.state == FieldState.IDLE:
            self._baseline = self._cached_value()
            self.state = FieldState.EDITING
            self.error = None

        self._draft = value

        if self.state == FieldState.SAVING:
            # Timer restarts once the in-flight write settles
            self._queued = True
            return

        self._arm()

    @property
    def has_unsent_edit(self) -> bool:
        """A draft exists that no write has carried yet."""
        return self.state == FieldState.EDITING or self._queued

    def cancel(self, error: str | None = None) -> bool:
        """Unmount: cancel the pending timer, never an in-flight write.

        Args:
            error: Message shown if an unsent draft is discarded

        Returns:
            True if an unsent draft was discarded
        """
        discarded = self.has_unsent_edit
        self._cancel_timer()
        self._queued = False
        if self.state == FieldState.EDITING:
            self.state = FieldState.IDLE
            self._draft = None
            self._baseline = None
        if discarded and error:
            self.error = error
        return discarded

    def retarget(self, path: FieldPath) -> None:
        """Point the controller at another path, keeping its draft and timer."""
        self.path = path
        self._ctx = SyncContext(
            document_id=self.document_id, operation="field_write", target=path.raw
        )

    async def flush(self) -> None:
        """Fire pending timers now and wait until the field is idle."""
        await self.wait_idle(flush=True)

    async def wait_idle(self, flush: bool = False) -> None:
        """Wait until no timer is pending and no write is in flight."""
        while True:
            # A held field cannot fire early; its timer keeps re-arming
            if (
                flush
                and self._write_task is None
                and self._timer is not None
                and not self._is_held()
            ):
                self._cancel_timer()
                self._fire()

            task = self._write_task or self._timer
            if task is None:
                return
            try:
                # Shielded so a cancelled waiter never cancels the write
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled():
                    continue
                raise

    def clear_error(self) -> None:
        self.error = None

    def _is_held(self) -> bool:
        return self._hold is not None and self._hold(self.document_id, self.path)

    def _cached_value(self) -> Any:
        snapshot = self._cache.get(self.document_id)
        if snapshot is None:
            return None
        return self.path.read(snapshot.document)

    def _arm(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._debounce())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _debounce(self) -> None:
        await self._sleep(self._debounce_seconds)
        self._timer = None
        self._fire()

    def _fire(self) -> None:
        """Quiescence reached: suppress, or apply optimistically and dispatch."""
        if self.state != FieldState.EDITING:
            return

        if self._is_held():
            self._arm()
            return

        value = self._draft
        if value == self._baseline:
            self._settle_idle()
            self._metrics.inc_outcome(self._ctx.operation, "suppressed")
            self._logger.log_attempt(self._ctx, "suppressed")
            return

        try:
            self._write_cache(value)
        except NotFoundError as e:
            # Owning document or entity is gone; nothing to write
            self._settle_idle()
            self.error = "This item no longer exists"
            self._metrics.inc_outcome(self._ctx.operation, "skipped")
            self._logger.log_attempt(self._ctx, "skipped", error_reason=type(e).__name__)
            return
        except ValueError as e:
            self._settle_idle()
            self.error = f"Invalid value for {self.path.field}"
            self._metrics.inc_outcome(self._ctx.operation, "invalid")
            self._logger.log_attempt(self._ctx, "invalid", error_reason=type(e).__name__)
            return

        self.state = FieldState.SAVING
        self._queued = False
        self._write_task = asyncio.get_running_loop().create_task(self._write(value))

    async def _write(self, value: Any) -> None:
        start_time = time.monotonic()
        try:
            authoritative = await self._send(value)
        except NotFoundError as e:
            self._rollback("This item no longer exists", e, start_time)
        except TransportError as e:
            self._rollback(str(e) or "Failed to update field", e, start_time)
        except Exception as e:
            logger.exception(
                f"Unexpected failure writing {self.path.raw}",
                extra={"structured": {"document_id": self.document_id, "path": self.path.raw}},
            )
            self._rollback("Failed to update field", e, start_time)
        else:
            self._reconcile(authoritative, start_time)
        finally:
            self._write_task = None

    async def _send(self, value: Any) -> Any:
        """Issue the single remote write carrying only this field."""
        path = self.path
        if path.is_entity_field:
            entity = await self._remote.update_entity(
                self.document_id,
                path.section_id or "",
                path.entity_id or "",
                {path.field: value},
            )
            return path.read_entity(entity)

        document = await self._remote.patch(self.document_id, path.as_patch(value))
        return path.read(document)

    def _reconcile(self, authoritative: Any, start_time: float) -> None:
        try:
            self._write_cache(authoritative)
        except (NotFoundError, ValueError):
            pass

        elapsed_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_latency(self._ctx.operation, "saved", elapsed_ms)
        self._metrics.inc_outcome(self._ctx.operation, "saved")
        self._logger.log_attempt(self._ctx, "saved", elapsed_ms)

        self._baseline = authoritative
        if self._queued:
            self._queued = False
            self.state = FieldState.EDITING
            self._arm()
        else:
            self._settle_idle()

    def _rollback(self, message: str, error: Exception, start_time: float) -> None:
        # Restore the pre-edit baseline; writing the same value twice is harmless
        try:
            self._write_cache(self._baseline)
        except (NotFoundError, ValueError):
            pass

        elapsed_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_latency(self._ctx.operation, "rolled_back", elapsed_ms)
        self._metrics.inc_outcome(self._ctx.operation, "rolled_back")
        self._logger.log_attempt(
            self._ctx, "rolled_back", elapsed_ms, error_reason=type(error).__name__
        )

        self._queued = False
        self._settle_idle()
        self.error = message

    def _settle_idle(self) -> None:
        self.state = FieldState.IDLE
        self._draft = None
        self._baseline = None

    def _write_cache(self, value: Any) -> None:
        path = self.path
        if path.is_entity_field:
            self._cache.update_entity(
                self.document_id, path.section_id or "", path.entity_id or "", {path.field: value}
            )
        else:
            self._cache.patch(self.document_id, path.as_patch(value))
