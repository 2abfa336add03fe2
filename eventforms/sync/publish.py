"""Publish gate - one-way draft -> published transition."""

import logging
import time
from dataclasses import dataclass

from eventforms.cache.store import DocumentCache
from eventforms.errors import NotFoundError, RemoteRejectedError, TransportError
from eventforms.models.document import EventDocument
from eventforms.models.validation import ValidationResult
from eventforms.remote.base import RemoteDocumentStore
from eventforms.sync.instrumentation import SyncContext, SyncLogger, SyncMetrics
from eventforms.validation.provider import SectionRuleProvider
from eventforms.validation.validator import validate

logger = logging.getLogger(__name__)


@dataclass
class PublishOutcome:
    """Result of a publish action; rejection is a normal outcome."""

    published: bool
    document: EventDocument | None = None
    validation: ValidationResult | None = None
    error: str | None = None


class PublishGate:
    """Guards publish with a validator run against the live cache snapshot."""

    def __init__(
        self,
        cache: DocumentCache,
        remote: RemoteDocumentStore,
        rules: SectionRuleProvider,
        *,
        metrics: SyncMetrics | None = None,
        logger: SyncLogger | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._rules = rules
        self._metrics = metrics or SyncMetrics()
        self._logger = logger or SyncLogger()
        self._in_flight: set[str] = set()

    async def publish(self, document_id: str) -> PublishOutcome:
        """Publish a draft if, right now, it validates.

        Returns:
            PublishOutcome; published=False with an error message when the
            document is unknown, already published, invalid, or the remote
            store refuses or fails.
        """
        ctx = SyncContext(document_id=document_id, operation="publish", target=document_id)

        snapshot = self._cache.get(document_id)
        if snapshot is None:
            return self._reject(ctx, "not_found", PublishOutcome(False, error="Event not found"))

        document = snapshot.document
        if document.is_published:
            return self._reject(
                ctx,
                "already_published",
                PublishOutcome(False, document=document, error="Event is already published"),
            )

        if document_id in self._in_flight:
            return self._reject(
                ctx,
                "in_progress",
                PublishOutcome(False, document=document, error="Publish already in progress"),
            )

        # Fresh run against the live snapshot; never a memoized result
        result = validate(document, self._rules.resolve(document.event_type))
        if not result.can_publish:
            message = (
                "Validation rules are still loading"
                if result.pending
                else f"Event has {result.error_count} validation error(s)"
            )
            return self._reject(
                ctx,
                "invalid",
                PublishOutcome(False, document=document, validation=result, error=message),
            )

        self._in_flight.add(document_id)
        start_time = time.monotonic()
        try:
            published = await self._remote.publish(document_id)
        except RemoteRejectedError as e:
            return self._reject(
                ctx,
                "rejected",
                PublishOutcome(False, document=document, validation=result, error=str(e)),
                start_time,
            )
        except (TransportError, NotFoundError) as e:
            return self._reject(
                ctx,
                "failed",
                PublishOutcome(
                    False, document=document, validation=result, error=f"Failed to publish: {e}"
                ),
                start_time,
            )
        except Exception:
            logger.exception(
                f"Unexpected failure publishing {document_id}",
                extra={"structured": {"document_id": document_id}},
            )
            return self._reject(
                ctx,
                "failed",
                PublishOutcome(
                    False, document=document, validation=result, error="Failed to publish"
                ),
                start_time,
            )
        finally:
            self._in_flight.discard(document_id)

        stored = self._cache.set(document_id, published).document

        elapsed_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_latency(ctx.operation, "published", elapsed_ms)
        self._metrics.inc_outcome(ctx.operation, "published")
        self._logger.log_attempt(ctx, "published", elapsed_ms)
        return PublishOutcome(True, document=stored, validation=result)

    def _reject(
        self,
        ctx: SyncContext,
        reason: str,
        outcome: PublishOutcome,
        start_time: float | None = None,
    ) -> PublishOutcome:
        elapsed_ms = (time.monotonic() - start_time) * 1000 if start_time is not None else 0.0
        self._metrics.inc_outcome(ctx.operation, reason)
        self._logger.log_attempt(ctx, reason, elapsed_ms, error_reason=outcome.error)
        return outcome
