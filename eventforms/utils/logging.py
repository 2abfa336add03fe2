"""Structured logging for sync operations."""

import logging
from typing import Any

from eventforms.sync.instrumentation import SyncContext, SyncLogger

logger = logging.getLogger(__name__)

_QUIET_OUTCOMES = ("saved", "suppressed", "created", "removed", "published", "skipped")


class StructuredSyncLogger(SyncLogger):
    """Structured logger for field writes, entity mutations and publishes."""

    def log_attempt(
        self,
        ctx: SyncContext,
        outcome: str,
        latency_ms: float = 0.0,
        error_reason: str | None = None,
    ) -> None:
        """Log a sync outcome with structured data."""
        log_data: dict[str, Any] = {
            "document_id": ctx.document_id,
            "operation": ctx.operation,
            "target": ctx.target,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Sync {ctx.operation}: {ctx.target} - {outcome}"

        if outcome in _QUIET_OUTCOMES:
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
