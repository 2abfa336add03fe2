"""Logging and metrics hooks for the sync layer.

Components take these as optional collaborators and default to the no-op
implementations below; see eventforms.utils for the real ones.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SyncContext:
    """Identifies one remote operation for logs and metrics."""

    document_id: str
    operation: str  # "field_write", "entity_insert", "entity_remove", "publish"
    target: str  # field path, section id or document id


class SyncMetrics:
    """Interface for sync metrics."""

    def record_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record latency of a remote operation."""
        pass

    def inc_outcome(self, operation: str, outcome: str) -> None:
        """Count an operation outcome (including ones that made no request)."""
        pass


class SyncLogger:
    """Interface for structured logging."""

    def log_attempt(
        self,
        ctx: SyncContext,
        outcome: str,
        latency_ms: float = 0.0,
        error_reason: str | None = None,
    ) -> None:
        """Log the outcome of a sync operation."""
        pass
