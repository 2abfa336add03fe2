"""Shared pytest fixtures for all test suites."""

from collections.abc import Callable
from typing import Any

import pytest

from eventforms.cache.store import DocumentCache
from eventforms.models.document import EventDocument
from eventforms.remote.memory import InMemoryRemoteStore

DocumentFactory = Callable[..., EventDocument]


def _build_document(
    event_type: str = "shoplifting",
    *,
    document_id: str = "evt-1",
    title: str = "Shoplifting at register 3",
    status: str = "draft",
    sections: dict[str, list[Any]] | None = None,
) -> EventDocument:
    all_sections: dict[str, list[Any]] = {"persons": [], "vehicles": [], "products": []}
    all_sections.update(sections or {})
    return EventDocument.model_validate(
        {
            "id": document_id,
            "event_type": event_type,
            "organization_id": "org-1",
            "site_id": "site-1",
            "status": status,
            "metadata": {
                "title": title,
                "description": "",
                "priority": "high",
                "occurred_at": "2026-10-01T14:30:00Z",
            },
            "sections": all_sections,
        }
    )


@pytest.fixture
def make_document() -> DocumentFactory:
    """Builder for draft documents; sections default to empty lists."""
    return _build_document


@pytest.fixture
def person() -> dict[str, Any]:
    return {"id": "p-1", "name": "Jordan Lee", "role": "suspect", "age": 34}


@pytest.fixture
def product() -> dict[str, Any]:
    return {"id": "pr-1", "name": "Headphones", "sku": "HP-100", "quantity": 1, "unit_value": 89.99}


@pytest.fixture
def cache() -> DocumentCache:
    return DocumentCache()


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore(latency_ms=0)


@pytest.fixture
def slow_remote() -> InMemoryRemoteStore:
    """Store whose calls stay in flight long enough to interleave edits."""
    return InMemoryRemoteStore(latency_ms=60)


@pytest.fixture
def seeded(
    cache: DocumentCache,
    remote: InMemoryRemoteStore,
    make_document: DocumentFactory,
    person: dict[str, Any],
    product: dict[str, Any],
) -> EventDocument:
    """Shoplifting draft "evt-1" with one person and one product, cached and stored remotely."""
    document = make_document(sections={"persons": [person], "products": [product]})
    remote.seed(document)
    cache.set(document.id, document)
    return document
