"""Remote document store protocol - the only outbound interface of the core."""

from collections.abc import Mapping
from typing import Any, Protocol

from eventforms.models.document import EventDocument


class RemoteDocumentStore(Protocol):
    """Asynchronous remote authority for event documents.

    Every method may raise TransportError (the core treats it as "write
    failed, roll back") or NotFoundError for unknown ids.
    """

    async def fetch(self, document_id: str) -> EventDocument:
        """Fetch the authoritative document."""
        ...

    async def patch(self, document_id: str, partial: Mapping[str, Any]) -> EventDocument:
        """Merge a partial document server-side.

        Returns:
            The merged, authoritative document
        """
        ...

    async def create_entity(
        self, document_id: str, section_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Create an entity in a section.

        Returns:
            The stored entity including its server-assigned id
        """
        ...

    async def update_entity(
        self,
        document_id: str,
        section_id: str,
        entity_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Merge fields into one entity.

        Returns:
            The stored entity after the update
        """
        ...

    async def delete_entity(self, document_id: str, section_id: str, entity_id: str) -> None:
        """Delete an entity from a section."""
        ...

    async def publish(self, document_id: str) -> EventDocument:
        """Publish a draft document.

        Returns:
            The published document
        """
        ...

    async def fetch_section_rules(self, event_type: str) -> Any:
        """Fetch the raw section rule table for an event type.

        The payload is untrusted; callers validate its shape before use.
        """
        ...

    async def create_document(
        self, event_type: str, organization_id: str, site_id: str
    ) -> EventDocument:
        """Create a new draft document."""
        ...
