"""HTTP remote document store over the event forms REST API (httpx).

The API speaks camelCase JSON (`eventType`, `minimumEntries`, `unitValue`);
keys are converted to snake_case on the way in and back on the way out.
"""

from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError
from pydantic.alias_generators import to_camel, to_snake

from eventforms.config import get_settings
from eventforms.errors import NotFoundError, RemoteRejectedError, TransportError
from eventforms.models.document import EventDocument


def convert_keys(value: Any, convert: Any) -> Any:
    """Recursively rename mapping keys with `convert`."""
    if isinstance(value, Mapping):
        return {convert(str(k)): convert_keys(v, convert) for k, v in value.items()}
    if isinstance(value, list):
        return [convert_keys(item, convert) for item in value]
    return value


class HttpRemoteStore:
    """httpx-backed implementation of RemoteDocumentStore."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_ms: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize store.

        Args:
            base_url: API base URL (default: Settings.remote_base_url)
            timeout_ms: Per-request timeout (default: Settings.remote_timeout_ms)
            client: Optional httpx client (for testing with mocks)
        """
        settings = get_settings()
        self._base_url = (base_url or settings.remote_base_url).rstrip("/")
        timeout_ms = timeout_ms if timeout_ms is not None else settings.remote_timeout_ms
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_ms / 1000)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpRemoteStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def fetch(self, document_id: str) -> EventDocument:
        path = f"/events/{document_id}"
        return self._document(await self._request("GET", path), path)

    async def patch(self, document_id: str, partial: Mapping[str, Any]) -> EventDocument:
        path = f"/events/{document_id}"
        return self._document(await self._request("PATCH", path, json=partial), path)

    async def create_entity(
        self, document_id: str, section_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        path = f"/events/{document_id}/{section_id}"
        return self._entity(await self._request("POST", path, json=payload), path)

    async def update_entity(
        self,
        document_id: str,
        section_id: str,
        entity_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        path = f"/events/{document_id}/{section_id}/{entity_id}"
        return self._entity(await self._request("PUT", path, json=fields), path)

    async def delete_entity(self, document_id: str, section_id: str, entity_id: str) -> None:
        await self._request("DELETE", f"/events/{document_id}/{section_id}/{entity_id}")

    async def publish(self, document_id: str) -> EventDocument:
        path = f"/events/{document_id}/publish"
        return self._document(await self._request("POST", path), path)

    async def fetch_section_rules(self, event_type: str) -> Any:
        return await self._request("GET", f"/event-types/{event_type}/config")

    async def create_document(
        self, event_type: str, organization_id: str, site_id: str
    ) -> EventDocument:
        data = await self._request(
            "POST",
            "/events",
            json={"event_type": event_type, "organization_id": organization_id, "site_id": site_id},
        )
        return self._document(data, "/events")

    @staticmethod
    def _document(data: Any, path: str) -> EventDocument:
        try:
            return EventDocument.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"{path} returned an invalid event document") from e

    @staticmethod
    def _entity(data: Any, path: str) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise TransportError(f"{path} returned an invalid entity")
        return dict(data)

    async def _request(
        self, method: str, path: str, *, json: Mapping[str, Any] | None = None
    ) -> Any:
        """Send one request and decode the JSON body.

        Raises:
            NotFoundError: HTTP 404
            RemoteRejectedError: Other 4xx responses
            TransportError: 5xx, network errors and timeouts
        """
        body = convert_keys(dict(json), to_camel) if json is not None else None
        try:
            response = await self._client.request(method, f"{self._base_url}{path}", json=body)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {type(e).__name__}") from e

        if response.status_code == 404:
            raise NotFoundError(self._error_message(response, f"{path} not found"))
        if 400 <= response.status_code < 500:
            raise RemoteRejectedError(
                self._error_message(response, f"HTTP {response.status_code}"),
                status_code=response.status_code,
            )
        if response.status_code >= 500:
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        if not response.content or "application/json" not in response.headers.get(
            "content-type", ""
        ):
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {path} returned a body that is not JSON",
                status_code=response.status_code,
            ) from e
        return convert_keys(data, to_snake)

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        try:
            data = response.json()
        except ValueError:
            return default
        if isinstance(data, Mapping):
            return str(data.get("error") or data.get("detail") or default)
        return default
