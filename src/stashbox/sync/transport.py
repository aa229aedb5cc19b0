"""Wire transport between the sync client and the stashbox API.

``SyncTransport`` is what the client depends on; ``HttpSyncTransport`` is
the httpx implementation. Every failure leaves the transport as a typed
``SharingError``: error bodies are rebuilt with ``error_from_code``, while
httpx errors (connection, timeout, decoding, redirects) and 5xx responses
become ``TransientNetworkFailure``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from stashbox.app.errors import SharingError, TransientNetworkFailure, error_from_code
from stashbox.app.sharing.model import ResourceKind
from stashbox.observability.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class SyncTransport(Protocol):
    async def list_resources(self, kind: ResourceKind) -> list[dict[str, Any]]: ...

    async def save_owned(
        self, kind: ResourceKind, resources: list[dict[str, Any]],
    ) -> dict[str, Any]: ...

    async def save_shared_item(
        self,
        kind: ResourceKind,
        resource_id: str,
        owner_id: str,
        patch: dict[str, Any],
    ) -> None: ...

    async def share(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]: ...


class HttpSyncTransport:
    """httpx-backed transport.

    Pass a configured ``httpx.AsyncClient`` (tests use one over
    ``ASGITransport``) or build one with :meth:`connect`.
    """

    def __init__(self, client: httpx.AsyncClient, *, owns_client: bool = False) -> None:
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def connect(
        cls,
        base_url: str,
        session_token: str,
        *,
        timeout: float = 15.0,
    ) -> HttpSyncTransport:
        client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers={
                'Authorization': f'Bearer {session_token}',
                'Accept': 'application/json',
            },
            timeout=timeout,
        )
        return cls(client, owns_client=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise TransientNetworkFailure(f'{method} {path} timed out.') from exc
        except httpx.HTTPError as exc:
            raise TransientNetworkFailure(f'{method} {path} failed: {exc}') from exc

        if response.status_code >= 500:
            logger.warning(
                "sync_transport_server_error",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise TransientNetworkFailure(
                f'{method} {path} returned {response.status_code}.'
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SharingError(
                f'{method} {path} returned a non-JSON body ({response.status_code}).'
            ) from exc
        if not isinstance(body, dict):
            raise SharingError(f'{method} {path} returned an unexpected body.')

        if response.is_error or not body.get('success', False):
            raise error_from_code(body.get('error'), body.get('detail'))
        return body

    async def list_resources(self, kind: ResourceKind) -> list[dict[str, Any]]:
        body = await self._request('GET', f'/api/v1/{kind.path_segment}')
        return list(body.get('data', {}).get('resources', []))

    async def save_owned(
        self, kind: ResourceKind, resources: list[dict[str, Any]],
    ) -> dict[str, Any]:
        body = await self._request(
            'POST',
            f'/api/v1/{kind.path_segment}/save-owned',
            json={'resources': resources},
        )
        return body.get('data', {})

    async def save_shared_item(
        self,
        kind: ResourceKind,
        resource_id: str,
        owner_id: str,
        patch: dict[str, Any],
    ) -> None:
        await self._request(
            'PUT',
            f'/api/v1/{kind.path_segment}/shared-item',
            json={'resource_id': resource_id, 'owner_id': owner_id, 'patch': patch},
        )

    async def share(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            'POST', f'/api/v1/{kind.path_segment}/share', json=body,
        )
        return response.get('data', {})
