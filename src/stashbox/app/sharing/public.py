"""Anonymous read-only resolution of public share tokens.

``resolve`` distinguishes two failures internally:

  - ``NotFound``: no resource currently holds the token (never issued, or
    revoked and discarded).
  - ``Forbidden``: a resource holds the token but is no longer public.

The HTTP layer collapses both into one generic 404 so callers cannot
tell which tokens once existed. Successful results are
``PublicSnapshot`` objects: payload, name and timestamps only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from stashbox.app.errors import Forbidden, NotFound, SharingError
from stashbox.observability.logging import get_logger
from stashbox.observability.metrics import PUBLIC_RESOLUTIONS_TOTAL

from .model import PublicSnapshot, ResourceKind
from .tokens import PublicTokenIssuer, redact_token

if TYPE_CHECKING:
    from stashbox.app.protocols import CollectionShareRepository, ResourceRepository

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PublicCollection:
    name: str
    kind: ResourceKind
    resources: list[PublicSnapshot]

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'resources': [s.to_dict() for s in self.resources],
        }


class PublicViewer:
    def __init__(
        self,
        resources: ResourceRepository,
        collections: CollectionShareRepository,
        tokens: PublicTokenIssuer,
    ) -> None:
        self._resources = resources
        self._collections = collections
        self._tokens = tokens

    async def resolve(self, kind: ResourceKind, token: str) -> PublicSnapshot:
        try:
            snapshot = await self._resolve(kind, token)
        except SharingError as exc:
            PUBLIC_RESOLUTIONS_TOTAL.labels(kind=kind.value, outcome=exc.code).inc()
            logger.info(
                'public_resolve_denied',
                kind=kind.value,
                token_prefix=redact_token(token),
                reason=exc.code,
            )
            raise
        PUBLIC_RESOLUTIONS_TOTAL.labels(kind=kind.value, outcome='ok').inc()
        return snapshot

    async def _resolve(self, kind: ResourceKind, token: str) -> PublicSnapshot:
        await self._tokens.ensure_live(kind, token)
        resource = await self._resources.find_by_token(kind, token)
        if resource is None:
            raise NotFound('Public link not found.')
        if not resource.is_public:
            raise Forbidden('This resource is no longer public.')
        return PublicSnapshot.of(resource)

    async def resolve_collection(self, kind: ResourceKind, token: str) -> PublicCollection:
        try:
            await self._tokens.ensure_live(kind, token)
            share = await self._collections.find_collection_by_token(kind, token)
            if share is None:
                raise NotFound('Public link not found.')
            if not share.is_public:
                raise Forbidden('This collection is no longer public.')
        except SharingError as exc:
            PUBLIC_RESOLUTIONS_TOTAL.labels(kind=kind.value, outcome=exc.code).inc()
            raise

        members = await self._resources.list_collection(kind, share.owner_id, share.name)
        PUBLIC_RESOLUTIONS_TOTAL.labels(kind=kind.value, outcome='ok').inc()
        return PublicCollection(
            name=share.name,
            kind=kind,
            resources=[
                PublicSnapshot.of(r)
                for r in sorted(members, key=lambda r: r.name.lower())
            ],
        )
