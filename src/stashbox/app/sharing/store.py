"""Resource store: owner-scoped persistence with two write paths.

  - ``save_owned``: full-collection replace of the owner's set. Assigns ids
    to new items, deletes owned items missing from the set (moving them to
    the trash and killing their public tokens) and echoes each input's
    ``client_key`` so the caller can reconcile server ids.
  - ``save_shared_item``: single-item patch for owners and collaborators.
    Only ``name`` and ``payload`` are applied; ACL fields in the patch are
    ignored.

Neither path trusts client-sent ACL fields (``owner_id``, ``shared_with``,
``is_public``, ``public_token``). Those only change through the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from stashbox.app.errors import (
    Forbidden,
    InvalidShareRequest,
    NotFound,
    NotOwner,
    SharingError,
)
from stashbox.observability.logging import get_logger
from stashbox.observability.metrics import RESOURCE_SAVES_TOTAL

from .model import Resource, ResourceKind, ResourceView, TrashRecord, project
from .payloads import normalize_payload
from .tokens import PublicTokenIssuer

if TYPE_CHECKING:
    from stashbox.app.protocols import ResourceRepository, TrashRepository, UserDirectory

logger = get_logger(__name__)

SHARED_PATCH_FIELDS = frozenset({'name', 'payload'})


@dataclass
class OwnedDraft:
    """One entry of a ``save_owned`` request."""

    id: str | None = None
    client_key: str | None = None
    owner_id: str | None = None
    name: str = ''
    collection: str | None = None
    payload: Any = None
    is_hidden: bool = False
    is_hiding: bool = False


@dataclass(frozen=True, slots=True)
class SavedResource:
    client_key: str | None
    resource: Resource

    def to_dict(self) -> dict[str, Any]:
        data = self.resource.to_dict()
        data['client_key'] = self.client_key
        data['is_owner'] = True
        return data


@dataclass
class SaveOwnedResult:
    saved: list[SavedResource] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class ResourceStore:
    def __init__(
        self,
        resources: ResourceRepository,
        users: UserDirectory,
        tokens: PublicTokenIssuer,
        trash: TrashRepository,
    ) -> None:
        self._resources = resources
        self._users = users
        self._tokens = tokens
        self._trash = trash

    # ── Owner path ────────────────────────────────────────────────────

    async def save_owned(
        self, kind: ResourceKind, owner_id: str, drafts: list[OwnedDraft],
    ) -> SaveOwnedResult:
        """Replace ``owner_id``'s whole set of ``kind`` resources."""
        try:
            result = await self._save_owned(kind, owner_id, drafts)
        except SharingError as exc:
            RESOURCE_SAVES_TOTAL.labels(kind=kind.value, path='owned', outcome=exc.code).inc()
            raise
        RESOURCE_SAVES_TOTAL.labels(kind=kind.value, path='owned', outcome='ok').inc()
        return result

    async def _save_owned(
        self, kind: ResourceKind, owner_id: str, drafts: list[OwnedDraft],
    ) -> SaveOwnedResult:
        existing = {r.id: r for r in await self._resources.list_owned(kind, owner_id)}
        result = SaveOwnedResult()
        kept: set[str] = set()

        # Validate the whole set before the first write so a bad draft
        # leaves storage untouched.
        accepted: list[tuple[OwnedDraft, dict[str, Any], Resource | None]] = []
        for draft in drafts:
            if draft.owner_id and draft.owner_id != owner_id:
                result.skipped.append(draft.id or draft.client_key or '')
                continue

            payload = normalize_payload(kind, draft.payload)
            current = existing.get(draft.id) if draft.id else None

            if draft.id and current is None:
                foreign = await self._resources.get(kind, draft.id)
                if foreign is not None:
                    logger.warning(
                        'save_owned_foreign_resource',
                        kind=kind.value,
                        owner_id=owner_id,
                        resource_id=draft.id,
                    )
                    result.skipped.append(draft.id)
                    continue

            accepted.append((draft, payload, current))

        for draft, payload, current in accepted:
            if current is None:
                resource = Resource(
                    id=None,
                    kind=kind,
                    owner_id=owner_id,
                    name=draft.name,
                    collection=draft.collection,
                    payload=payload,
                    is_hidden=draft.is_hidden,
                    is_hiding=draft.is_hiding,
                )
            else:
                resource = current
                changed = (
                    resource.name != draft.name
                    or resource.collection != draft.collection
                    or resource.payload != payload
                    or resource.is_hidden != draft.is_hidden
                    or resource.is_hiding != draft.is_hiding
                )
                resource.name = draft.name
                resource.collection = draft.collection
                resource.payload = payload
                resource.is_hidden = draft.is_hidden
                resource.is_hiding = draft.is_hiding
                if changed:
                    resource.touch()

            saved = await self._resources.put(resource)
            kept.add(saved.id)
            result.saved.append(SavedResource(client_key=draft.client_key, resource=saved))

        removed = [r for rid, r in existing.items() if rid not in kept]
        if removed:
            await self._discard(kind, owner_id, removed)
            result.deleted_ids = [r.id for r in removed]

        logger.info(
            'owned_set_saved',
            kind=kind.value,
            owner_id=owner_id,
            saved=len(result.saved),
            deleted=len(result.deleted_ids),
            skipped=len(result.skipped),
        )
        return result

    async def delete(self, kind: ResourceKind, resource_id: str, requester_id: str) -> None:
        """Delete one resource outright. Owner only."""
        resource = await self._resources.get(kind, resource_id)
        if resource is None:
            raise NotFound(f'{kind.value} {resource_id} not found.')
        if not resource.is_owned_by(requester_id):
            raise NotOwner()
        await self._discard(kind, requester_id, [resource])

    async def _discard(
        self, kind: ResourceKind, owner_id: str, resources: list[Resource],
    ) -> None:
        # Deleting a resource drops every grant with it and kills its token.
        for resource in resources:
            if resource.public_token is not None:
                await self._tokens.revoke(kind, resource.public_token)
            await self._resources.delete(kind, resource.id)
        await self._trash.add([
            TrashRecord(
                owner_id=owner_id,
                kind=kind,
                original_id=r.id,
                name=r.name,
                payload=r.payload,
            )
            for r in resources
        ])

    # ── Collaborator path ─────────────────────────────────────────────

    async def save_shared_item(
        self,
        kind: ResourceKind,
        resource_id: str,
        collaborator_id: str,
        patch: dict[str, Any],
        *,
        owner_id: str | None = None,
    ) -> Resource:
        """Apply an allow-listed patch on behalf of the owner or a collaborator.

        Raises:
            NotFound: No such resource (or it is not ``owner_id``'s).
            Forbidden: ``collaborator_id`` has no grant on the resource.
        """
        try:
            saved = await self._save_shared_item(
                kind, resource_id, collaborator_id, patch, owner_id,
            )
        except SharingError as exc:
            RESOURCE_SAVES_TOTAL.labels(kind=kind.value, path='shared', outcome=exc.code).inc()
            raise
        RESOURCE_SAVES_TOTAL.labels(kind=kind.value, path='shared', outcome='ok').inc()
        return saved

    async def _save_shared_item(
        self,
        kind: ResourceKind,
        resource_id: str,
        collaborator_id: str,
        patch: dict[str, Any],
        owner_id: str | None,
    ) -> Resource:
        resource = await self._resources.get(kind, resource_id)
        if resource is None or (owner_id and resource.owner_id != owner_id):
            raise NotFound(f'{kind.value} {resource_id} not found.')
        if not resource.has_access(collaborator_id):
            logger.info(
                'shared_item_forbidden',
                kind=kind.value,
                resource_id=resource_id,
                user_id=collaborator_id,
            )
            raise Forbidden()

        ignored = sorted(set(patch) - SHARED_PATCH_FIELDS)
        if ignored:
            logger.debug(
                'shared_item_fields_ignored',
                kind=kind.value,
                resource_id=resource_id,
                fields=ignored,
            )

        payload_patch = patch.get('payload')
        if payload_patch is not None and not isinstance(payload_patch, dict):
            raise InvalidShareRequest('Patch payload must be an object.')

        if 'name' in patch and patch['name'] is not None:
            resource.name = str(patch['name'])
        if payload_patch is not None:
            merged = {**(resource.payload or {}), **payload_patch}
            resource.payload = normalize_payload(kind, merged)
        resource.touch()
        return await self._resources.put(resource)

    # ── Reads ─────────────────────────────────────────────────────────

    async def list_visible(self, kind: ResourceKind, user_id: str) -> list[ResourceView]:
        """Everything ``user_id`` can see: owned first, then shared-with-me."""
        owned = await self._resources.list_owned(kind, user_id)
        shared = await self._resources.list_shared_with(kind, user_id)

        names: dict[str, str] = {}

        async def _owner_name(oid: str) -> str:
            if oid not in names:
                user = await self._users.get_user(oid)
                names[oid] = user['username'] if user else ''
            return names[oid]

        views: list[ResourceView] = []
        for resource in [*owned, *shared]:
            views.append(project(resource, user_id, await _owner_name(resource.owner_id)))
        return views
