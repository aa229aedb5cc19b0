"""Resource list, save and share API endpoints.

Implements the collaborator-facing contract for every shareable kind
(``{kind}`` is ``clipboards``, ``links`` or ``commands``):

  GET    /api/v1/{kind}                     → resources visible to caller
  POST   /api/v1/{kind}/share               → add/remove/leave/public_toggle
  POST   /api/v1/{kind}/save-owned          → full owned-set replace
  PUT    /api/v1/{kind}/shared-item         → single-item collaborator patch
  DELETE /api/v1/{kind}/{resource_id}       → owner delete
  GET    /api/v1/trash                      → caller's deleted resources

Auth contract:
  - All endpoints require an authenticated identity (AuthIdentity).
  - The caller's user id is passed explicitly into every store/gateway
    call as the requester.

Response envelope: ``{success, data?}`` on success,
``{success: false, error, detail}`` with the error's status otherwise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from stashbox.app.errors import NotFound, SharingError
from stashbox.app.security.auth_guard import get_auth_identity
from stashbox.app.security.token_verify import AuthIdentity

from .gateway import ShareAction, ShareCommand, SharingGateway
from .model import ResourceKind
from .store import OwnedDraft, ResourceStore

if TYPE_CHECKING:
    from stashbox.app.protocols import TrashRepository


# ── Request schemas ──────────────────────────────────────────────────


class ShareRequest(BaseModel):
    """Request body for share actions."""

    action: ShareAction
    resource_id: str | None = None
    collection_name: str | None = None
    username: str | None = Field(default=None, max_length=64)
    enabled: bool | None = None


class OwnedResourceIn(BaseModel):
    """One owned resource in a save-owned request.

    ACL fields sent by the client (``shared_with``, ``is_public``,
    ``public_token``, ``is_owner``) are dropped here.
    """

    model_config = ConfigDict(extra='ignore')

    id: str | None = None
    client_key: str | None = None
    owner_id: str | None = None
    name: str = ''
    collection: str | None = None
    payload: dict[str, Any] | None = None
    is_hidden: bool = False
    is_hiding: bool = False

    def to_draft(self) -> OwnedDraft:
        return OwnedDraft(
            id=self.id,
            client_key=self.client_key,
            owner_id=self.owner_id,
            name=self.name,
            collection=self.collection,
            payload=self.payload,
            is_hidden=self.is_hidden,
            is_hiding=self.is_hiding,
        )


class SaveOwnedRequest(BaseModel):
    resources: list[OwnedResourceIn]


class SharedItemRequest(BaseModel):
    resource_id: str = Field(..., min_length=1)
    owner_id: str | None = None
    patch: dict[str, Any] = Field(default_factory=dict)


# ── Shared helpers ───────────────────────────────────────────────────


def error_response(exc: SharingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _resolve_kind(segment: str) -> ResourceKind:
    try:
        return ResourceKind.from_path(segment)
    except ValueError as exc:
        raise NotFound(f'Unknown resource kind {segment!r}.') from exc


# ── Route factory ────────────────────────────────────────────────────


def create_sharing_router(
    store: ResourceStore,
    gateway: SharingGateway,
    trash: TrashRepository | None = None,
) -> APIRouter:
    """Create the authenticated resource/sharing router.

    Args:
        store: Resource store for list and both write paths.
        gateway: Sharing gateway for share actions.
        trash: Optional trash repository backing ``GET /api/v1/trash``.
    """
    router = APIRouter(tags=['sharing'])

    if trash is not None:
        @router.get('/api/v1/trash')
        async def list_trash(identity: AuthIdentity = Depends(get_auth_identity)):
            records = await trash.list_for_owner(identity.user_id)
            return {
                'success': True,
                'data': {'items': [r.to_dict() for r in records]},
            }

    @router.get('/api/v1/{kind}')
    async def list_resources(
        kind: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        try:
            rkind = _resolve_kind(kind)
            views = await store.list_visible(rkind, identity.user_id)
        except SharingError as exc:
            return error_response(exc)
        return {
            'success': True,
            'data': {'resources': [v.to_dict() for v in views]},
        }

    @router.post('/api/v1/{kind}/share')
    async def share(
        kind: str,
        body: ShareRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Execute a share action immediately.

        Error responses:
          - 400: Malformed request or sharing with yourself.
          - 403: Not the owner / not a collaborator.
          - 404: Unknown resource or username.
        """
        command = ShareCommand(
            action=body.action,
            resource_id=body.resource_id,
            collection_name=body.collection_name,
            username=body.username,
            enabled=body.enabled,
        )
        try:
            outcome = await gateway.execute(
                _resolve_kind(kind), command, identity.user_id,
            )
        except SharingError as exc:
            return error_response(exc)
        return outcome.to_dict()

    @router.post('/api/v1/{kind}/save-owned')
    async def save_owned(
        kind: str,
        body: SaveOwnedRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Replace the caller's owned set; returns canonical ids/tokens."""
        try:
            result = await store.save_owned(
                _resolve_kind(kind),
                identity.user_id,
                [r.to_draft() for r in body.resources],
            )
        except SharingError as exc:
            return error_response(exc)
        return {
            'success': True,
            'data': {
                'resources': [s.to_dict() for s in result.saved],
                'deleted_ids': result.deleted_ids,
                'skipped': result.skipped,
            },
        }

    @router.put('/api/v1/{kind}/shared-item')
    async def save_shared_item(
        kind: str,
        body: SharedItemRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Patch one resource as its owner or a collaborator."""
        try:
            await store.save_shared_item(
                _resolve_kind(kind),
                body.resource_id,
                identity.user_id,
                body.patch,
                owner_id=body.owner_id,
            )
        except SharingError as exc:
            return error_response(exc)
        return {'success': True}

    @router.delete('/api/v1/{kind}/{resource_id}')
    async def delete_resource(
        kind: str,
        resource_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        try:
            await store.delete(_resolve_kind(kind), resource_id, identity.user_id)
        except SharingError as exc:
            return error_response(exc)
        return {'success': True}

    return router
