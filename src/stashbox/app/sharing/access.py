"""Anonymous public-link endpoints.

  GET /api/v1/public/{kind}/{token}              → public resource
  GET /api/v1/public/{kind}/collections/{token}  → public collection

No authentication. Unknown, revoked and no-longer-public tokens all get
the same 404 body so responses never reveal whether a token once existed.
Responses carry payload, name and timestamps only.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from stashbox.app.errors import SharingError

from .model import ResourceKind
from .public import PublicViewer


def _not_found() -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            'success': False,
            'error': 'not_found',
            'detail': 'Public link not found.',
        },
    )


def create_public_router(viewer: PublicViewer) -> APIRouter:
    """Create the unauthenticated public-view router."""
    router = APIRouter(tags=['public'])

    @router.get('/api/v1/public/{kind}/collections/{token}')
    async def read_public_collection(kind: str, token: str):
        try:
            rkind = ResourceKind.from_path(kind)
            collection = await viewer.resolve_collection(rkind, token)
        except (ValueError, SharingError):
            return _not_found()
        return {'success': True, 'data': collection.to_dict()}

    @router.get('/api/v1/public/{kind}/{token}')
    async def read_public(kind: str, token: str):
        try:
            rkind = ResourceKind.from_path(kind)
            snapshot = await viewer.resolve(rkind, token)
        except (ValueError, SharingError):
            return _not_found()
        return {'success': True, 'data': snapshot.to_dict()}

    return router
