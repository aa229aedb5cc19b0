"""Shareable resources: ACL ledger, sharing gateway, store and public links."""

from .model import (
    CollectionShare,
    PublicSnapshot,
    Resource,
    ResourceKind,
    ResourceView,
    SharedUser,
    TrashRecord,
    project,
)
from .tokens import PublicTokenIssuer, redact_token
from .ledger import AccessControlLedger
from .gateway import ShareAction, ShareCommand, ShareOutcome, SharingGateway
from .store import OwnedDraft, ResourceStore, SavedResource, SaveOwnedResult
from .public import PublicCollection, PublicViewer
from .routes import create_sharing_router
from .access import create_public_router

__all__ = [
    'AccessControlLedger',
    'CollectionShare',
    'OwnedDraft',
    'PublicCollection',
    'PublicSnapshot',
    'PublicTokenIssuer',
    'PublicViewer',
    'Resource',
    'ResourceKind',
    'ResourceStore',
    'ResourceView',
    'SaveOwnedResult',
    'SavedResource',
    'ShareAction',
    'ShareCommand',
    'ShareOutcome',
    'SharedUser',
    'SharingGateway',
    'TrashRecord',
    'create_public_router',
    'create_sharing_router',
    'project',
    'redact_token',
]
