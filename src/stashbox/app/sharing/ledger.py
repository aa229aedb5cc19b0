"""Access control ledger: per-resource owner, grants and public state.

Every operation takes an explicit ``requester_id``; the ledger never reads
ambient session state.

Rules:
  - Only the owner may grant, revoke or change public sharing.
  - ``grant`` is idempotent by user id and refuses the owner as a target.
  - ``revoke`` of an absent grant (or unknown username) is a no-op.
  - ``leave`` is only for current collaborators, never the owner.
  - Disabling public sharing discards the token for good.

After every operation ``is_public == (public_token is not None)``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stashbox.app.errors import (
    CannotShareWithSelf,
    NotCollaborator,
    NotFound,
    NotOwner,
    UserNotFound,
)
from stashbox.observability.logging import get_logger

from .model import Resource, ResourceKind, SharedUser
from .tokens import PublicTokenIssuer

if TYPE_CHECKING:
    from stashbox.app.protocols import ResourceRepository, UserDirectory

logger = get_logger(__name__)


class AccessControlLedger:
    """Grant/revoke/leave/public operations for one storage backend."""

    def __init__(
        self,
        resources: ResourceRepository,
        users: UserDirectory,
        tokens: PublicTokenIssuer,
    ) -> None:
        self._resources = resources
        self._users = users
        self._tokens = tokens

    # ── Lookups ───────────────────────────────────────────────────────

    async def _load(self, kind: ResourceKind, resource_id: str) -> Resource:
        resource = await self._resources.get(kind, resource_id)
        if resource is None:
            raise NotFound(f'{kind.value} {resource_id} not found.')
        return resource

    async def _load_owned(
        self, kind: ResourceKind, resource_id: str, requester_id: str,
    ) -> Resource:
        resource = await self._load(kind, resource_id)
        if not resource.is_owned_by(requester_id):
            logger.info(
                'ledger_not_owner',
                kind=kind.value,
                resource_id=resource_id,
                requester_id=requester_id,
            )
            raise NotOwner()
        return resource

    async def resolve_username(self, username: str) -> SharedUser:
        """Map a username to a grant entry.

        Raises:
            UserNotFound: No account with that username.
        """
        user = await self._users.find_by_username(username.strip()) if username else None
        if user is None:
            raise UserNotFound(username)
        return SharedUser(user_id=str(user['id']), username=user['username'])

    # ── Operations ────────────────────────────────────────────────────

    async def grant(
        self,
        kind: ResourceKind,
        resource_id: str,
        requester_id: str,
        target_username: str,
    ) -> Resource:
        resource = await self._load_owned(kind, resource_id, requester_id)
        target = await self.resolve_username(target_username)
        if target.user_id == resource.owner_id:
            raise CannotShareWithSelf()

        if resource.is_collaborator(target.user_id):
            return resource

        resource.shared_with.append(target)
        resource.touch()
        saved = await self._resources.put(resource)
        logger.info(
            'ledger_granted',
            kind=kind.value,
            resource_id=resource_id,
            target_user_id=target.user_id,
        )
        return saved

    async def revoke(
        self,
        kind: ResourceKind,
        resource_id: str,
        requester_id: str,
        target_username: str,
    ) -> Resource:
        resource = await self._load_owned(kind, resource_id, requester_id)
        user = await self._users.find_by_username(target_username)
        if user is not None:
            target_id = str(user['id'])
            remaining = [g for g in resource.shared_with if g.user_id != target_id]
        else:
            remaining = [g for g in resource.shared_with if g.username != target_username]
        if len(remaining) == len(resource.shared_with):
            return resource

        resource.shared_with = remaining
        resource.touch()
        saved = await self._resources.put(resource)
        logger.info(
            'ledger_revoked',
            kind=kind.value,
            resource_id=resource_id,
            target_username=target_username,
        )
        return saved

    async def leave(
        self, kind: ResourceKind, resource_id: str, requester_id: str,
    ) -> Resource:
        resource = await self._load(kind, resource_id)
        if resource.is_owned_by(requester_id):
            raise NotCollaborator('The owner cannot leave their own resource.')
        if not resource.is_collaborator(requester_id):
            raise NotCollaborator()

        resource.shared_with = [
            g for g in resource.shared_with if g.user_id != requester_id
        ]
        resource.touch()
        saved = await self._resources.put(resource)
        logger.info(
            'ledger_left',
            kind=kind.value,
            resource_id=resource_id,
            user_id=requester_id,
        )
        return saved

    async def set_public(
        self,
        kind: ResourceKind,
        resource_id: str,
        requester_id: str,
        enabled: bool,
    ) -> Resource:
        resource = await self._load_owned(kind, resource_id, requester_id)

        if enabled:
            if resource.public_token is None:
                resource.public_token = await self._tokens.issue(kind)
            resource.is_public = True
        else:
            if resource.public_token is not None:
                await self._tokens.revoke(kind, resource.public_token)
            resource.is_public = False
            resource.public_token = None

        resource.touch()
        return await self._resources.put(resource)

    async def toggle_public(
        self, kind: ResourceKind, resource_id: str, requester_id: str,
    ) -> Resource:
        resource = await self._load_owned(kind, resource_id, requester_id)
        return await self.set_public(
            kind, resource_id, requester_id, not resource.is_public,
        )
