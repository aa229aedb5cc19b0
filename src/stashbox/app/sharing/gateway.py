"""Sharing gateway: request/response wrapper around the ledger.

Dispatches the four wire actions (``add``, ``remove``, ``leave``,
``public_toggle``) against either a single resource or a whole collection
of the requester's resources.

Collection fan-out policy:
  ``grant_to_collection`` / ``revoke_from_collection`` are best-effort,
  not transactional. The username is resolved once up front (so
  ``UserNotFound`` is reported immediately); after that a failure on one
  member is logged and listed in ``data['failed']`` and never aborts the
  remaining members. The outcome is ``success=True`` once the fan-out ran.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from stashbox.app.errors import (
    CannotShareWithSelf,
    InvalidShareRequest,
    NotFound,
    SharingError,
)
from stashbox.observability.logging import get_logger
from stashbox.observability.metrics import SHARE_ACTIONS_TOTAL

from .ledger import AccessControlLedger
from .model import CollectionShare, Resource, ResourceKind
from .tokens import PublicTokenIssuer

if TYPE_CHECKING:
    from stashbox.app.protocols import CollectionShareRepository, ResourceRepository

logger = get_logger(__name__)


class ShareAction(str, Enum):
    ADD = 'add'
    REMOVE = 'remove'
    LEAVE = 'leave'
    PUBLIC_TOGGLE = 'public_toggle'


@dataclass(frozen=True, slots=True)
class ShareCommand:
    """One sharing request.

    Exactly one of ``resource_id`` / ``collection_name`` addresses the
    target. ``enabled`` pins the public state for ``public_toggle``;
    ``None`` flips it.
    """

    action: ShareAction
    resource_id: str | None = None
    collection_name: str | None = None
    username: str | None = None
    enabled: bool | None = None


@dataclass
class ShareOutcome:
    success: bool = True
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {'success': self.success, 'data': self.data}


def _acl_data(resource: Resource) -> dict[str, Any]:
    return {
        'resource_id': resource.id,
        'shared_with': [g.to_dict() for g in resource.shared_with],
        'is_public': resource.is_public,
        'public_token': resource.public_token,
    }


class SharingGateway:
    """Validates share requests and executes them against the ledger."""

    def __init__(
        self,
        ledger: AccessControlLedger,
        resources: ResourceRepository,
        collections: CollectionShareRepository,
        tokens: PublicTokenIssuer,
    ) -> None:
        self._ledger = ledger
        self._resources = resources
        self._collections = collections
        self._tokens = tokens

    async def execute(
        self, kind: ResourceKind, command: ShareCommand, requester_id: str,
    ) -> ShareOutcome:
        """Run one share command, recording its outcome metric."""
        try:
            outcome = await self._dispatch(kind, command, requester_id)
        except SharingError as exc:
            SHARE_ACTIONS_TOTAL.labels(
                kind=kind.value, action=command.action.value, outcome=exc.code,
            ).inc()
            raise
        SHARE_ACTIONS_TOTAL.labels(
            kind=kind.value, action=command.action.value, outcome='ok',
        ).inc()
        return outcome

    async def _dispatch(
        self, kind: ResourceKind, command: ShareCommand, requester_id: str,
    ) -> ShareOutcome:
        if command.collection_name and command.resource_id:
            raise InvalidShareRequest('Specify resource_id or collection_name, not both.')

        if command.collection_name:
            return await self._dispatch_collection(kind, command, requester_id)

        if not command.resource_id:
            raise InvalidShareRequest('resource_id or collection_name is required.')

        action = command.action
        if action in (ShareAction.ADD, ShareAction.REMOVE) and not command.username:
            raise InvalidShareRequest('username is required.')

        if action is ShareAction.ADD:
            resource = await self._ledger.grant(
                kind, command.resource_id, requester_id, command.username,
            )
        elif action is ShareAction.REMOVE:
            resource = await self._ledger.revoke(
                kind, command.resource_id, requester_id, command.username,
            )
        elif action is ShareAction.LEAVE:
            await self._ledger.leave(kind, command.resource_id, requester_id)
            return ShareOutcome(data={'resource_id': command.resource_id, 'left': True})
        else:
            if command.enabled is None:
                resource = await self._ledger.toggle_public(
                    kind, command.resource_id, requester_id,
                )
            else:
                resource = await self._ledger.set_public(
                    kind, command.resource_id, requester_id, command.enabled,
                )
        return ShareOutcome(data=_acl_data(resource))

    async def _dispatch_collection(
        self, kind: ResourceKind, command: ShareCommand, requester_id: str,
    ) -> ShareOutcome:
        name = command.collection_name
        if command.action is ShareAction.ADD:
            return await self.grant_to_collection(
                kind, name, requester_id, command.username or '',
            )
        if command.action is ShareAction.REMOVE:
            return await self.revoke_from_collection(
                kind, name, requester_id, command.username or '',
            )
        if command.action is ShareAction.PUBLIC_TOGGLE:
            return await self.set_collection_public(
                kind, name, requester_id, command.enabled,
            )
        raise InvalidShareRequest('leave is not supported on collections.')

    # ── Collection fan-out ────────────────────────────────────────────

    async def grant_to_collection(
        self,
        kind: ResourceKind,
        collection_name: str,
        requester_id: str,
        username: str,
    ) -> ShareOutcome:
        target = await self._ledger.resolve_username(username)
        if target.user_id == requester_id:
            raise CannotShareWithSelf()

        members = await self._resources.list_collection(kind, requester_id, collection_name)
        granted: list[str] = []
        skipped: list[str] = []
        failed: list[dict[str, str]] = []

        for resource in members:
            if resource.is_collaborator(target.user_id):
                skipped.append(resource.id)
                continue
            try:
                await self._ledger.grant(kind, resource.id, requester_id, username)
            except SharingError as exc:
                logger.warning(
                    'collection_grant_member_failed',
                    kind=kind.value,
                    collection=collection_name,
                    resource_id=resource.id,
                    error=exc.code,
                )
                failed.append({'resource_id': resource.id, 'error': exc.code})
                continue
            granted.append(resource.id)

        logger.info(
            'collection_granted',
            kind=kind.value,
            collection=collection_name,
            target_user_id=target.user_id,
            granted=len(granted),
            skipped=len(skipped),
            failed=len(failed),
        )
        return ShareOutcome(data={
            'collection_name': collection_name,
            'granted': granted,
            'skipped': skipped,
            'failed': failed,
        })

    async def revoke_from_collection(
        self,
        kind: ResourceKind,
        collection_name: str,
        requester_id: str,
        username: str,
    ) -> ShareOutcome:
        if not username:
            raise InvalidShareRequest('username is required.')

        members = await self._resources.list_collection(kind, requester_id, collection_name)
        revoked: list[str] = []
        failed: list[dict[str, str]] = []

        for resource in members:
            try:
                await self._ledger.revoke(kind, resource.id, requester_id, username)
            except SharingError as exc:
                logger.warning(
                    'collection_revoke_member_failed',
                    kind=kind.value,
                    collection=collection_name,
                    resource_id=resource.id,
                    error=exc.code,
                )
                failed.append({'resource_id': resource.id, 'error': exc.code})
                continue
            revoked.append(resource.id)

        return ShareOutcome(data={
            'collection_name': collection_name,
            'revoked': revoked,
            'failed': failed,
        })

    async def set_collection_public(
        self,
        kind: ResourceKind,
        collection_name: str,
        requester_id: str,
        enabled: bool | None = None,
    ) -> ShareOutcome:
        """Enable, disable or flip (``enabled=None``) a collection's public link.

        Collections are keyed by owner, so the requester is always the
        owner of the collection they address. Publishing needs at least one
        owned resource in the collection.

        Raises:
            NotFound: Enabling a collection the requester has no resources in.
        """
        share = await self._collections.get_collection(kind, requester_id, collection_name)
        if share is None:
            share = CollectionShare(kind=kind, owner_id=requester_id, name=collection_name)

        target = (not share.is_public) if enabled is None else enabled
        if target and not share.is_public:
            members = await self._resources.list_collection(kind, requester_id, collection_name)
            if not members:
                raise NotFound(f'Collection {collection_name!r} not found.')
        if target:
            if share.public_token is None:
                share.public_token = await self._tokens.issue(kind)
            share.is_public = True
        else:
            if share.public_token is not None:
                await self._tokens.revoke(kind, share.public_token)
            share.is_public = False
            share.public_token = None

        share = await self._collections.put_collection(share)
        return ShareOutcome(data={
            'collection_name': collection_name,
            'is_public': share.is_public,
            'public_token': share.public_token,
        })
