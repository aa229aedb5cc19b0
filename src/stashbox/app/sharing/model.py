"""Shareable resource domain model.

A *shareable resource* is any owned collection item (a clipboard, a link
category, a terminal command) that can be shared on three tiers:

  - private: owner only.
  - collaborative: explicit ``shared_with`` grants, unique by user id.
  - public: anonymous read-only access through an unguessable token.

The model is generic over its payload (``Resource[P]``). Nothing in the
sharing layer inspects ``payload``; feature-specific validation lives in
``payloads``.

Invariants:
  - The owner is never present in ``shared_with``.
  - ``public_token is not None`` iff ``is_public``.
  - ``owner_id`` never changes after creation.

This module provides:
  1. ``ResourceKind``: the three shareable features.
  2. ``SharedUser`` / ``Resource``: the ACL-carrying domain object.
  3. ``ResourceView``: caller-relative projection with ``is_owner``.
  4. ``PublicSnapshot``: sanitized anonymous projection.
  5. ``CollectionShare`` / ``TrashRecord``: collection-level public
     links and deleted-resource records.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

P = TypeVar('P')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Kinds ─────────────────────────────────────────────────────────────


class ResourceKind(str, Enum):
    """Shareable features. Tokens and ids are scoped per kind."""

    CLIPBOARD = 'clipboard'
    LINK_CATEGORY = 'link_category'
    COMMAND = 'command'

    @property
    def path_segment(self) -> str:
        return _PATH_SEGMENTS[self]

    @classmethod
    def from_path(cls, segment: str) -> ResourceKind:
        """Map a URL path segment (``clipboards``) to its kind.

        Raises:
            ValueError: Unknown segment.
        """
        for kind, seg in _PATH_SEGMENTS.items():
            if seg == segment:
                return kind
        raise ValueError(f'Unknown resource kind segment: {segment!r}')


_PATH_SEGMENTS: dict[ResourceKind, str] = {
    ResourceKind.CLIPBOARD: 'clipboards',
    ResourceKind.LINK_CATEGORY: 'links',
    ResourceKind.COMMAND: 'commands',
}


# ── Domain model ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SharedUser:
    """A collaborator grant."""

    user_id: str
    username: str

    def to_dict(self) -> dict[str, str]:
        return {'user_id': self.user_id, 'username': self.username}


@dataclass
class Resource(Generic[P]):
    """A shareable resource.

    Attributes:
        id: Assigned by the resource store on first persistence.
        kind: Which feature this resource belongs to.
        owner_id: Creating user. Immutable.
        name: Display name, shown on the public view.
        collection: Optional collection tag (command category, link folder).
        payload: Feature content. Opaque to the sharing protocol.
        shared_with: Collaborator grants, unique by ``user_id``.
        is_public: Whether the public token currently resolves.
        public_token: Present iff ``is_public``.
        is_hidden: Owner-local visibility flag (not ACL).
        is_hiding: Owner-local masking flag (not ACL).
    """

    id: str | None
    kind: ResourceKind
    owner_id: str
    name: str = ''
    collection: str | None = None
    payload: P | None = None
    shared_with: list[SharedUser] = field(default_factory=list)
    is_public: bool = False
    public_token: str | None = None
    is_hidden: bool = False
    is_hiding: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_owned_by(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def grant_for(self, user_id: str) -> SharedUser | None:
        for grant in self.shared_with:
            if grant.user_id == user_id:
                return grant
        return None

    def is_collaborator(self, user_id: str) -> bool:
        return self.grant_for(user_id) is not None

    def has_access(self, user_id: str) -> bool:
        return self.is_owned_by(user_id) or self.is_collaborator(user_id)

    @property
    def public_state_consistent(self) -> bool:
        return self.is_public == (self.public_token is not None)

    def touch(self) -> None:
        self.updated_at = utcnow()

    def clone(self) -> Resource[P]:
        """Deep-enough copy so callers can't mutate stored state."""
        return replace(
            self,
            payload=copy.deepcopy(self.payload),
            shared_with=list(self.shared_with),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind.value,
            'owner_id': self.owner_id,
            'name': self.name,
            'collection': self.collection,
            'payload': self.payload,
            'shared_with': [g.to_dict() for g in self.shared_with],
            'is_public': self.is_public,
            'public_token': self.public_token,
            'is_hidden': self.is_hidden,
            'is_hiding': self.is_hiding,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


# ── Projections ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ResourceView:
    """A resource as seen by one user.

    ``is_owner`` is derived from the fetched resource every time a view is
    built, never stored alongside it.
    """

    resource: Resource
    is_owner: bool
    owner_username: str = ''

    def to_dict(self) -> dict[str, Any]:
        data = self.resource.to_dict()
        data['is_owner'] = self.is_owner
        data['owner_username'] = self.owner_username
        return data


def project(
    resource: Resource, current_user_id: str, owner_username: str = '',
) -> ResourceView:
    return ResourceView(
        resource=resource,
        is_owner=resource.is_owned_by(current_user_id),
        owner_username=owner_username,
    )


@dataclass(frozen=True, slots=True)
class PublicSnapshot:
    """Read-only anonymous projection.

    Carries the payload and non-sensitive metadata only. Never the owner,
    grants, ids or token.
    """

    kind: ResourceKind
    name: str
    payload: Any
    created_at: datetime
    updated_at: datetime

    @classmethod
    def of(cls, resource: Resource) -> PublicSnapshot:
        return cls(
            kind=resource.kind,
            name=resource.name,
            payload=copy.deepcopy(resource.payload),
            created_at=resource.created_at,
            updated_at=resource.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'kind': self.kind.value,
            'name': self.name,
            'payload': self.payload,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


# ── Collections and trash ─────────────────────────────────────────────


@dataclass
class CollectionShare:
    """Public-link state for a whole collection of one owner's resources."""

    kind: ResourceKind
    owner_id: str
    name: str
    is_public: bool = False
    public_token: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class TrashRecord:
    """A resource removed from its owner's set by ``save_owned``."""

    owner_id: str
    kind: ResourceKind
    original_id: str
    name: str
    payload: Any
    deleted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            'owner_id': self.owner_id,
            'kind': self.kind.value,
            'original_id': self.original_id,
            'name': self.name,
            'payload': self.payload,
            'deleted_at': self.deleted_at.isoformat(),
        }
