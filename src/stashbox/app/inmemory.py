"""In-memory repository implementations for local development.

These are used when ENVIRONMENT=local and throughout the tests. They
satisfy the protocol interfaces but store everything in dicts (no
persistence across restarts).
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Any

from .sharing.model import (
    CollectionShare,
    Resource,
    ResourceKind,
    TrashRecord,
    utcnow,
)


class InMemoryResourceRepository:
    def __init__(self) -> None:
        self._resources: dict[tuple[ResourceKind, str], Resource] = {}

    async def get(self, kind: ResourceKind, resource_id: str) -> Resource | None:
        resource = self._resources.get((kind, resource_id))
        return resource.clone() if resource else None

    async def list_owned(self, kind: ResourceKind, owner_id: str) -> list[Resource]:
        return [
            r.clone() for (k, _), r in self._resources.items()
            if k == kind and r.owner_id == owner_id
        ]

    async def list_shared_with(self, kind: ResourceKind, user_id: str) -> list[Resource]:
        return [
            r.clone() for (k, _), r in self._resources.items()
            if k == kind and r.is_collaborator(user_id)
        ]

    async def list_collection(
        self, kind: ResourceKind, owner_id: str, collection: str,
    ) -> list[Resource]:
        return [
            r.clone() for (k, _), r in self._resources.items()
            if k == kind and r.owner_id == owner_id and r.collection == collection
        ]

    async def find_by_token(self, kind: ResourceKind, token: str) -> Resource | None:
        for (k, _), r in self._resources.items():
            if k == kind and r.public_token == token:
                return r.clone()
        return None

    async def put(self, resource: Resource) -> Resource:
        if resource.id is None:
            resource.id = f'res_{uuid.uuid4().hex[:12]}'
        self._resources[(resource.kind, resource.id)] = resource.clone()
        return resource.clone()

    async def delete(self, kind: ResourceKind, resource_id: str) -> bool:
        return self._resources.pop((kind, resource_id), None) is not None


class InMemoryCollectionShareRepository:
    def __init__(self) -> None:
        self._shares: dict[tuple[ResourceKind, str, str], CollectionShare] = {}

    async def get_collection(
        self, kind: ResourceKind, owner_id: str, name: str,
    ) -> CollectionShare | None:
        share = self._shares.get((kind, owner_id, name))
        return replace(share) if share else None

    async def put_collection(self, share: CollectionShare) -> CollectionShare:
        share.updated_at = utcnow()
        self._shares[(share.kind, share.owner_id, share.name)] = replace(share)
        return replace(share)

    async def find_collection_by_token(
        self, kind: ResourceKind, token: str,
    ) -> CollectionShare | None:
        for (k, _, _), share in self._shares.items():
            if k == kind and share.public_token == token:
                return replace(share)
        return None


class InMemoryTokenRegistry:
    def __init__(self) -> None:
        self._issued: set[tuple[ResourceKind, str]] = set()
        self._revoked: set[tuple[ResourceKind, str]] = set()

    async def is_issued(self, kind: ResourceKind, token: str) -> bool:
        return (kind, token) in self._issued

    async def record(self, kind: ResourceKind, token: str) -> None:
        self._issued.add((kind, token))

    async def mark_revoked(self, kind: ResourceKind, token: str) -> None:
        self._revoked.add((kind, token))

    async def is_revoked(self, kind: ResourceKind, token: str) -> bool:
        return (kind, token) in self._revoked


class InMemoryUserDirectory:
    def __init__(self, users: dict[str, str] | None = None) -> None:
        # user_id -> username
        self._users: dict[str, str] = dict(users or {})

    def add_user(self, user_id: str, username: str) -> None:
        self._users[user_id] = username

    async def find_by_username(self, username: str) -> dict[str, Any] | None:
        for user_id, name in self._users.items():
            if name == username:
                return {'id': user_id, 'username': name}
        return None

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        name = self._users.get(user_id)
        if name is None:
            return None
        return {'id': user_id, 'username': name}


class InMemoryTrashRepository:
    def __init__(self) -> None:
        self.records: list[TrashRecord] = []

    async def add(self, records: list[TrashRecord]) -> None:
        self.records.extend(records)

    async def list_for_owner(self, owner_id: str) -> list[TrashRecord]:
        return [r for r in self.records if r.owner_id == owner_id]
