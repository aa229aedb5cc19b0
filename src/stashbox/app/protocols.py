"""Repository protocol interfaces for dependency injection.

These protocols define the contracts that storage implementations must
satisfy. ``inmemory`` ships dict-backed versions for local mode and tests;
durable backends are injected through ``create_app``.

Repositories hand out copies: mutating a returned ``Resource`` has no
effect until it is passed back through ``put``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .sharing.model import CollectionShare, Resource, ResourceKind, TrashRecord


@runtime_checkable
class ResourceRepository(Protocol):
    """Shareable resource persistence, scoped by kind."""

    async def get(self, kind: ResourceKind, resource_id: str) -> Resource | None: ...
    async def list_owned(self, kind: ResourceKind, owner_id: str) -> list[Resource]: ...
    async def list_shared_with(self, kind: ResourceKind, user_id: str) -> list[Resource]: ...
    async def list_collection(
        self, kind: ResourceKind, owner_id: str, collection: str,
    ) -> list[Resource]: ...
    async def find_by_token(self, kind: ResourceKind, token: str) -> Resource | None: ...
    async def put(self, resource: Resource) -> Resource: ...
    async def delete(self, kind: ResourceKind, resource_id: str) -> bool: ...


@runtime_checkable
class CollectionShareRepository(Protocol):
    """Collection-level public link state."""

    async def get_collection(
        self, kind: ResourceKind, owner_id: str, name: str,
    ) -> CollectionShare | None: ...
    async def put_collection(self, share: CollectionShare) -> CollectionShare: ...
    async def find_collection_by_token(
        self, kind: ResourceKind, token: str,
    ) -> CollectionShare | None: ...


@runtime_checkable
class TokenRegistry(Protocol):
    """Every public token ever issued, per kind. Never shrinks."""

    async def is_issued(self, kind: ResourceKind, token: str) -> bool: ...
    async def record(self, kind: ResourceKind, token: str) -> None: ...
    async def mark_revoked(self, kind: ResourceKind, token: str) -> None: ...
    async def is_revoked(self, kind: ResourceKind, token: str) -> bool: ...


@runtime_checkable
class UserDirectory(Protocol):
    """Read access to the user accounts owned by the auth collaborator."""

    async def find_by_username(self, username: str) -> dict[str, Any] | None: ...
    async def get_user(self, user_id: str) -> dict[str, Any] | None: ...


@runtime_checkable
class TrashRepository(Protocol):
    """Deleted-resource records."""

    async def add(self, records: list[TrashRecord]) -> None: ...
    async def list_for_owner(self, owner_id: str) -> list[TrashRecord]: ...
