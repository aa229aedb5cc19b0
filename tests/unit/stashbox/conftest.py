"""Shared wiring for stashbox unit tests.

Everything is built over the in-memory repositories, the same way
``create_app`` does in local mode.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from stashbox.app.inmemory import (
    InMemoryCollectionShareRepository,
    InMemoryResourceRepository,
    InMemoryTokenRegistry,
    InMemoryTrashRepository,
    InMemoryUserDirectory,
)
from stashbox.app.sharing import (
    AccessControlLedger,
    PublicTokenIssuer,
    PublicViewer,
    ResourceStore,
    SharingGateway,
)

USERS = {
    'u_owner': 'owner',
    'u_alice': 'alice',
    'u_bob': 'bob',
}


@dataclass
class Domain:
    resources: InMemoryResourceRepository
    collections: InMemoryCollectionShareRepository
    registry: InMemoryTokenRegistry
    users: InMemoryUserDirectory
    trash: InMemoryTrashRepository
    issuer: PublicTokenIssuer
    ledger: AccessControlLedger
    gateway: SharingGateway
    store: ResourceStore
    viewer: PublicViewer


def build_domain(users: dict[str, str] | None = None) -> Domain:
    resources = InMemoryResourceRepository()
    collections = InMemoryCollectionShareRepository()
    registry = InMemoryTokenRegistry()
    directory = InMemoryUserDirectory(users if users is not None else USERS)
    trash = InMemoryTrashRepository()
    issuer = PublicTokenIssuer(registry)
    ledger = AccessControlLedger(resources, directory, issuer)
    return Domain(
        resources=resources,
        collections=collections,
        registry=registry,
        users=directory,
        trash=trash,
        issuer=issuer,
        ledger=ledger,
        gateway=SharingGateway(ledger, resources, collections, issuer),
        store=ResourceStore(resources, directory, issuer, trash),
        viewer=PublicViewer(resources, collections, issuer),
    )


@pytest.fixture
def domain() -> Domain:
    return build_domain()
