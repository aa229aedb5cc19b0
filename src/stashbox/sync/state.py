"""Local sync state: items and the channels they are written through."""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

OWNED_CHANNEL = 'owned'


class SyncState(str, Enum):
    CLEAN = 'clean'
    DIRTY = 'dirty'
    SAVING = 'saving'


def new_client_key() -> str:
    return uuid.uuid4().hex


@dataclass
class LocalItem:
    """Client-side copy of one resource.

    ``client_key`` is stable for the lifetime of the item on this client and
    is how server responses are matched back to it; ``id`` stays None until
    the first owned save returns one.

    ``revision`` counts local content edits; ``saved_revision`` is the last
    revision the server acknowledged. They differ while edits are unsaved.
    """

    client_key: str
    owner_id: str
    is_owner: bool
    id: str | None = None
    name: str = ''
    collection: str | None = None
    payload: Any = None
    is_hidden: bool = False
    is_hiding: bool = False
    owner_username: str = ''
    shared_with: list[dict[str, str]] = field(default_factory=list)
    is_public: bool = False
    public_token: str | None = None
    revision: int = 0
    saved_revision: int = 0

    @property
    def has_unsaved_edits(self) -> bool:
        return self.revision != self.saved_revision

    @property
    def channel_key(self) -> str:
        if self.is_owner:
            return OWNED_CHANNEL
        return f'shared:{self.client_key}'

    def to_owned_wire(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'client_key': self.client_key,
            'owner_id': self.owner_id,
            'name': self.name,
            'collection': self.collection,
            'payload': copy.deepcopy(self.payload),
            'is_hidden': self.is_hidden,
            'is_hiding': self.is_hiding,
        }

    def shared_patch(self) -> dict[str, Any]:
        return {'name': self.name, 'payload': copy.deepcopy(self.payload)}

    def apply_acl(self, data: dict[str, Any]) -> None:
        """Take sharing state from a server record."""
        self.owner_id = data.get('owner_id', self.owner_id)
        self.is_owner = bool(data.get('is_owner', self.is_owner))
        self.owner_username = data.get('owner_username', self.owner_username) or ''
        self.shared_with = list(data.get('shared_with') or [])
        self.is_public = bool(data.get('is_public', False))
        self.public_token = data.get('public_token')

    def apply_content(self, data: dict[str, Any]) -> None:
        """Take content from a server record."""
        self.name = data.get('name', '') or ''
        self.collection = data.get('collection')
        self.payload = copy.deepcopy(data.get('payload'))
        self.is_hidden = bool(data.get('is_hidden', False))
        self.is_hiding = bool(data.get('is_hiding', False))

    @classmethod
    def from_server(cls, data: dict[str, Any]) -> LocalItem:
        item = cls(
            client_key=new_client_key(),
            owner_id=data['owner_id'],
            is_owner=bool(data.get('is_owner')),
            id=data['id'],
        )
        item.apply_acl(data)
        item.apply_content(data)
        return item


@dataclass(eq=False)
class SyncChannel:
    """Unit of debouncing and write serialization.

    The owned set is one channel (written with a full ``save_owned``); each
    shared item a collaborator edits is its own channel.
    """

    key: str
    state: SyncState = SyncState.CLEAN
    revision: int = 0
    saved_revision: int = 0
    follow_up: bool = False
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task | None = None
    last_error: Exception | None = None
    idle: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self) -> None:
        self.idle.set()

    @property
    def is_owned(self) -> bool:
        return self.key == OWNED_CHANNEL

    @property
    def dirty(self) -> bool:
        return self.revision != self.saved_revision

    def mark_edited(self) -> None:
        self.revision += 1
        if self.state is SyncState.SAVING:
            self.follow_up = True
        else:
            self.state = SyncState.DIRTY

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def refresh_idle(self) -> None:
        if self.timer is None and self.task is None:
            self.idle.set()
        else:
            self.idle.clear()
