"""Optimistic, debounced synchronization of one resource kind.

A ``SyncClient`` holds the local copy of every resource of one kind visible
to one user. Edits apply locally at once and are written after a quiet
period; sharing actions go straight to the server and are followed by a
full refetch.

Writes are serialized per *channel*:

- the owner's whole set is one channel, written with ``save_owned``
  (a full-collection replace);
- each shared item the user collaborates on is its own channel, written
  with ``save_shared_item``.

Per channel: ``CLEAN -> DIRTY -> SAVING -> CLEAN | DIRTY``. Every edit
re-arms the channel's debounce timer. At most one write is in flight per
channel; an edit during SAVING schedules exactly one follow-up after the
in-flight write resolves. A failed write is reported through the
``Notifier`` and the channel stays DIRTY with the local edit intact; the
next edit (or a configured automatic retry) writes it again.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from stashbox.app.errors import NotFound, NotOwner, SharingError, TransientNetworkFailure
from stashbox.app.sharing.model import ResourceKind
from stashbox.observability.logging import get_logger
from stashbox.observability.metrics import SYNC_WRITES_TOTAL

from .config import SyncClientConfig
from .notify import LoggingNotifier, Notification, Notifier
from .state import (
    OWNED_CHANNEL,
    LocalItem,
    SyncChannel,
    SyncState,
    new_client_key,
)
from .transport import SyncTransport

logger = get_logger(__name__)

T = TypeVar('T')

OWNER_EDITABLE = frozenset({'name', 'payload', 'collection', 'is_hidden', 'is_hiding'})
COLLABORATOR_EDITABLE = frozenset({'name', 'payload'})


class SyncClient:
    """Local state plus the write pipeline for one kind and one user."""

    def __init__(
        self,
        kind: ResourceKind,
        transport: SyncTransport,
        *,
        user_id: str,
        notifier: Notifier | None = None,
        config: SyncClientConfig | None = None,
    ) -> None:
        self.kind = kind
        self.user_id = user_id
        self._transport = transport
        self._notifier = notifier or LoggingNotifier()
        self._config = config or SyncClientConfig()
        self._items: list[LocalItem] = []
        self._channels: dict[str, SyncChannel] = {}
        self._closed = False

    # ── Local state ───────────────────────────────────────────────────

    @property
    def items(self) -> list[LocalItem]:
        return list(self._items)

    def get(self, client_key: str) -> LocalItem:
        for item in self._items:
            if item.client_key == client_key:
                return item
        raise KeyError(client_key)

    def find(self, resource_id: str) -> LocalItem | None:
        for item in self._items:
            if item.id == resource_id:
                return item
        return None

    def channel(self, key: str) -> SyncChannel:
        channel = self._channels.get(key)
        if channel is None:
            channel = self._channels[key] = SyncChannel(key=key)
        return channel

    def state_of(self, client_key: str) -> SyncState:
        return self.channel(self.get(client_key).channel_key).state

    @property
    def has_pending_writes(self) -> bool:
        return any(c.dirty or c.task is not None for c in self._channels.values())

    # ── Loading ───────────────────────────────────────────────────────

    async def load(self) -> list[LocalItem]:
        """Fetch everything visible to the user, replacing local state."""
        await self.refresh()
        return self.items

    async def refresh(self) -> None:
        """Refetch the resource list and merge it into local state.

        Sharing state always comes from the server. Content is taken from
        the server only for items without unsaved local edits. Locally
        created items the server has not seen yet are kept.
        """
        records = await self._call(lambda: self._transport.list_resources(self.kind))
        self._merge_listing(records)

    def _merge_listing(self, records: list[dict[str, Any]]) -> None:
        by_id = {item.id: item for item in self._items if item.id is not None}
        merged: list[LocalItem] = []
        seen: set[str] = set()
        # An unknown owned record may be one of our own creates whose save
        # response has not arrived yet; that response assigns its id.
        owned_channel = self._channels.get(OWNED_CHANNEL)
        creating = (
            owned_channel is not None
            and owned_channel.task is not None
            and any(item.is_owner and item.id is None for item in self._items)
        )

        for record in records:
            item = by_id.get(record.get('id'))
            if item is None:
                if creating and record.get('is_owner'):
                    continue
                item = LocalItem.from_server(record)
            else:
                item.apply_acl(record)
                if not item.has_unsaved_edits:
                    item.apply_content(record)
            merged.append(item)
            seen.add(item.client_key)

        for item in self._items:
            if item.client_key in seen:
                continue
            if item.id is None:
                merged.append(item)
            else:
                self._drop_channel(item)

        self._items = merged

    def _drop_channel(self, item: LocalItem) -> None:
        if item.is_owner:
            return
        channel = self._channels.pop(item.channel_key, None)
        if channel is not None:
            channel.cancel_timer()
            channel.refresh_idle()

    # ── Content edits ─────────────────────────────────────────────────

    async def create(
        self,
        *,
        name: str = '',
        payload: Any = None,
        collection: str | None = None,
    ) -> LocalItem:
        """Add an owned item and write the owned set right away.

        Returns the local item; its ``id`` is filled in when the write
        succeeds. On failure the item stays local and DIRTY.
        """
        self._ensure_open()
        item = LocalItem(
            client_key=new_client_key(),
            owner_id=self.user_id,
            is_owner=True,
            name=name,
            collection=collection,
            payload=payload if payload is not None else {},
            revision=1,
        )
        self._items.append(item)
        channel = self.channel(OWNED_CHANNEL)
        channel.mark_edited()
        await self._flush_channel(channel)
        return item

    def edit(self, client_key: str, **changes: Any) -> LocalItem:
        """Apply an edit locally and (re)arm the debounce for its channel.

        Owners may change name, payload, collection and the hidden flags;
        collaborators name and payload only.

        Raises:
            NotOwner: A collaborator tried to change an owner-only field.
            ValueError: Unknown field.
        """
        self._ensure_open()
        item = self.get(client_key)
        unknown = set(changes) - OWNER_EDITABLE
        if unknown:
            raise ValueError(f'Unknown fields: {sorted(unknown)}')
        if not item.is_owner and set(changes) - COLLABORATOR_EDITABLE:
            raise NotOwner('Collaborators may only edit name and payload.')

        for field_name, value in changes.items():
            setattr(item, field_name, value)
        item.revision += 1

        channel = self.channel(item.channel_key)
        channel.mark_edited()
        self._arm(channel)
        return item

    def remove(self, client_key: str) -> None:
        """Drop an owned item; the next owned write deletes it server-side.

        Raises:
            NotOwner: The item is shared with the user; use ``leave``.
        """
        self._ensure_open()
        item = self.get(client_key)
        if not item.is_owner:
            raise NotOwner('Only the owner can delete; leave the resource instead.')
        self._items.remove(item)
        channel = self.channel(OWNED_CHANNEL)
        channel.mark_edited()
        self._arm(channel)

    # ── Debounce / write pipeline ─────────────────────────────────────

    def _arm(self, channel: SyncChannel) -> None:
        if channel.state is SyncState.SAVING:
            channel.follow_up = True
            return
        channel.cancel_timer()
        loop = asyncio.get_running_loop()
        channel.timer = loop.call_later(
            self._config.debounce_seconds, self._fire, channel,
        )
        channel.refresh_idle()

    def _fire(self, channel: SyncChannel) -> None:
        channel.timer = None
        if self._channels.get(channel.key) is not channel:
            channel.refresh_idle()
            return
        if channel.task is not None:
            channel.follow_up = True
            return
        if not channel.dirty:
            # Already written by a flush.
            channel.state = SyncState.CLEAN
            channel.refresh_idle()
            return
        channel.task = asyncio.ensure_future(self._save(channel))
        channel.refresh_idle()

    async def _save(self, channel: SyncChannel) -> None:
        channel.state = SyncState.SAVING
        channel.follow_up = False
        sent_revision = channel.revision
        label = 'owned' if channel.is_owned else 'shared'
        try:
            if channel.is_owned:
                await self._write_owned()
            else:
                await self._write_shared(channel)
        except Exception as exc:
            if isinstance(exc, SharingError):
                failure = exc
            else:
                logger.exception(
                    "sync_write_crashed",
                    kind=self.kind.value,
                    channel=channel.key,
                )
                failure = TransientNetworkFailure(f'Write failed unexpectedly: {exc!r}')
                failure.__cause__ = exc
            channel.last_error = failure
            channel.state = SyncState.DIRTY
            SYNC_WRITES_TOTAL.labels(kind=self.kind.value, channel=label, outcome=failure.code).inc()
            logger.warning(
                "sync_write_failed",
                kind=self.kind.value,
                channel=channel.key,
                code=failure.code,
                retryable=not failure.permanent,
            )
            client_key = None if channel.is_owned else channel.key.split(':', 1)[1]
            self._report('save', failure, client_key=client_key)
        else:
            channel.last_error = None
            channel.saved_revision = sent_revision
            channel.state = SyncState.DIRTY if channel.dirty else SyncState.CLEAN
            SYNC_WRITES_TOTAL.labels(kind=self.kind.value, channel=label, outcome='ok').inc()
            logger.debug("sync_write_ok", kind=self.kind.value, channel=channel.key)
        finally:
            channel.task = None

        if channel.follow_up and not self._closed:
            channel.follow_up = False
            self._arm(channel)
        channel.refresh_idle()

    async def _write_owned(self) -> None:
        owned = [item for item in self._items if item.is_owner]
        sent = {item.client_key: item.revision for item in owned}
        wire = [item.to_owned_wire() for item in owned]

        data = await self._call(lambda: self._transport.save_owned(self.kind, wire))
        claimed: dict[str, str] = {}
        for record in data.get('resources', []):
            key = record.get('client_key')
            if key not in sent:
                continue
            try:
                item = self.get(key)
            except KeyError:
                # Removed locally while the write was in flight.
                continue
            item.id = record.get('id') or item.id
            item.apply_acl(record)
            item.saved_revision = sent[key]
            claimed[item.id] = key

        # Drop copies of the same resource picked up by a refetch that ran
        # while this write was in flight.
        if claimed:
            self._items = [
                item for item in self._items
                if item.id not in claimed or claimed[item.id] == item.client_key
            ]
        if data.get('skipped'):
            logger.warning(
                "sync_owned_items_skipped",
                kind=self.kind.value,
                skipped=data['skipped'],
            )

    async def _write_shared(self, channel: SyncChannel) -> None:
        item = next((i for i in self._items if i.channel_key == channel.key), None)
        if item is None:
            return
        if item.id is None:
            raise NotFound('Shared item has no server id.')
        sent = item.revision
        patch = item.shared_patch()
        resource_id, owner_id = item.id, item.owner_id

        await self._call(
            lambda: self._transport.save_shared_item(self.kind, resource_id, owner_id, patch)
        )
        item.saved_revision = sent

    async def _call(self, request: Callable[[], Awaitable[T]]) -> T:
        """Run one request with the timeout and bounded retry policy."""
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(request(), timeout=self._config.request_timeout)
            except asyncio.TimeoutError as exc:
                failure: SharingError = TransientNetworkFailure(
                    f'Request timed out after {self._config.request_timeout}s.'
                )
                failure.__cause__ = exc
            except SharingError as exc:
                failure = exc

            if failure.permanent or attempt >= self._config.max_retries:
                raise failure
            delay = self._config.backoff_for(attempt)
            attempt += 1
            logger.info(
                "sync_retry",
                kind=self.kind.value,
                attempt=attempt,
                max_retries=self._config.max_retries,
                backoff_s=delay,
            )
            await asyncio.sleep(delay)

    async def _flush_channel(self, channel: SyncChannel) -> None:
        channel.cancel_timer()
        while channel.task is not None:
            await channel.task
            # Superseded by the write below.
            channel.cancel_timer()
        if channel.dirty and self._channels.get(channel.key) is channel:
            channel.task = asyncio.ensure_future(self._save(channel))
            channel.refresh_idle()
            await channel.task
        channel.refresh_idle()

    async def flush(self) -> None:
        """Write every dirty channel now instead of waiting for its timer."""
        for channel in list(self._channels.values()):
            await self._flush_channel(channel)

    async def wait_idle(self) -> None:
        """Wait until no channel has a pending timer or write."""
        while True:
            busy = [c for c in self._channels.values() if not c.idle.is_set()]
            if not busy:
                return
            await asyncio.gather(*(c.idle.wait() for c in busy))

    async def close(self) -> None:
        """Final best-effort write of pending edits, then stop accepting edits."""
        if self._closed:
            return
        await self.flush()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError('SyncClient is closed.')

    # ── Sharing actions (never debounced) ─────────────────────────────

    async def grant(self, client_key: str, username: str) -> dict[str, Any]:
        item = await self._persisted(client_key)
        return await self._share(
            {'action': 'add', 'resource_id': item.id, 'username': username},
            operation='add',
            client_key=client_key,
        )

    async def revoke(self, client_key: str, username: str) -> dict[str, Any]:
        item = await self._persisted(client_key)
        return await self._share(
            {'action': 'remove', 'resource_id': item.id, 'username': username},
            operation='remove',
            client_key=client_key,
        )

    async def set_public(self, client_key: str, enabled: bool) -> dict[str, Any]:
        item = await self._persisted(client_key)
        return await self._share(
            {'action': 'public_toggle', 'resource_id': item.id, 'enabled': enabled},
            operation='public_toggle',
            client_key=client_key,
        )

    async def toggle_public(self, client_key: str) -> dict[str, Any]:
        item = await self._persisted(client_key)
        return await self._share(
            {'action': 'public_toggle', 'resource_id': item.id},
            operation='public_toggle',
            client_key=client_key,
        )

    async def leave(self, client_key: str) -> dict[str, Any]:
        """Drop the user's own grant on a shared item and forget it locally."""
        item = self.get(client_key)
        if item.id is None:
            raise NotFound('Item has not been saved yet.')
        data = await self._send_share(
            {'action': 'leave', 'resource_id': item.id},
            operation='leave',
            client_key=client_key,
        )
        if item in self._items:
            self._items.remove(item)
        self._drop_channel(item)
        await self._refresh_after_share()
        return data

    async def grant_collection(self, collection: str, username: str) -> dict[str, Any]:
        await self._flush_channel(self.channel(OWNED_CHANNEL))
        return await self._share(
            {'action': 'add', 'collection_name': collection, 'username': username},
            operation='add',
        )

    async def revoke_collection(self, collection: str, username: str) -> dict[str, Any]:
        await self._flush_channel(self.channel(OWNED_CHANNEL))
        return await self._share(
            {'action': 'remove', 'collection_name': collection, 'username': username},
            operation='remove',
        )

    async def set_collection_public(
        self, collection: str, enabled: bool | None = None,
    ) -> dict[str, Any]:
        await self._flush_channel(self.channel(OWNED_CHANNEL))
        body: dict[str, Any] = {'action': 'public_toggle', 'collection_name': collection}
        if enabled is not None:
            body['enabled'] = enabled
        return await self._share(body, operation='public_toggle')

    async def _persisted(self, client_key: str) -> LocalItem:
        item = self.get(client_key)
        if item.id is None:
            channel = self.channel(item.channel_key)
            await self._flush_channel(channel)
            if item.id is None:
                raise channel.last_error or NotFound('Item has not been saved yet.')
        return item

    async def _share(
        self,
        body: dict[str, Any],
        *,
        operation: str,
        client_key: str | None = None,
    ) -> dict[str, Any]:
        data = await self._send_share(body, operation=operation, client_key=client_key)
        await self._refresh_after_share()
        return data

    async def _send_share(
        self,
        body: dict[str, Any],
        *,
        operation: str,
        client_key: str | None,
    ) -> dict[str, Any]:
        try:
            return await self._call(lambda: self._transport.share(self.kind, body))
        except SharingError as exc:
            logger.info(
                "sync_share_failed",
                kind=self.kind.value,
                action=operation,
                code=exc.code,
            )
            self._report(operation, exc, client_key=client_key)
            raise

    async def _refresh_after_share(self) -> None:
        try:
            await self.refresh()
        except SharingError as exc:
            self._report('refresh', exc)

    def _report(self, operation: str, error: SharingError, *, client_key: str | None = None) -> None:
        self._notifier.notify(
            Notification(
                kind=self.kind.value,
                operation=operation,
                error=error,
                client_key=client_key,
            )
        )
