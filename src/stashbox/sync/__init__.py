"""Client-side synchronization for stashbox resources.

Usage::

    from stashbox.app.sharing.model import ResourceKind
    from stashbox.sync import HttpSyncTransport, SyncClient

    transport = HttpSyncTransport.connect("https://stash.example", token)
    client = SyncClient(ResourceKind.CLIPBOARD, transport, user_id=user_id)
    await client.load()
    item = await client.create(name="scratch")
    client.edit(item.client_key, payload={"content": "hello"})
    ...
    await client.close()
"""

from .client import SyncClient
from .config import SyncClientConfig
from .notify import CollectingNotifier, LoggingNotifier, Notification, Notifier
from .state import OWNED_CHANNEL, LocalItem, SyncChannel, SyncState
from .transport import HttpSyncTransport, SyncTransport

__all__ = [
    "CollectingNotifier",
    "HttpSyncTransport",
    "LocalItem",
    "LoggingNotifier",
    "Notification",
    "Notifier",
    "OWNED_CHANNEL",
    "SyncChannel",
    "SyncClient",
    "SyncClientConfig",
    "SyncState",
    "SyncTransport",
]
