"""
Wallet Notification Bus

Tells other execution contexts attached to the same store that the wallet
changed, so they can re-read it.

Two legs, both best-effort:
1. Channel: every bus in this process with the same channel name and the
   same store object receives the event directly (the publishing bus itself
   does not, like a browser BroadcastChannel)
2. Ping: a fresh token is written under the ping key; a context in another
   process sharing the store notices it through poll()

CRITICAL: Events are hints. Receivers must re-read the snapshot instead of
trusting the payload, and must not rely on delivery at all.
"""

import time
import weakref
from typing import Callable, Optional
from uuid import uuid4

import structlog

from cryptex_wallet.audit import AuditLogger
from cryptex_wallet.config import (
    NotificationSettings,
    StorageSettings,
    get_settings,
)
from cryptex_wallet.models.events import WalletEvent, WalletEventKind
from cryptex_wallet.services.storage.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)

Subscriber = Callable[[WalletEvent], None]

# channel name -> buses attached to it in this process
_CHANNELS: dict[str, "weakref.WeakSet[NotificationBus]"] = {}


def _new_ping_token() -> str:
    return f"{int(time.time() * 1000)}:{uuid4().hex[:8]}"


class NotificationBus:
    """
    Publish/subscribe for wallet change hints.

    Delivery is fire-and-forget and at most once per event per subscriber.
    """

    def __init__(
        self,
        store: KeyValueStore,
        notification_settings: Optional[NotificationSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = notification_settings or get_settings().notifications
        self._store = store
        self._enabled = settings.enabled
        self._channel = settings.channel_name
        self._ping_key = (storage_settings or get_settings().storage).ping_key
        self._audit_logger = audit_logger
        self._subscribers: list[Subscriber] = []
        self._last_ping = self._read_ping()
        _CHANNELS.setdefault(self._channel, weakref.WeakSet()).add(self)

    @property
    def channel(self) -> str:
        return self._channel

    def _read_ping(self) -> Optional[str]:
        try:
            return self._store.get(self._ping_key)
        except StorageError:
            return None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for events from other contexts.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _deliver(self, event: WalletEvent) -> int:
        delivered = 0
        for callback in list(self._subscribers):
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "wallet_subscriber_failed",
                    channel=self._channel,
                    kind=event.kind.value,
                    error=str(e),
                )
        return delivered

    def _receive(self, event: WalletEvent, ping: Optional[str]) -> int:
        if ping is not None:
            self._last_ping = ping
        return self._deliver(event)

    def publish(self, event: WalletEvent) -> int:
        """
        Broadcast an event to the other contexts.

        Never raises. Returns the number of subscriber callbacks that ran
        in this process.
        """
        if not self._enabled:
            return 0

        ping: Optional[str] = _new_ping_token()
        try:
            self._store.set(self._ping_key, ping)
            self._last_ping = ping
        except StorageError as e:
            ping = None
            if self._audit_logger:
                self._audit_logger.log_notification_failed(self._channel, e)
            else:
                logger.warning("wallet_ping_failed", channel=self._channel, error=str(e))

        delivered = 0
        for peer in list(_CHANNELS.get(self._channel, ())):
            if peer is self or peer._store is not self._store or not peer._enabled:
                continue
            delivered += peer._receive(event, ping)
        return delivered

    def poll(self) -> bool:
        """
        Check the store for a ping written by another process.

        If the ping changed since this bus last saw it, subscribers get a
        PING event and True is returned.
        """
        current = self._read_ping()
        if current is None or current == self._last_ping:
            return False
        self._last_ping = current
        self._deliver(WalletEvent(kind=WalletEventKind.PING))
        return True

    def close(self) -> None:
        """Detach from the channel and drop all subscribers."""
        peers = _CHANNELS.get(self._channel)
        if peers is not None:
            peers.discard(self)
        self._subscribers.clear()
