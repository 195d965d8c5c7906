"""Cross-context wallet change notifications."""

from cryptex_wallet.services.notifications.bus import NotificationBus, Subscriber

__all__ = ["NotificationBus", "Subscriber"]
