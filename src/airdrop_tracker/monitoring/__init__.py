"""
Monitoring Layer - Alert delivery.

This module provides:
    - NotificationTransport: Protocol the notifier gate sends through
    - TelegramTransport: Telegram Bot API implementation
    - format_airdrop_alert: Markdown rendering of a new airdrop
"""

from .alerting import (
    NotificationError,
    NotificationTransport,
    TelegramTransport,
    dexscreener_url,
    format_airdrop_alert,
)

__all__ = [
    "NotificationError",
    "NotificationTransport",
    "TelegramTransport",
    "dexscreener_url",
    "format_airdrop_alert",
]
