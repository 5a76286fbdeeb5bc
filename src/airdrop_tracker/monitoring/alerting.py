"""
Telegram notifications for newly observed airdrops.

The notifier gate only sees the NotificationTransport protocol. The
production transport posts a Markdown message through the Telegram Bot API
with `requests`, run in a worker thread so the event loop is not blocked.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import requests

from airdrop_tracker.storage.models import AirdropRecord

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"

DEXSCREENER_CHAINS = {
    "BSC": "bsc",
    "Ethereum": "ethereum",
    "Polygon": "polygon",
    "Arbitrum": "arbitrum",
    "Optimism": "optimism",
    "Avalanche": "avalanche",
    "Base": "base",
    "zkSync": "zksync",
    "Scroll": "scroll",
    "Linea": "linea",
    "Fantom": "fantom",
    "Solana": "solana",
    "SUI": "sui",
}


class NotificationError(Exception):
    """The transport tried to deliver and failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotificationTransport(Protocol):
    """
    Delivers one alert.

    Returns True when delivered, False when the transport is disabled.
    Raises NotificationError when delivery was attempted and failed.
    """

    async def send(self, record: AirdropRecord) -> bool: ...


def dexscreener_url(chain: str, contract_address: Optional[str] = None) -> str:
    dex_chain = DEXSCREENER_CHAINS.get(chain, chain.lower())
    if contract_address:
        return f"https://dexscreener.com/{dex_chain}/{contract_address}"
    return f"https://dexscreener.com/{dex_chain}"


def format_airdrop_alert(record: AirdropRecord) -> str:
    """Render the Markdown alert for a newly created airdrop."""
    lines = [
        "🎁 *Binance Alpha Airdrop Tracker*",
        "🚀 New airdrop listed!\n",
        f"🍄 *{record.name}*",
        f"💎 Symbol: ${record.token}",
    ]

    if record.claim_start:
        lines.append(f"📅 Date: {record.claim_start.strftime('%Y-%m-%d')}")
        lines.append(f"⏰ Time: {record.claim_start.strftime('%H:%M')} UTC")

    lines.append("")

    if record.required_points:
        lines.append(f"🎯 Min Alpha Points: {record.required_points} pts")
    if record.deduct_points:
        lines.append(f"⚖️ Deduct: -{record.deduct_points} pts")
    if record.estimated_value and record.estimated_value > 0:
        lines.append(f"💰 Estimated value: ~${float(record.estimated_value):.2f}")

    lines.append("")
    lines.append(f"🔗 Chain: #{record.chain}")

    if record.contract_address:
        lines.append("📦 Contract:")
        lines.append(f"`{record.contract_address}`")

    return "\n".join(lines)


class TelegramTransport:
    """
    Telegram Bot API transport.

    Usage:
        transport = TelegramTransport(bot_token="...", chat_id="...")
        delivered = await transport.send(record)
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            bot_token: Bot token from @BotFather
            chat_id: Chat ID to send messages to
            timeout: HTTP timeout per send
            session: Optional requests session (tests inject a mock)
        """
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def build_payload(self, record: AirdropRecord) -> dict[str, Any]:
        return {
            "chat_id": self._chat_id,
            "text": format_airdrop_alert(record),
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
            "reply_markup": {
                "inline_keyboard": [[
                    {
                        "text": "📊 Dexscreener",
                        "url": dexscreener_url(record.chain, record.contract_address),
                    }
                ]]
            },
        }

    async def send(self, record: AirdropRecord) -> bool:
        if not self.enabled:
            logger.warning(f"Telegram not configured, skipping alert for {record.token}")
            return False

        payload = self.build_payload(record)
        await asyncio.to_thread(self._post, payload)
        logger.info(f"Sent Telegram alert for {record.token}")
        return True

    def _post(self, payload: dict[str, Any]) -> None:
        url = TELEGRAM_API_URL.format(token=self._bot_token)
        try:
            response = self._session.post(url, json=payload, timeout=self._timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise NotificationError(f"Telegram API error: {e}", status_code=status) from e
        except requests.RequestException as e:
            raise NotificationError(f"Telegram request failed: {e}") from e
