"""
Notifier gate - sends alerts for the records a run just created.

Sends are sequential in creation order with a fixed pause between them.
A disabled transport is not a failure; a raising transport is recorded
and the gate moves on to the next record.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from airdrop_tracker.monitoring.alerting import NotificationError, NotificationTransport
from airdrop_tracker.storage.models import AirdropRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationResult:
    token: str
    delivered: bool
    error: Optional[str] = None


@dataclass
class NotifyReport:
    notified: int = 0
    failures: list[str] = field(default_factory=list)
    results: list[NotificationResult] = field(default_factory=list)


class NotifierGate:
    """
    Paced, failure-isolated delivery of creation alerts.

    Usage:
        gate = NotifierGate(TelegramTransport(token, chat_id), delay_seconds=0.1)
        report = await gate.notify(created_records)
    """

    def __init__(
        self,
        transport: NotificationTransport,
        delay_seconds: float = 0.1,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._transport = transport
        self._delay = delay_seconds
        self._sleep = sleep or asyncio.sleep

    async def notify(self, records: Sequence[AirdropRecord]) -> NotifyReport:
        report = NotifyReport()

        for index, record in enumerate(records):
            if index > 0 and self._delay > 0:
                await self._sleep(self._delay)

            result = await self._send_one(record)
            report.results.append(result)
            if result.delivered:
                report.notified += 1
            elif result.error:
                report.failures.append(result.error)

        if records:
            logger.info(
                f"Notifications: {report.notified}/{len(records)} delivered, "
                f"{len(report.failures)} failed"
            )
        return report

    async def _send_one(self, record: AirdropRecord) -> NotificationResult:
        try:
            delivered = await self._transport.send(record)
        except NotificationError as e:
            logger.error(f"Notification failed for {record.token}: {e}")
            return NotificationResult(record.token, False, f"Notify {record.token}: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected notification error for {record.token}: {e}", exc_info=True)
            return NotificationResult(record.token, False, f"Notify {record.token}: {e}")

        return NotificationResult(record.token, bool(delivered))
