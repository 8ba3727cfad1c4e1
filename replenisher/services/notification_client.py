# replenisher/services/notification_client.py
"""
Notification client - tells customers how a replenishment payment went.

Notices are posted to the platform's notification service, which renders
and emails them. With no service URL configured they are only logged.
"""

import asyncio
from functools import partial
from typing import Optional, Protocol

import requests

from ..config import settings
from ..enums import LogEmoji, LoggerName, LogSource
from ..exceptions import NotificationError
from ..models.notification_model import ReplenishmentNotice
from .logger import get_service_logger

logger = get_service_logger(LoggerName.NOTIFIER, LogSource.WORKER)


class ReplenishmentNotifier(Protocol):
    """Anything that can deliver a replenishment notice to the customer."""

    async def send(self, notice: ReplenishmentNotice) -> None: ...


class HttpReplenishmentNotifier:
    """ReplenishmentNotifier backed by the notification service's HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = settings.notification_service_url if base_url is None else base_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self.session = session or requests.Session()

    def _post_notice(self, notice: ReplenishmentNotice) -> None:
        try:
            response = self.session.post(
                self.base_url, json=notice.model_dump(mode="json"), timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Notification service unreachable: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(
                f"Notification service rejected {notice.kind.value} notice for "
                f"replenishment {notice.replenishment_id}: HTTP {response.status_code}"
            )

    async def send(self, notice: ReplenishmentNotice) -> None:
        """
        Deliver a notice.

        Raises:
            NotificationError: On transport errors or non-2xx responses
        """
        if not self.base_url:
            logger.info(
                f"Notice {notice.kind.value} for replenishment {notice.replenishment_id}",
                emoji=LogEmoji.OUTGOING,
                extra_context=notice.model_dump(mode="json"),
            )
            return

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._post_notice, notice))
        logger.debug(
            f"Sent {notice.kind.value} notice for replenishment {notice.replenishment_id}",
            emoji=LogEmoji.OUTGOING,
        )

    def close(self) -> None:
        self.session.close()
