"""
NotebookSaver Backend — Hand-off Notifications
================================================

What:  Outbound "page ready" notifications and the inbound event raised when
       the user taps one.
Why:   Text extracted while the host is in the background waits in the
       queue. A notification tells the user it is ready; tapping it brings
       the host forward and is an explicit signal to drain.
How:   Outbound goes through a NotificationPresenter (a desktop notifier, a
       push bridge, or the logging presenter by default). Inbound taps are
       reported to notification_opened(), which awaits every subscriber in
       registration order; DraftHandoffQueue subscribes its drain.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Page ready"
DEFAULT_BODY = "Tap to create a new draft in Drafts"
PREVIEW_LIMIT = 200

Subscriber = Callable[[str], Awaitable[Any]]


class NotificationPresenter(ABC):
    @abstractmethod
    async def present(self, correlation_id: str, title: str, body: str) -> None:
        ...


class LoggingNotificationPresenter(NotificationPresenter):
    """Writes notifications to the log; for headless runs and development."""

    async def present(self, correlation_id: str, title: str, body: str) -> None:
        logger.info("Notification [%s] %s: %s", correlation_id, title, body)


class HandoffNotifier:
    def __init__(self, presenter: Optional[NotificationPresenter] = None):
        self.presenter = presenter or LoggingNotificationPresenter()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, handler: Subscriber) -> None:
        self._subscribers.append(handler)

    async def result_ready(self, correlation_id: str, preview: str = "") -> None:
        """Tell the user a queued result is waiting."""
        body = preview.strip()
        if len(body) > PREVIEW_LIMIT:
            body = body[:PREVIEW_LIMIT].rstrip() + "…"
        await self.presenter.present(correlation_id, NOTIFICATION_TITLE, body or DEFAULT_BODY)

    async def notification_opened(self, correlation_id: str) -> List[Any]:
        """
        The user tapped a "page ready" notification.

        Returns:
            Each subscriber's result, in subscription order.
        """
        logger.info("Notification %s opened", correlation_id)
        results = []
        for handler in self._subscribers:
            results.append(await handler(correlation_id))
        return results
