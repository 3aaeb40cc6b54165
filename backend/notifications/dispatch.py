"""Fire-and-forget hand-off of booking and payment events to Celery."""

from __future__ import annotations

import logging

from notifications import tasks as notification_tasks

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Queue a notification for a booking event.

    Delivery is best-effort: a broker outage or any other failure while
    queueing is logged and swallowed so it never blocks a booking transition.
    """

    def notify(self, event: str, booking_id: int) -> None:
        try:
            notification_tasks.send_booking_notification.delay(booking_id, event)
        except Exception:
            logger.info(
                "notifications: could not queue %s for booking %s",
                event,
                booking_id,
                exc_info=True,
            )
