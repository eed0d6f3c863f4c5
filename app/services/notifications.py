"""Fire-and-forget notifications.

Callers hand a kind and a payload to ``notify`` after their transaction
has committed.  Delivery problems are logged and counted and never reach
the caller: a failed welcome email must not undo a registration.
"""

from __future__ import annotations

import logging

from app.core.metrics import NOTIFICATION_FAILURES
from app.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

NOTIFICATIONS_QUEUE = "notifications"


class NotificationDispatcher:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def notify(self, kind: str, payload: dict) -> bool:
        """Enqueue a notification.  Returns False when it could not be queued."""
        try:
            task = await self._queue.enqueue(NOTIFICATIONS_QUEUE, {"kind": kind, **payload})
        except Exception:
            NOTIFICATION_FAILURES.labels(kind=kind).inc()
            logger.exception("Notification dispatch failed kind=%s", kind)
            return False
        logger.debug("Notification queued kind=%s task=%s", kind, task.id)
        return True
