"""Background worker process.

RUN:  python -m app.worker

The API enqueues fire-and-forget notifications (welcome mail, member
invitations, subscription confirmations) on the ``notifications`` queue
and returns at once.  This process drains that queue, so a slow or
failing mail relay never adds latency to, or rolls back, an API call.

In Docker/Kubernetes the worker is the same image with a different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

Each loop iteration polls every registered queue once, dispatches at most
one task per queue to its handler, and publishes the queue depth to the
``task_queue_depth`` gauge.  A handler failure is logged and the task is
dropped; delivery is at-most-once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.core.metrics import NOTIFICATION_FAILURES, QUEUE_DEPTH
from app.services.notifications import NOTIFICATIONS_QUEUE
from app.services.task_queue import TaskQueue, build_task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# Subjects of the messages each notification kind turns into.
NOTIFICATION_SUBJECTS = {
    "welcome": "Welcome aboard",
    "organization_created": "Your organization is ready",
    "member_invited": "You have been added to an organization",
    "subscription_activated": "Your subscription is active",
}


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    """Render a notification for delivery.

    Mail transport is outside this service; the rendered message is
    logged with its recipient and organization.
    """
    kind = payload.get("kind")
    subject = NOTIFICATION_SUBJECTS.get(str(kind))
    if subject is None:
        raise ValueError(f"unknown notification kind {kind!r}")
    logger.info(
        "Notification delivered kind=%s subject=%r to=%s",
        kind,
        subject,
        payload.get("email") or "-",
        extra={"org_id": payload.get("org_id") or "-"},
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_once(queue: TaskQueue, *, timeout: int = 1) -> int:
    """Poll every registered queue once.  Returns how many tasks were handled."""
    handled = 0
    for queue_name, handler in HANDLERS.items():
        task = await queue.dequeue(queue_name, timeout=timeout)
        QUEUE_DEPTH.labels(queue_name=queue_name).set(await queue.queue_length(queue_name))
        if task is None:
            continue

        handled += 1
        try:
            await handler(task.payload)
            logger.info("Task %s on [%s] completed", task.id, queue_name)
        except Exception:
            NOTIFICATION_FAILURES.labels(kind=str(task.payload.get("kind"))).inc()
            logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return handled


async def run_worker(queue: TaskQueue) -> None:
    logger.info("Worker started, listening on queues: %s", list(HANDLERS))
    while True:
        await process_once(queue)


async def _main() -> None:
    from app.db.redis import redis_pool

    if redis_pool is None:
        raise SystemExit("REDIS_URL is not set; the in-memory queue is not shared with the API")
    try:
        await run_worker(build_task_queue(redis_pool))
    finally:
        await redis_pool.aclose()


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(_main())
