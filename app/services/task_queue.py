"""Background task queue on Redis lists.

Producers LPUSH a JSON task onto ``tasks:<queue>``; the worker
(``python -m app.worker``) BRPOPs from the other end, so tasks are handled
in FIFO order.  Delivery is at-most-once: a task popped by a worker that
then crashes is lost.  Everything sent through here is fire-and-forget
(welcome and subscription notices), so that is acceptable.

Without REDIS_URL the in-memory queue is used; it only works inside one
process and exists for local runs and tests.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import redis.asyncio as aioredis


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      unique identifier for tracing in logs
    queue:   queue name, e.g. "notifications"
    payload: JSON-serializable data for the handler
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        self._queues.setdefault(queue, []).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if tasks:
            return tasks.pop(0)
        return None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    _PREFIX = "tasks:"

    def __init__(self, redis_client: aioredis.Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        task_json = json.dumps({"id": task.id, "queue": task.queue, "payload": task.payload})
        await self._redis.lpush(f"{self._PREFIX}{queue}", task_json)  # type: ignore[misc]
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Blocks up to ``timeout`` seconds; None when nothing arrived.
        result = await self._redis.brpop([f"{self._PREFIX}{queue}"], timeout=timeout)  # type: ignore[misc]
        if result is None:
            return None
        _, task_json = result
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")  # type: ignore[misc]


def build_task_queue(redis_client: aioredis.Redis | None) -> TaskQueue:  # type: ignore[type-arg]
    if redis_client is None:
        return InMemoryTaskQueue()
    return RedisTaskQueue(redis_client)
