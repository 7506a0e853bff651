# core/event_bus.py
import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set
from model.events import TrackerEvent
from util.types import EventHandler

logger = logging.getLogger(__name__)


class EventBus:
    """
    Observer lists keyed by job id, plus global observers.

    Handlers run synchronously in publish order; a handler returning an
    awaitable has it scheduled as a task. Handler failures are logged and
    never reach the publisher.
    """

    def __init__(self) -> None:
        self._global: List[EventHandler] = []
        self._by_job: Dict[str, List[EventHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(
        self, handler: EventHandler, job_id: Optional[str] = None
    ) -> Callable[[], None]:
        bucket = self._global if job_id is None else self._by_job[job_id]
        bucket.append(handler)

        def _unsubscribe() -> None:
            if handler in bucket:
                bucket.remove(handler)

        return _unsubscribe

    def drop_job(self, job_id: str) -> None:
        self._by_job.pop(job_id, None)

    def publish(self, event: TrackerEvent) -> None:
        handlers = list(self._global)
        if event.jobId is not None:
            handlers.extend(self._by_job.get(event.jobId, ()))
        for handler in handlers:
            try:
                result = handler(event)
            except Exception:
                logger.exception("bus.handler_failed type=%s", getattr(event, "type", "?"))
                continue
            if inspect.isawaitable(result):
                self._spawn(result)

    def publish_all(self, events: List[TrackerEvent]) -> None:
        for event in events:
            self.publish(event)

    def _spawn(self, awaitable) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("bus.async_handler_failed err=%r", task.exception())

    async def drain(self) -> None:
        """Wait for handler tasks spawned so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
