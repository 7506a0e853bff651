# core/scheduler.py
import asyncio
import logging
from typing import Dict, List, Optional
from util.types import TaskFn

logger = logging.getLogger(__name__)


class _Entry:
    def __init__(self, key: str, interval: float, fn: TaskFn, delay: float) -> None:
        self.key = key
        self.interval = interval
        self.fn = fn
        self.delay = delay
        self.cancelled = False
        self.wake = asyncio.Event()
        self.task: Optional[asyncio.Task] = None


class Scheduler:
    """
    Named, cancellable repeating tasks on the running event loop.

    Flow:
    - schedule(key, ...) replaces whatever ran under `key`.
    - Each entry runs fn, then sleeps `interval` (re-read every round, so
      set_interval takes effect on the next sleep); trigger(key) cuts a sleep short.
    - cancel(key) is idempotent and synchronous: once it returns, fn is never
      started again. A task cancelling itself finishes its current round.
    - fn errors are logged and the entry keeps its schedule.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}

    def schedule(
        self, key: str, interval: float, fn: TaskFn, *, delay: Optional[float] = None
    ) -> None:
        self.cancel(key)
        entry = _Entry(key, interval, fn, interval if delay is None else delay)
        self._entries[key] = entry
        entry.task = asyncio.get_running_loop().create_task(
            self._run(entry), name=f"scheduler:{key}"
        )
        logger.debug("scheduler.scheduled key=%s interval=%.1f", key, interval)

    def set_interval(self, key: str, interval: float) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.interval = interval

    def interval(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        return entry.interval if entry is not None else None

    def trigger(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.wake.set()
        return True

    def cancel(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        entry.cancelled = True
        if entry.task is not None and entry.task is not asyncio.current_task():
            entry.task.cancel()
        logger.debug("scheduler.cancelled key=%s", key)
        return True

    def cancel_all(self) -> int:
        keys = list(self._entries)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def is_scheduled(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    async def _sleep(self, entry: _Entry, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(entry.wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        entry.wake.clear()

    async def _run(self, entry: _Entry) -> None:
        try:
            await self._sleep(entry, entry.delay)
            while not entry.cancelled:
                try:
                    await entry.fn()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("scheduler.task_failed key=%s", entry.key)
                if entry.cancelled:
                    break
                await self._sleep(entry, entry.interval)
        except asyncio.CancelledError:
            pass
