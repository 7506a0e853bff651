# service/queue_statistics_poller.py
import logging
from typing import Optional
from config.settings import settings
from core.scheduler import Scheduler
from core.sequencing import SequenceGuard
from model.job import QueueSnapshot
from service.document_api_client import DocumentApiClient
from service.poll_sink import PollSink
from util.constants import SchedulerKeys
from util.enums import Channel
from util.errors import TrackerError, UnauthorizedError

logger = logging.getLogger(__name__)

QUEUE_SCOPE = "*"


class QueueStatisticsPoller:
    """Dashboard-level refresh of queue counts and the user's job list."""

    def __init__(
        self,
        *,
        client: DocumentApiClient,
        scheduler: Scheduler,
        guard: SequenceGuard,
        sink: PollSink,
    ) -> None:
        self._client = client
        self._scheduler = scheduler
        self._guard = guard
        self._sink = sink
        self._active = False
        self._last_error: Optional[TrackerError] = None

    @property
    def key(self) -> str:
        return SchedulerKeys.QUEUE

    @property
    def active(self) -> bool:
        return self._active

    @property
    def last_error(self) -> Optional[TrackerError]:
        """Set while the shown list is stale because the last refresh failed."""
        return self._last_error

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._guard.open(QUEUE_SCOPE, Channel.QUEUE)
        self._scheduler.schedule(
            self.key, settings.QUEUE_POLL_SECONDS, self.tick, delay=0
        )
        logger.debug("poll.queue.start")

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._scheduler.cancel(self.key)
        self._guard.close(QUEUE_SCOPE, Channel.QUEUE)
        logger.debug("poll.queue.stop")

    def refresh_soon(self) -> bool:
        return self._active and self._scheduler.trigger(self.key)

    async def refresh(self) -> QueueSnapshot:
        """One read; raises on failure and leaves the cached list untouched."""
        self._guard.open(QUEUE_SCOPE, Channel.QUEUE)
        seq = self._guard.issue(QUEUE_SCOPE, Channel.QUEUE)
        try:
            read = await self._client.get_queue()
        except TrackerError as e:
            self._last_error = e
            raise
        self._last_error = None
        self._sink.apply_queue(seq, read)
        return read

    async def tick(self) -> None:
        if not self._active or not self._sink.ready():
            return
        try:
            await self.refresh()
        except UnauthorizedError as e:
            self._sink.report_error(None, e, retrying=False)
        except TrackerError as e:
            if self._active:
                logger.warning("poll.queue.stale kind=%s err=%s", e.kind, e.message)
                self._sink.report_error(None, e, retrying=True)
