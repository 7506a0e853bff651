# service/progress_poller.py
import logging
from typing import Awaitable, Callable
from config.settings import settings
from core.scheduler import Scheduler
from core.sequencing import SequenceGuard
from model.job import ProgressSnapshot
from service.document_api_client import DocumentApiClient
from service.poll_sink import PollSink
from util.constants import SchedulerKeys
from util.enums import Channel
from util.errors import NotFoundError, TrackerError, UnauthorizedError

logger = logging.getLogger(__name__)


class ProgressPoller:
    """
    Chunk progress for a job while it is processing.

    Flow:
    - Every PROGRESS_POLL_SECONDS read the progress endpoint and hand the
      snapshot to the sink.
    - A 404 (or an advisory terminal status in the payload) means the job left
      the active set between ticks: run one status re-check, then stop. The
      status endpoint decides what happened.
    """

    def __init__(
        self,
        job_id: str,
        *,
        client: DocumentApiClient,
        scheduler: Scheduler,
        guard: SequenceGuard,
        sink: PollSink,
        recheck_status: Callable[[], Awaitable[None]],
    ) -> None:
        self.job_id = job_id
        self._client = client
        self._scheduler = scheduler
        self._guard = guard
        self._sink = sink
        self._recheck_status = recheck_status
        self._active = False

    @property
    def key(self) -> str:
        return SchedulerKeys.progress(self.job_id)

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._guard.open(self.job_id, Channel.PROGRESS)
        self._scheduler.schedule(self.key, settings.PROGRESS_POLL_SECONDS, self.tick)
        logger.debug("poll.progress.start job=%s", self.job_id)

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._scheduler.cancel(self.key)
        self._guard.close(self.job_id, Channel.PROGRESS)
        logger.debug("poll.progress.stop job=%s", self.job_id)

    async def tick(self) -> None:
        if not self._active or not self._sink.ready():
            return
        seq = self._guard.issue(self.job_id, Channel.PROGRESS)
        try:
            read: ProgressSnapshot = await self._client.get_progress(self.job_id)
        except NotFoundError:
            if self._active:
                await self._resolve("not_found")
            return
        except UnauthorizedError as e:
            self._sink.report_error(self.job_id, e, retrying=False)
            return
        except TrackerError as e:
            if self._active:
                logger.info("poll.progress.retry job=%s kind=%s", self.job_id, e.kind)
                self._sink.report_error(self.job_id, e, retrying=True)
            return

        self._sink.apply_progress(self.job_id, seq, read)
        if self._active and read.status is not None and read.status.is_terminal:
            await self._resolve(f"advisory_{read.status}")

    async def _resolve(self, reason: str) -> None:
        logger.info("poll.progress.recheck job=%s reason=%s", self.job_id, reason)
        try:
            await self._recheck_status()
        finally:
            self.stop()
