# service/job_status_poller.py
import logging
from typing import Optional
from config.settings import settings
from core.scheduler import Scheduler
from core.sequencing import SequenceGuard
from model.job import Job, JobStatus
from service.document_api_client import DocumentApiClient
from service.poll_sink import PollSink
from util.constants import SchedulerKeys
from util.enums import Channel
from util.errors import NotFoundError, TrackerError, UnauthorizedError

logger = logging.getLogger(__name__)


class JobStatusPoller:
    """
    Repeating status reads for one job until a terminal status is seen or
    stop() is called. start() after stop() begins a fresh sequence.
    """

    def __init__(
        self,
        job_id: str,
        known_status: JobStatus,
        *,
        client: DocumentApiClient,
        scheduler: Scheduler,
        guard: SequenceGuard,
        sink: PollSink,
    ) -> None:
        self.job_id = job_id
        self._known = known_status
        self._client = client
        self._scheduler = scheduler
        self._guard = guard
        self._sink = sink
        self._active = False

    @property
    def key(self) -> str:
        return SchedulerKeys.status(self.job_id)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def known_status(self) -> JobStatus:
        return self._known

    @staticmethod
    def period_for(status: JobStatus) -> Optional[float]:
        if status.is_terminal:
            return None
        if status == JobStatus.processing:
            return settings.STATUS_POLL_ACTIVE_SECONDS
        return settings.STATUS_POLL_IDLE_SECONDS

    def start(self, *, immediate: bool = True) -> None:
        period = self.period_for(self._known)
        if period is None or self._active:
            return
        self._active = True
        self._guard.open(self.job_id, Channel.STATUS)
        self._scheduler.schedule(
            self.key, period, self.tick, delay=0 if immediate else None
        )
        logger.debug("poll.status.start job=%s period=%.1f", self.job_id, period)

    def observe(self, status: JobStatus) -> None:
        """Follow the reconciled status: new period, or stop once terminal."""
        self._known = status
        period = self.period_for(status)
        if period is None:
            self.stop()
        elif self._active:
            self._scheduler.set_interval(self.key, period)

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._scheduler.cancel(self.key)
        self._guard.close(self.job_id, Channel.STATUS)
        logger.debug("poll.status.stop job=%s", self.job_id)

    async def tick(self) -> None:
        if not self._active or not self._sink.ready():
            return
        seq = self._guard.issue(self.job_id, Channel.STATUS)
        try:
            read: Job = await self._client.get_status(self.job_id)
        except UnauthorizedError as e:
            self._sink.report_error(self.job_id, e, retrying=False)
            return
        except NotFoundError as e:
            if self._active:
                logger.warning("poll.status.unknown_job job=%s", self.job_id)
                self.stop()
                self._sink.report_error(self.job_id, e, retrying=False)
            return
        except TrackerError as e:
            if self._active:
                logger.info("poll.status.retry job=%s kind=%s", self.job_id, e.kind)
                self._sink.report_error(self.job_id, e, retrying=True)
            return

        self._sink.apply_status(self.job_id, seq, read)
        if read.status.is_terminal:
            self.stop()
