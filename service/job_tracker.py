# service/job_tracker.py
import logging
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set
from core.event_bus import EventBus
from core.reconciliation import Reconciler, Reconciliation, merge_job_lists
from core.scheduler import Scheduler
from core.sequencing import SequenceGuard
from core.session import SessionGate
from model.events import (
    JobCompleted,
    PollFailed,
    QueueUpdated,
    SessionChanged,
    TrackerEvent,
)
from model.job import Job, JobStatus, ProgressSnapshot, QueueSnapshot, QueueStatistics
from service.document_api_client import DocumentApiClient
from service.job_status_poller import JobStatusPoller
from service.progress_poller import ProgressPoller
from service.queue_statistics_poller import QUEUE_SCOPE, QueueStatisticsPoller
from util.enums import Channel, ErrorKind
from util.errors import RejectedError, TrackerError, UnauthorizedError
from util.types import EventHandler

logger = logging.getLogger(__name__)


def _file_component(name: str) -> str:
    # Server-supplied names may carry directories; keep only the last part
    base = Path(name.replace("\\", "/")).name
    return "" if base in ("", ".", "..") else base


class JobTracker:
    """
    Client-side read-through cache of the user's jobs, kept fresh by pollers.

    Flow:
    - start() mounts the dashboard view: the queue poller lists jobs and every
      non-terminal job gets a status poller (plus a progress poller while
      processing).
    - Every read goes through the SequenceGuard, then the Reconciler; the
      resulting events go out on the EventBus after pollers are re-synced.
    - A terminal status detaches the job's pollers; a 401 anywhere
      deauthorizes the SessionGate, which stops everything and clears the cache.
    """

    def __init__(
        self,
        client: DocumentApiClient,
        gate: SessionGate,
        *,
        scheduler: Optional[Scheduler] = None,
        bus: Optional[EventBus] = None,
        guard: Optional[SequenceGuard] = None,
        reconciler: Optional[Reconciler] = None,
    ) -> None:
        self._client = client
        self._gate = gate
        self._scheduler = scheduler or Scheduler()
        self.bus = bus or EventBus()
        self._guard = guard or SequenceGuard()
        self._reconciler = reconciler or Reconciler()

        self._jobs: Dict[str, Job] = {}
        self._progress: Dict[str, ProgressSnapshot] = {}
        self._statistics = QueueStatistics()
        self._status_pollers: Dict[str, JobStatusPoller] = {}
        self._progress_pollers: Dict[str, ProgressPoller] = {}
        # Ids the status endpoint answered 404 for; never polled again this session
        self._unknown: Set[str] = set()
        self._mounted = False

        self._queue_poller = QueueStatisticsPoller(
            client=client, scheduler=self._scheduler, guard=self._guard, sink=self
        )
        gate.subscribe(self._on_session)
        self.bus.subscribe(self._on_event)

    # ---------------- Views ----------------

    @property
    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        return self._progress.get(job_id)

    @property
    def statistics(self) -> QueueStatistics:
        return self._statistics

    @property
    def queue_poller(self) -> QueueStatisticsPoller:
        return self._queue_poller

    @property
    def queue_error(self) -> Optional[TrackerError]:
        return self._queue_poller.last_error

    def tracked_ids(self) -> List[str]:
        """Jobs that still have at least one active poller."""
        ids = {k for k, p in self._status_pollers.items() if p.active}
        ids.update(k for k, p in self._progress_pollers.items() if p.active)
        return sorted(ids)

    def status_poller(self, job_id: str) -> Optional[JobStatusPoller]:
        poller = self._status_pollers.get(job_id)
        return poller if poller is not None and poller.active else None

    def progress_poller(self, job_id: str) -> Optional[ProgressPoller]:
        poller = self._progress_pollers.get(job_id)
        return poller if poller is not None and poller.active else None

    def subscribe(
        self, handler: EventHandler, job_id: Optional[str] = None
    ) -> Callable[[], None]:
        return self.bus.subscribe(handler, job_id)

    # ---------------- Lifecycle ----------------

    def start(self) -> bool:
        """Mount: begin aggregate polling if the session allows it."""
        self._mounted = True
        if not self._gate.check():
            logger.info("tracker.start.unauthorized")
            return False
        self._queue_poller.start()
        return True

    def stop(self) -> None:
        """Unmount: synchronously stop every timer this tracker owns."""
        self._mounted = False
        self._stop_pollers()
        logger.info("tracker.stopped")

    def track(self, job: Job) -> None:
        known = self._jobs.get(job.id)
        if known is None:
            self._reconciler.seed(job)
            self._jobs[job.id] = job
            known = job
        self._sync_pollers(known)

    def untrack(self, job_id: str) -> None:
        self._detach(job_id)
        self._unknown.discard(job_id)
        self._jobs.pop(job_id, None)
        self._progress.pop(job_id, None)
        self.bus.drop_job(job_id)

    # ---------------- User actions ----------------

    async def submit(self, path: Path) -> Job:
        """Upload a document and start tracking it as `uploaded`."""
        if not self._gate.check():
            raise UnauthorizedError("Login required")
        try:
            res = await self._client.format_document(path)
        except UnauthorizedError:
            self._gate.deauthorize("unauthorized")
            raise
        if not res.success or not res.fileId:
            raise RejectedError(res.error or res.message or "Upload refused")
        logger.info(
            "tracker.submitted job=%s file=%s queue_position=%s",
            res.fileId,
            path.name,
            res.queuePosition,
        )
        job = Job(
            id=res.fileId,
            originalFilename=path.name,
            status=JobStatus.uploaded,
            originalSizeBytes=path.stat().st_size,
        )
        self.track(job)
        return self._jobs[job.id]

    async def download(self, job_id: str, dest_dir: Path) -> Path:
        try:
            data = await self._client.download(job_id)
        except UnauthorizedError:
            self._gate.deauthorize("unauthorized")
            raise
        job = self._jobs.get(job_id)
        original = job.originalFilename if job else ""
        name = _file_component(original) or _file_component(job_id) or "document"
        dest = Path(dest_dir) / f"formatted-{name}"
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        logger.info("tracker.downloaded job=%s bytes=%d path=%s", job_id, len(data), dest)
        return dest

    # ---------------- PollSink ----------------

    def ready(self) -> bool:
        return self._gate.check()

    def apply_status(self, job_id: str, seq: int, read: Job) -> bool:
        if not self._guard.accept(job_id, Channel.STATUS, seq):
            logger.debug("tracker.stale channel=status job=%s seq=%d", job_id, seq)
            return False
        previous = self._jobs.get(job_id)
        if previous is None:
            return False
        result = self._reconciler.apply(
            previous, status_read=read, previous_progress=self._progress.get(job_id)
        )
        self._commit(result)
        return True

    def apply_progress(self, job_id: str, seq: int, read: ProgressSnapshot) -> bool:
        if not self._guard.accept(job_id, Channel.PROGRESS, seq):
            logger.debug("tracker.stale channel=progress job=%s seq=%d", job_id, seq)
            return False
        previous = self._jobs.get(job_id)
        if previous is None:
            return False
        result = self._reconciler.apply(
            previous, progress_read=read, previous_progress=self._progress.get(job_id)
        )
        self._commit(result)
        return True

    def apply_queue(self, seq: int, read: QueueSnapshot) -> bool:
        if not self._guard.accept(QUEUE_SCOPE, Channel.QUEUE, seq):
            logger.debug("tracker.stale channel=queue seq=%d", seq)
            return False
        merged = merge_job_lists(self._jobs, read.userFiles)
        events: List[TrackerEvent] = []
        for job in merged.values():
            previous = self._jobs.get(job.id)
            if previous is None:
                self._reconciler.seed(job)
            else:
                events.extend(self._reconciler.apply(previous, status_read=job).events)

        # The list may predate a job that is already being polled per-job
        for job_id, job in self._jobs.items():
            if job_id not in merged and self.status_poller(job_id) is not None:
                merged[job_id] = job
        for job_id in set(self._jobs) - set(merged):
            self._detach(job_id)
            self._progress.pop(job_id, None)
            self._unknown.discard(job_id)
            self.bus.drop_job(job_id)

        self._jobs = merged
        self._statistics = read.queueStatistics
        for job in merged.values():
            self._sync_pollers(job)

        self.bus.publish_all(events)
        self.bus.publish(
            QueueUpdated(statistics=self._statistics, jobs=list(merged.values()))
        )
        return True

    def report_error(
        self, job_id: Optional[str], error: TrackerError, *, retrying: bool
    ) -> None:
        if error.kind == ErrorKind.UNAUTHORIZED:
            self._gate.deauthorize("unauthorized")
            retrying = False
        elif error.kind == ErrorKind.NOT_FOUND and job_id is not None:
            self._unknown.add(job_id)
            self._detach(job_id)
            retrying = False
        self.bus.publish(
            PollFailed(
                jobId=job_id, kind=error.kind, message=error.message, retrying=retrying
            )
        )

    # ---------------- Internals ----------------

    def _commit(self, result: Reconciliation) -> None:
        job = result.job
        self._jobs[job.id] = job
        if result.progress is not None:
            self._progress[job.id] = result.progress
        self._sync_pollers(job)
        self.bus.publish_all(result.events)

    def _sync_pollers(self, job: Job) -> None:
        if job.is_terminal or job.id in self._unknown or not self._gate.authorized:
            self._detach(job.id)
            return

        status_poller = self._status_pollers.get(job.id)
        if status_poller is None or not status_poller.active:
            status_poller = JobStatusPoller(
                job.id,
                job.status,
                client=self._client,
                scheduler=self._scheduler,
                guard=self._guard,
                sink=self,
            )
            self._status_pollers[job.id] = status_poller
            status_poller.start()
        else:
            status_poller.observe(job.status)

        progress_poller = self._progress_pollers.get(job.id)
        if job.status == JobStatus.processing:
            if progress_poller is None or not progress_poller.active:
                progress_poller = ProgressPoller(
                    job.id,
                    client=self._client,
                    scheduler=self._scheduler,
                    guard=self._guard,
                    sink=self,
                    recheck_status=partial(self._recheck_status, job.id),
                )
                self._progress_pollers[job.id] = progress_poller
                progress_poller.start()
        elif progress_poller is not None:
            progress_poller.stop()
            del self._progress_pollers[job.id]

    async def _recheck_status(self, job_id: str) -> None:
        poller = self.status_poller(job_id)
        if poller is not None:
            await poller.tick()

    def _detach(self, job_id: str) -> None:
        status_poller = self._status_pollers.pop(job_id, None)
        if status_poller is not None:
            status_poller.stop()
        progress_poller = self._progress_pollers.pop(job_id, None)
        if progress_poller is not None:
            progress_poller.stop()

    def _stop_pollers(self) -> None:
        self._queue_poller.stop()
        for job_id in list(self._status_pollers) + list(self._progress_pollers):
            self._detach(job_id)
        self._scheduler.cancel_all()

    def _on_session(self, authorized: bool, reason: str) -> None:
        if authorized:
            if self._mounted:
                self._queue_poller.start()
        else:
            self._stop_pollers()
            self._guard.clear()
            for job_id in list(self._jobs):
                self.bus.drop_job(job_id)
            self._jobs.clear()
            self._progress.clear()
            self._statistics = QueueStatistics()
            self._unknown.clear()
        self.bus.publish(SessionChanged(authorized=authorized, reason=reason))

    def _on_event(self, event: TrackerEvent) -> None:
        if isinstance(event, JobCompleted):
            # The finished document shows up in the list with its final sizes
            self._queue_poller.refresh_soon()
