# core/reconciliation.py
from typing import Dict, Iterable, List, NamedTuple, Optional
from model.events import JobCompleted, ProgressUpdated, StatusChanged, TrackerEvent
from model.job import Job, JobStatus, ProgressSnapshot


class Reconciliation(NamedTuple):
    job: Job
    progress: Optional[ProgressSnapshot]
    events: List[TrackerEvent]


def advance(current: JobStatus, observed: JobStatus) -> JobStatus:
    """
    Merge rule shared by every signal source:
    - a terminal status is final (the first one observed sticks)
    - otherwise the later phase wins; cancellation may land from any pre-terminal phase
    """
    if current.is_terminal:
        return current
    if observed.rank >= current.rank:
        return observed
    return current


def _merge_progress(
    previous: Optional[ProgressSnapshot], read: ProgressSnapshot
) -> ProgressSnapshot:
    if previous is None or previous.jobId != read.jobId:
        return read
    if read.progressPercent >= previous.progressPercent:
        return read
    # A lagging read never moves the bar backwards
    return read.model_copy(update={"progressPercent": previous.progressPercent})


def reconcile(
    previous: Job,
    status_read: Optional[Job] = None,
    progress_read: Optional[ProgressSnapshot] = None,
    *,
    previous_progress: Optional[ProgressSnapshot] = None,
    last_terminal: Optional[JobStatus] = None,
) -> Reconciliation:
    """
    Pure merge of one job's cached view with fresh reads.

    - Server fields come from `status_read` (it replaces any optimistic local copy);
      the status itself goes through `advance` so it never regresses.
    - `StatusChanged` is emitted once per transition, `JobCompleted` only when
      `last_terminal` shows completion was not announced before.
    - `progress_read` only applies while the merged status is processing.
    """
    if status_read is not None and status_read.id != previous.id:
        raise ValueError(f"status read for {status_read.id} merged into {previous.id}")
    if progress_read is not None and progress_read.jobId != previous.id:
        raise ValueError(
            f"progress read for {progress_read.jobId} merged into {previous.id}"
        )

    events: List[TrackerEvent] = []
    job = previous
    if status_read is not None:
        job = status_read.model_copy(
            update={"status": advance(previous.status, status_read.status)}
        )

    if job.status != previous.status:
        events.append(
            StatusChanged(
                jobId=job.id, fromStatus=previous.status, toStatus=job.status
            )
        )
        if job.status == JobStatus.completed and last_terminal != JobStatus.completed:
            events.append(JobCompleted(jobId=job.id))

    progress = previous_progress
    if progress_read is not None and job.status == JobStatus.processing:
        merged = _merge_progress(previous_progress, progress_read)
        if merged != previous_progress:
            events.append(ProgressUpdated(jobId=job.id, snapshot=merged))
        progress = merged

    return Reconciliation(job=job, progress=progress, events=events)


def merge_job_lists(
    tracked: Dict[str, Job], incoming: Iterable[Job]
) -> Dict[str, Job]:
    """
    Wholesale replacement of the tracked list by an aggregate read, except that
    a job already observed further along keeps its more advanced status.
    """
    merged: Dict[str, Job] = {}
    for job in incoming:
        known = tracked.get(job.id)
        if known is not None:
            status = advance(known.status, job.status)
            if status != job.status:
                job = job.model_copy(update={"status": status})
        merged[job.id] = job
    return merged


class Reconciler:
    """
    Holds the one piece of memory reconciliation needs across the job's whole
    lifetime: the last terminal status announced per job id.
    """

    def __init__(self) -> None:
        self._last_terminal: Dict[str, JobStatus] = {}

    def last_terminal(self, job_id: str) -> Optional[JobStatus]:
        return self._last_terminal.get(job_id)

    def seed(self, job: Job) -> None:
        # A job first seen already terminal is not a transition
        if job.is_terminal and job.id not in self._last_terminal:
            self._last_terminal[job.id] = job.status

    def apply(
        self,
        previous: Job,
        status_read: Optional[Job] = None,
        progress_read: Optional[ProgressSnapshot] = None,
        *,
        previous_progress: Optional[ProgressSnapshot] = None,
    ) -> Reconciliation:
        result = reconcile(
            previous,
            status_read,
            progress_read,
            previous_progress=previous_progress,
            last_terminal=self._last_terminal.get(previous.id),
        )
        if result.job.is_terminal:
            self._last_terminal.setdefault(result.job.id, result.job.status)
        return result
