# service/poll_sink.py
from typing import Optional, Protocol
from model.job import Job, ProgressSnapshot, QueueSnapshot
from util.errors import TrackerError


class PollSink(Protocol):
    """What a poller hands its reads to. Pollers never touch cached state."""

    def ready(self) -> bool: ...

    def apply_status(self, job_id: str, seq: int, read: Job) -> bool: ...

    def apply_progress(self, job_id: str, seq: int, read: ProgressSnapshot) -> bool: ...

    def apply_queue(self, seq: int, read: QueueSnapshot) -> bool: ...

    def report_error(
        self, job_id: Optional[str], error: TrackerError, *, retrying: bool
    ) -> None: ...
