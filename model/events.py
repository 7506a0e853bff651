# model/events.py
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict
from model.job import Job, JobStatus, ProgressSnapshot, QueueStatistics
from util.enums import ErrorKind


class TrackerEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    jobId: Optional[str] = None


class StatusChanged(TrackerEvent):
    type: Literal["status_changed"] = "status_changed"
    jobId: str
    fromStatus: JobStatus
    toStatus: JobStatus


class JobCompleted(TrackerEvent):
    type: Literal["completed"] = "completed"
    jobId: str


class ProgressUpdated(TrackerEvent):
    type: Literal["progress"] = "progress"
    jobId: str
    snapshot: ProgressSnapshot


class QueueUpdated(TrackerEvent):
    type: Literal["queue"] = "queue"
    statistics: QueueStatistics
    jobs: list[Job]


class PollFailed(TrackerEvent):
    """`retrying` is True when the owning poller keeps its schedule."""

    type: Literal["error"] = "error"
    kind: ErrorKind
    message: str = ""
    retrying: bool = True


class SessionChanged(TrackerEvent):
    type: Literal["session"] = "session"
    authorized: bool
    reason: str = ""
