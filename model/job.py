# model/job.py
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from util.functions import clamp_percent, chunks_per_minute, non_negative_int


class JobStatus(str, Enum):
    uploaded = "uploaded"
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    def __str__(self):
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        # completed/failed/cancelled share a rank: they are exclusive, not ordered
        return _RANKS[self]

    @classmethod
    def parse(cls, raw: object) -> "JobStatus":
        if isinstance(raw, cls):
            return raw
        return cls(str(raw).strip().lower())


TERMINAL_STATUSES = frozenset(
    {JobStatus.completed, JobStatus.failed, JobStatus.cancelled}
)

_RANKS = {
    JobStatus.uploaded: 0,
    JobStatus.pending: 1,
    JobStatus.processing: 2,
    JobStatus.completed: 3,
    JobStatus.failed: 3,
    JobStatus.cancelled: 3,
}


class Job(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "fileId", "jobId"))
    originalFilename: str = ""
    status: JobStatus
    originalSizeBytes: int = Field(
        default=0, validation_alias=AliasChoices("originalSizeBytes", "originalSize")
    )
    processedSizeBytes: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("processedSizeBytes", "processedSize"),
    )
    startedAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("startedAt", "processingStartedAt")
    )
    completedAt: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("completedAt", "processingCompletedAt"),
    )
    createdAt: Optional[datetime] = None
    errorMessage: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: object) -> JobStatus:
        return JobStatus.parse(v)

    @field_validator("originalFilename", mode="before")
    @classmethod
    def _filename(cls, v: object) -> str:
        return "" if v is None else str(v)

    @field_validator("originalSizeBytes", mode="before")
    @classmethod
    def _size(cls, v: object) -> int:
        return non_negative_int(v)

    @field_validator("processedSizeBytes", mode="before")
    @classmethod
    def _processed_size(cls, v: object) -> Optional[int]:
        return None if v is None else non_negative_int(v)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    jobId: str = Field(min_length=1, validation_alias=AliasChoices("jobId", "fileId", "id"))
    totalChunks: int = 0
    processedChunks: int = 0
    progressPercent: float = Field(
        default=0.0, validation_alias=AliasChoices("progressPercent", "progress")
    )
    startedAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("startedAt", "startTime")
    )
    # Advisory only: the status endpoint is authoritative
    status: Optional[JobStatus] = None
    estimatedRemainingSeconds: Optional[int] = None

    @field_validator("totalChunks", "processedChunks", mode="before")
    @classmethod
    def _count(cls, v: object) -> int:
        return non_negative_int(v)

    @field_validator("progressPercent", mode="before")
    @classmethod
    def _percent(cls, v: object) -> float:
        return clamp_percent(v)

    @field_validator("status", mode="before")
    @classmethod
    def _advisory_status(cls, v: object) -> Optional[JobStatus]:
        if v is None:
            return None
        try:
            return JobStatus.parse(v)
        except ValueError:
            return None

    @field_validator("estimatedRemainingSeconds", mode="before")
    @classmethod
    def _eta(cls, v: object) -> Optional[int]:
        return None if v is None else non_negative_int(v)

    def model_post_init(self, __context: object) -> None:
        if self.processedChunks > self.totalChunks:
            self.processedChunks = self.totalChunks

    def chunks_per_minute(self, now: Optional[datetime] = None) -> float:
        return chunks_per_minute(self.processedChunks, self.startedAt, now)


class QueueStatistics(BaseModel):
    pendingCount: int = 0
    processingCount: int = 0
    completedCount: int = 0
    failedCount: int = 0
    totalInQueue: int = 0

    @field_validator(
        "pendingCount",
        "processingCount",
        "completedCount",
        "failedCount",
        "totalInQueue",
        mode="before",
    )
    @classmethod
    def _count(cls, v: object) -> int:
        return non_negative_int(v)


class QueueSnapshot(BaseModel):
    queueStatistics: QueueStatistics = Field(default_factory=QueueStatistics)
    userFiles: list[Job] = Field(default_factory=list)

    @field_validator("queueStatistics", mode="before")
    @classmethod
    def _stats(cls, v: object) -> object:
        return {} if v is None else v

    @field_validator("userFiles", mode="before")
    @classmethod
    def _files(cls, v: object) -> object:
        return [] if v is None else v
