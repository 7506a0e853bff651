import pytest

from core.reconciliation import Reconciler, advance, merge_job_lists, reconcile
from model.events import JobCompleted, ProgressUpdated, StatusChanged
from model.job import Job, JobStatus, ProgressSnapshot


def make_job(status, job_id="f1", **extra) -> Job:
    return Job(id=job_id, originalFilename="thesis.docx", status=status, **extra)


def make_progress(processed, total=10, percent=None, job_id="f1") -> ProgressSnapshot:
    if percent is None:
        percent = processed / total * 100 if total else 0
    return ProgressSnapshot(
        jobId=job_id, processedChunks=processed, totalChunks=total, progressPercent=percent
    )


@pytest.mark.parametrize(
    "current, observed, expected",
    [
        (JobStatus.uploaded, JobStatus.pending, JobStatus.pending),
        (JobStatus.pending, JobStatus.processing, JobStatus.processing),
        (JobStatus.processing, JobStatus.pending, JobStatus.processing),
        (JobStatus.processing, JobStatus.uploaded, JobStatus.processing),
        (JobStatus.uploaded, JobStatus.cancelled, JobStatus.cancelled),
        (JobStatus.pending, JobStatus.failed, JobStatus.failed),
        (JobStatus.completed, JobStatus.processing, JobStatus.completed),
        (JobStatus.completed, JobStatus.failed, JobStatus.completed),
        (JobStatus.cancelled, JobStatus.completed, JobStatus.cancelled),
    ],
)
def test_advance_never_regresses(current, observed, expected):
    assert advance(current, observed) == expected


def test_same_status_emits_nothing():
    previous = make_job(JobStatus.pending)
    result = reconcile(previous, status_read=make_job(JobStatus.pending))
    assert result.events == []
    assert result.job.status == JobStatus.pending


def test_transition_emits_status_changed_once():
    previous = make_job(JobStatus.pending)
    first = reconcile(previous, status_read=make_job(JobStatus.processing))
    assert first.events == [
        StatusChanged(
            jobId="f1", fromStatus=JobStatus.pending, toStatus=JobStatus.processing
        )
    ]
    again = reconcile(first.job, status_read=make_job(JobStatus.processing))
    assert again.events == []


def test_completion_emits_completed_after_status_changed():
    result = reconcile(
        make_job(JobStatus.processing), status_read=make_job(JobStatus.completed)
    )
    assert [e.type for e in result.events] == ["status_changed", "completed"]
    assert result.events[1] == JobCompleted(jobId="f1")


def test_completed_suppressed_when_already_announced():
    result = reconcile(
        make_job(JobStatus.processing),
        status_read=make_job(JobStatus.completed),
        last_terminal=JobStatus.completed,
    )
    assert [e.type for e in result.events] == ["status_changed"]


def test_failed_does_not_emit_completed():
    result = reconcile(
        make_job(JobStatus.processing),
        status_read=make_job(JobStatus.failed, errorMessage="bad docx"),
    )
    assert [e.type for e in result.events] == ["status_changed"]
    assert result.job.errorMessage == "bad docx"


def test_status_read_replaces_server_fields_but_not_status():
    previous = make_job(JobStatus.processing, originalSizeBytes=1)
    stale = make_job(JobStatus.pending, originalSizeBytes=4096)
    result = reconcile(previous, status_read=stale)
    assert result.job.status == JobStatus.processing
    assert result.job.originalSizeBytes == 4096
    assert result.events == []


def test_reconcile_does_not_mutate_inputs():
    previous = make_job(JobStatus.pending)
    read = make_job(JobStatus.processing)
    reconcile(previous, status_read=read)
    assert previous.status == JobStatus.pending
    assert read.status == JobStatus.processing


def test_mismatched_ids_rejected():
    with pytest.raises(ValueError):
        reconcile(make_job(JobStatus.pending), status_read=make_job(JobStatus.pending, "f2"))
    with pytest.raises(ValueError):
        reconcile(make_job(JobStatus.processing), progress_read=make_progress(1, job_id="f2"))


def test_progress_applies_only_while_processing():
    pending = reconcile(make_job(JobStatus.pending), progress_read=make_progress(3))
    assert pending.progress is None
    assert pending.events == []

    processing = reconcile(make_job(JobStatus.processing), progress_read=make_progress(3))
    assert processing.progress.processedChunks == 3
    assert processing.events == [ProgressUpdated(jobId="f1", snapshot=processing.progress)]


def test_progress_percent_never_decreases():
    previous = make_progress(5, percent=50)
    result = reconcile(
        make_job(JobStatus.processing),
        progress_read=make_progress(4, percent=40),
        previous_progress=previous,
    )
    assert result.progress.progressPercent == 50
    assert result.progress.processedChunks == 4


def test_identical_progress_is_quiet():
    snapshot = make_progress(5)
    result = reconcile(
        make_job(JobStatus.processing),
        progress_read=make_progress(5),
        previous_progress=snapshot,
    )
    assert result.events == []


def test_status_and_progress_in_one_merge():
    result = reconcile(
        make_job(JobStatus.pending),
        status_read=make_job(JobStatus.processing),
        progress_read=make_progress(2),
    )
    assert [e.type for e in result.events] == ["status_changed", "progress"]


def test_progress_ignored_once_status_read_is_terminal():
    result = reconcile(
        make_job(JobStatus.processing),
        status_read=make_job(JobStatus.completed),
        progress_read=make_progress(9),
    )
    assert result.progress is None
    assert "progress" not in [e.type for e in result.events]


def test_merge_job_lists_keeps_more_advanced_status():
    tracked = {"f1": make_job(JobStatus.processing)}
    incoming = [make_job(JobStatus.pending), make_job(JobStatus.uploaded, "f2")]
    merged = merge_job_lists(tracked, incoming)
    assert merged["f1"].status == JobStatus.processing
    assert merged["f2"].status == JobStatus.uploaded


def test_merge_job_lists_replaces_wholesale():
    tracked = {"gone": make_job(JobStatus.pending, "gone")}
    merged = merge_job_lists(tracked, [make_job(JobStatus.pending)])
    assert list(merged) == ["f1"]


def test_merge_job_lists_accepts_later_phase():
    tracked = {"f1": make_job(JobStatus.pending)}
    merged = merge_job_lists(tracked, [make_job(JobStatus.completed)])
    assert merged["f1"].status == JobStatus.completed


def test_reconciler_announces_completion_once():
    reconciler = Reconciler()
    processing = make_job(JobStatus.processing)

    first = reconciler.apply(processing, status_read=make_job(JobStatus.completed))
    # A second observer still holding the pre-completion view
    second = reconciler.apply(processing, status_read=make_job(JobStatus.completed))

    completed = [e for e in first.events + second.events if isinstance(e, JobCompleted)]
    assert len(completed) == 1
    assert reconciler.last_terminal("f1") == JobStatus.completed


def test_reconciler_seed_treats_initial_terminal_as_known():
    reconciler = Reconciler()
    reconciler.seed(make_job(JobStatus.completed))
    result = reconciler.apply(
        make_job(JobStatus.processing), status_read=make_job(JobStatus.completed)
    )
    assert not any(isinstance(e, JobCompleted) for e in result.events)


def test_reconciler_seed_ignores_live_jobs():
    reconciler = Reconciler()
    reconciler.seed(make_job(JobStatus.pending))
    assert reconciler.last_terminal("f1") is None
