from core.sequencing import SequenceGuard
from util.enums import Channel


def test_issued_numbers_increase():
    guard = SequenceGuard()
    a = guard.issue("f1", Channel.STATUS)
    b = guard.issue("f1", Channel.STATUS)
    c = guard.issue("f2", Channel.PROGRESS)
    assert a < b < c


def test_older_response_rejected_after_newer_applied():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    r1 = guard.issue("f1", Channel.STATUS)
    r2 = guard.issue("f1", Channel.STATUS)
    assert guard.accept("f1", Channel.STATUS, r2) is True
    assert guard.accept("f1", Channel.STATUS, r1) is False
    assert guard.last_applied("f1", Channel.STATUS) == r2


def test_in_order_responses_accepted():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    r1 = guard.issue("f1", Channel.STATUS)
    r2 = guard.issue("f1", Channel.STATUS)
    assert guard.accept("f1", Channel.STATUS, r1)
    assert guard.accept("f1", Channel.STATUS, r2)


def test_duplicate_response_rejected():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    r1 = guard.issue("f1", Channel.STATUS)
    assert guard.accept("f1", Channel.STATUS, r1)
    assert not guard.accept("f1", Channel.STATUS, r1)


def test_closed_channel_rejects_everything():
    guard = SequenceGuard()
    guard.open("f1", Channel.PROGRESS)
    seq = guard.issue("f1", Channel.PROGRESS)
    guard.close("f1", Channel.PROGRESS)
    assert not guard.accept("f1", Channel.PROGRESS, seq)


def test_channels_are_independent():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    guard.open("f1", Channel.PROGRESS)
    progress_seq = guard.issue("f1", Channel.PROGRESS)
    status_seq = guard.issue("f1", Channel.STATUS)
    assert guard.accept("f1", Channel.STATUS, status_seq)
    assert guard.accept("f1", Channel.PROGRESS, progress_seq)


def test_close_job_closes_all_channels():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    guard.open("f1", Channel.PROGRESS)
    guard.close_job("f1")
    assert not guard.is_open("f1", Channel.STATUS)
    assert not guard.is_open("f1", Channel.PROGRESS)


def test_requests_issued_before_clear_stay_stale():
    guard = SequenceGuard()
    guard.open("f1", Channel.STATUS)
    old = guard.issue("f1", Channel.STATUS)
    guard.clear()
    guard.open("f1", Channel.STATUS)
    assert not guard.accept("f1", Channel.STATUS, old)
    assert guard.accept("f1", Channel.STATUS, guard.issue("f1", Channel.STATUS))
