# core/sequencing.py
import itertools
from typing import Dict, Set, Tuple
from util.enums import Channel

_Key = Tuple[str, Channel]


class SequenceGuard:
    """
    Stale-response guard for the read-through cache.

    Flow:
    - open(job, channel) when a poller starts; close() when it stops.
    - issue() tags a request at send time with a strictly increasing number.
    - accept() admits a response only if its channel is still open and nothing
      issued later has already been applied; acceptance records the sequence.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._open: Set[_Key] = set()
        self._applied: Dict[_Key, int] = {}
        self._floor = 0

    def open(self, job_id: str, channel: Channel) -> None:
        self._open.add((job_id, channel))

    def close(self, job_id: str, channel: Channel) -> None:
        self._open.discard((job_id, channel))

    def close_job(self, job_id: str) -> None:
        for channel in Channel:
            self.close(job_id, channel)

    def is_open(self, job_id: str, channel: Channel) -> bool:
        return (job_id, channel) in self._open

    def issue(self, job_id: str, channel: Channel) -> int:
        return next(self._counter)

    def last_applied(self, job_id: str, channel: Channel) -> int:
        return self._applied.get((job_id, channel), 0)

    def accept(self, job_id: str, channel: Channel, seq: int) -> bool:
        key = (job_id, channel)
        if key not in self._open or seq <= self._floor:
            return False
        if seq <= self._applied.get(key, 0):
            return False
        self._applied[key] = seq
        return True

    def clear(self) -> None:
        # Anything issued before a clear stays stale afterwards
        self._floor = next(self._counter)
        self._open.clear()
        self._applied.clear()
