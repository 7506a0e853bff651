# util/functions.py
import math
from datetime import datetime
from typing import Optional


def non_negative_int(value: object) -> int:
    """
    - Coerce a server-supplied count to an int >= 0.
    - None, NaN, infinities, negatives and junk all become 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


def clamp_percent(value: object) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(100.0, max(0.0, number))


def chunks_per_minute(
    processed_chunks: int,
    started_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> float:
    """
    Throughput since `started_at`. Zero processed chunks, a missing start time
    or a non-positive elapsed time all read as zero throughput.
    """
    if processed_chunks <= 0 or started_at is None:
        return 0.0
    now = now or datetime.now(started_at.tzinfo)
    elapsed = (now - started_at).total_seconds()
    if elapsed <= 0:
        return 0.0
    return processed_chunks / elapsed * 60


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    return f"{round(seconds / 3600)}h"


def progress_bar(percent: float, width: int = 30) -> str:
    filled = int(round(clamp_percent(percent) / 100 * width))
    return "[" + "#" * filled + "-" * (width - filled) + "]"
