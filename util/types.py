# util/types.py
from typing import Awaitable, Callable, Literal, Optional, Union


# Flow: Narrow types for tracker events.
EventType = Literal[
    "status_changed",
    "completed",
    "progress",
    "queue",
    "error",
    "session",
]

TaskFn = Callable[[], Awaitable[None]]

# Handlers may be plain callables or coroutine functions.
EventHandler = Callable[..., Optional[Union[Awaitable[None], None]]]
