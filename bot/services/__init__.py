"""Bot services for scheduling and event intake."""

from .scheduler import JobScheduler
from .event_stream import EventStream

__all__ = [
    "JobScheduler",
    "EventStream",
]
