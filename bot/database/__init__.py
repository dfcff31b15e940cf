"""Database package for relay persistence."""

from .models import Base, RelayState, ScheduledJob, JobStatus
from .repository import Repository

__all__ = [
    "Base",
    "RelayState",
    "ScheduledJob",
    "JobStatus",
    "Repository",
]
