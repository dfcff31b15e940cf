"""
SQLAlchemy ORM models for relay persistence.

Tables:
- relay_state: per-item relay flags (scheduled / relayed / shouldRelay)
- scheduled_jobs: deferred relays and front page checks waiting to run
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class JobStatus(str, Enum):
    """Status of a scheduled job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RelayState(Base):
    """Relay flags of one post or comment."""
    __tablename__ = "relay_state"

    item_id = Column(String(32), primary_key=True)
    scheduled = Column(Boolean, default=False, nullable=False)
    relayed = Column(Boolean, default=False, nullable=False)
    should_relay = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<RelayState(item_id={self.item_id}, scheduled={self.scheduled}, "
            f"relayed={self.relayed})>"
        )


class ScheduledJob(Base):
    """A named job with a JSON payload, due at run_at (naive UTC)."""
    __tablename__ = "scheduled_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), unique=True, nullable=False, index=True)
    name = Column(String(64), nullable=False)
    data = Column(Text, nullable=False, default="{}")  # JSON
    run_at = Column(DateTime, nullable=False)

    status = Column(String(20), default=JobStatus.PENDING.value, nullable=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_scheduled_jobs_due", "status", "run_at"),
    )

    def __repr__(self) -> str:
        return f"<ScheduledJob(job_id={self.job_id}, name={self.name}, status={self.status})>"
