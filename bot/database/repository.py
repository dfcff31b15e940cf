"""
Data access layer for relay persistence.

Provides the item state store the relay reads and writes, plus the queue of
scheduled jobs.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from .models import (
    Base,
    RelayState,
    ScheduledJob,
    JobStatus,
)


# State store field -> RelayState column
STATE_FIELDS = {
    "scheduled": "scheduled",
    "relayed": "relayed",
    "shouldRelay": "should_relay",
}

# Dialects whose INSERT supports ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Repository:
    """Async repository for database operations."""

    def __init__(self, database_url: str):
        """
        Initialize the repository.

        Args:
            database_url: SQLAlchemy async database URL
        """
        self.engine = create_async_engine(database_url, echo=False)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def init_db(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close the database connection."""
        await self.engine.dispose()

    # ==================== Item State ====================

    async def hget(self, key: str, field: str) -> Optional[str]:
        """Return "true" if the flag is set for the item, else None."""
        column = STATE_FIELDS.get(field)
        if column is None:
            return None

        async with self.async_session() as session:
            result = await session.execute(
                select(RelayState).where(RelayState.item_id == key)
            )
            state = result.scalar_one_or_none()
            if state is not None and getattr(state, column):
                return "true"
            return None

    async def hset(self, key: str, mapping: Dict[str, str]) -> None:
        """Set flags for an item, creating its row if needed. Unknown fields are ignored."""
        values = {
            STATE_FIELDS[field]: str(value).lower() == "true"
            for field, value in mapping.items()
            if field in STATE_FIELDS
        }
        insert = _UPSERT_INSERTS[self.engine.dialect.name]

        async with self.async_session() as session:
            # Row creation is idempotent across concurrent writers
            await session.execute(
                insert(RelayState)
                .values(item_id=key, scheduled=False, relayed=False, should_relay=False)
                .on_conflict_do_nothing(index_elements=["item_id"])
            )
            if values:
                await session.execute(
                    update(RelayState).where(RelayState.item_id == key).values(**values)
                )
            await session.commit()

    async def get_state(self, key: str) -> Optional[RelayState]:
        """Get the full state row of an item."""
        async with self.async_session() as session:
            result = await session.execute(
                select(RelayState).where(RelayState.item_id == key)
            )
            return result.scalar_one_or_none()

    # ==================== Scheduled Jobs ====================

    async def add_job(self, name: str, data: Dict[str, Any], run_at: datetime) -> ScheduledJob:
        """Persist a new pending job."""
        async with self.async_session() as session:
            job = ScheduledJob(
                job_id=str(uuid.uuid4()),
                name=name,
                data=json.dumps(data),
                run_at=_to_naive_utc(run_at),
                status=JobStatus.PENDING.value,
            )
            session.add(job)
            await session.commit()
            await session.refresh(job)
            return job

    async def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        """Get a job by its public id."""
        async with self.async_session() as session:
            result = await session.execute(
                select(ScheduledJob).where(ScheduledJob.job_id == job_id)
            )
            return result.scalar_one_or_none()

    async def get_due_jobs(self, now: datetime, limit: int = 20) -> List[ScheduledJob]:
        """Get pending jobs whose run_at has passed, oldest first."""
        async with self.async_session() as session:
            result = await session.execute(
                select(ScheduledJob)
                .where(
                    ScheduledJob.status == JobStatus.PENDING.value,
                    ScheduledJob.run_at <= _to_naive_utc(now),
                )
                .order_by(ScheduledJob.run_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def claim_job(self, job_id: str) -> bool:
        """Move a pending job to running. Returns False if another worker got it first."""
        async with self.async_session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(
                    ScheduledJob.job_id == job_id,
                    ScheduledJob.status == JobStatus.PENDING.value,
                )
                .values(status=JobStatus.RUNNING.value, started_at=datetime.utcnow())
            )
            await session.commit()
            return result.rowcount > 0

    async def finish_job(self, job_id: str, error_message: Optional[str] = None) -> None:
        """Mark a job completed, or failed when an error message is given."""
        status = JobStatus.FAILED if error_message else JobStatus.COMPLETED
        async with self.async_session() as session:
            await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.job_id == job_id)
                .values(
                    status=status.value,
                    error_message=error_message,
                    completed_at=datetime.utcnow(),
                )
            )
            await session.commit()

    async def count_pending_jobs(self, name: Optional[str] = None) -> int:
        """Count jobs still waiting to run."""
        async with self.async_session() as session:
            query = select(ScheduledJob).where(ScheduledJob.status == JobStatus.PENDING.value)
            if name:
                query = query.where(ScheduledJob.name == name)
            result = await session.execute(query)
            return len(result.scalars().all())

    async def reset_running_jobs(self) -> int:
        """Return jobs left running by a previous process to pending."""
        async with self.async_session() as session:
            result = await session.execute(
                update(ScheduledJob)
                .where(ScheduledJob.status == JobStatus.RUNNING.value)
                .values(status=JobStatus.PENDING.value, started_at=None)
            )
            await session.commit()
            return result.rowcount
