import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..database.repository import Repository
from ..database.models import ScheduledJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class JobScheduler:
    """Persists named jobs and runs them once they are due."""

    def __init__(self, repository: Repository, poll_interval: float = 5.0, batch_size: int = 20):
        self.repo = repository
        self.poll_interval = poll_interval
        self.batch_size = batch_size

        self._handlers: Dict[str, JobHandler] = {}
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    def register_handler(self, name: str, handler: JobHandler) -> None:
        """Register the coroutine function that runs jobs with this name."""
        self._handlers[name] = handler
        logger.debug(f"Registered job handler: {name}")

    async def run_job(self, name: str, data: Dict[str, Any], run_at: datetime) -> str:
        """Persist a job to run at run_at. Returns its job id."""
        if name not in self._handlers:
            raise ValueError(f"No handler registered for job '{name}'")

        job = await self.repo.add_job(name, data, run_at)
        logger.info(f"Registered job {job.job_id} ({name}) to run at {run_at.isoformat()}")
        return job.job_id

    async def run_due_jobs(self, now: Optional[datetime] = None) -> int:
        """
        Run every pending job whose time has come.

        Returns:
            Number of jobs that were run
        """
        if now is None:
            now = datetime.now(timezone.utc)

        jobs = await self.repo.get_due_jobs(now, self.batch_size)
        ran = 0
        for job in jobs:
            if not await self.repo.claim_job(job.job_id):
                continue
            await self._execute(job)
            ran += 1
        return ran

    async def _execute(self, job: ScheduledJob) -> None:
        handler = self._handlers.get(job.name)
        if handler is None:
            logger.error(f"No handler for job {job.job_id} ({job.name})")
            await self.repo.finish_job(job.job_id, error_message=f"Unknown job name: {job.name}")
            return

        try:
            data = json.loads(job.data or "{}")
            await handler(data)
        except Exception as e:
            logger.exception(f"Job {job.job_id} ({job.name}) failed: {e}")
            await self.repo.finish_job(job.job_id, error_message=str(e) or type(e).__name__)
            return

        await self.repo.finish_job(job.job_id)
        logger.debug(f"Job {job.job_id} ({job.name}) completed")

    async def start(self) -> None:
        """Start polling for due jobs in the background."""
        if self._task is not None:
            return
        reset = await self.repo.reset_running_jobs()
        if reset:
            logger.info(f"Re-queued {reset} interrupted job(s)")
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"JobScheduler started (poll interval {self.poll_interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop and wait for it to exit."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("JobScheduler stopped")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_due_jobs()
            except Exception as e:
                logger.error(f"Error polling scheduled jobs: {e}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
