"""Task submission: run coroutines in the background, tracked as jobs."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from applytrack.jobs.tracker import JobTracker, JobType

logger = logging.getLogger(__name__)

# Receives the job id; returns the job result
JobFunc = Callable[[str], Awaitable[Any]]


class TaskRunner:
    """Submits coroutines as background tasks and records their outcome.

    ``submit`` returns the job id immediately; callers poll the tracker.
    """

    def __init__(self, tracker: JobTracker):
        self.tracker = tracker
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job_type: JobType, func: JobFunc, data: Optional[dict] = None) -> str:
        """
        Create a job and schedule ``func(job_id)`` on the running loop.

        Args:
            job_type: Kind of job
            func: Coroutine function doing the work; its return value is the result
            data: Job parameters recorded on the job

        Returns:
            Job id
        """
        loop = asyncio.get_running_loop()
        job_id = self.tracker.create_job(job_type, data)
        task = loop.create_task(self._run(job_id, func), name=job_id)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    async def _run(self, job_id: str, func: JobFunc) -> None:
        self.tracker.start_job(job_id)
        try:
            result = await func(job_id)
        except Exception as e:
            logger.error("Job %s failed: %s", job_id, e, exc_info=True)
            partial = self.tracker.get_job(job_id).result
            self.tracker.fail_job(job_id, e, result=partial)
            return
        self.tracker.complete_job(job_id, result)

    async def join(self) -> None:
        """Wait for every submitted task, including ones submitted while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
