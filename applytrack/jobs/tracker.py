"""In-memory registry of background jobs."""
import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from applytrack.persistence.models import utcnow

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Kinds of background operation."""

    SEARCH = "search"
    IMPORT = "import"
    SYNC = "sync"
    ENRICHMENT = "enrichment"
    SPREADSHEET_IMPORT = "spreadsheet_import"


class JobStatus(str, Enum):
    """Lifecycle states of a background job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class BackgroundJob:
    """Status, progress and result of one background operation."""

    id: str
    type: JobType
    data: dict = field(default_factory=dict)
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    message: str = ""
    result: Any = None
    error: Optional[str] = None
    updates: list[dict] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "data": self.data,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "result": self.result,
            "error": self.error,
            "updates": [
                {"time": update["time"].isoformat(), "message": update["message"], "progress": update["progress"]}
                for update in self.updates
            ],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


JobListener = Callable[[BackgroundJob], None]

UPDATABLE_FIELDS = {"status", "progress", "message", "result", "error", "data", "started_at", "completed_at"}


class JobTracker:
    """Registry of background jobs keyed by id.

    Updates are synchronous; each job is only mutated by the task running it.
    """

    def __init__(self, retention_minutes: int = 60, cleanup_threshold: int = 100):
        """
        Initialize tracker.

        Args:
            retention_minutes: Age after which terminal jobs may be removed
            cleanup_threshold: Cleanup only runs above this many jobs
        """
        self.retention = timedelta(minutes=retention_minutes)
        self.cleanup_threshold = cleanup_threshold
        self._jobs: dict[str, BackgroundJob] = {}
        self._listeners: dict[Optional[str], list[JobListener]] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def _require(self, job_id: str) -> BackgroundJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")
        return job

    def create_job(self, job_type: JobType, data: Optional[dict] = None) -> str:
        """Register a queued job and return its id."""
        job_id = f"job_{uuid.uuid4().hex[:12]}"
        self._jobs[job_id] = BackgroundJob(id=job_id, type=JobType(job_type), data=dict(data or {}))
        logger.debug("Created %s job %s", job_type, job_id)
        return job_id

    def update_job(self, job_id: str, **fields) -> BackgroundJob:
        """
        Merge fields into a job and notify listeners.

        Args:
            job_id: Job to update
            **fields: Any of status, progress, message, result, error, data

        Returns:
            The updated job

        Raises:
            KeyError: If the job does not exist
            ValueError: If an unknown field is passed
        """
        job = self._require(job_id)
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        if "status" in fields:
            fields["status"] = JobStatus(fields["status"])
        if "progress" in fields:
            fields["progress"] = max(0, min(100, int(fields["progress"])))

        for name, value in fields.items():
            setattr(job, name, value)
        job.updated_at = utcnow()

        if fields.get("message"):
            job.updates.append({"time": job.updated_at, "message": fields["message"], "progress": job.progress})

        self._notify(job)
        return job

    def start_job(self, job_id: str, message: str = "Job started") -> BackgroundJob:
        return self.update_job(job_id, status=JobStatus.RUNNING, started_at=utcnow(), progress=5, message=message)

    def complete_job(self, job_id: str, result: Any = None, message: str = "Job completed successfully") -> BackgroundJob:
        return self.update_job(
            job_id, status=JobStatus.COMPLETED, completed_at=utcnow(), result=result, progress=100, message=message
        )

    def fail_job(self, job_id: str, error: Any, result: Any = None) -> BackgroundJob:
        """Mark a job failed, keeping any partial result."""
        text = str(error) or type(error).__name__
        fields = {"status": JobStatus.FAILED, "completed_at": utcnow(), "error": text, "message": f"Job failed: {text}"}
        if result is not None:
            fields["result"] = result
        return self.update_job(job_id, **fields)

    def get_job(self, job_id: str) -> Optional[BackgroundJob]:
        """Snapshot of a job, or None if unknown."""
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    def list_active(self) -> list[BackgroundJob]:
        """Snapshots of queued and running jobs, oldest first."""
        active = [job for job in self._jobs.values() if not job.status.is_terminal]
        return [copy.deepcopy(job) for job in sorted(active, key=lambda job: job.created_at)]

    def on_update(self, handler: JobListener, job_id: Optional[str] = None) -> None:
        """Register a listener for one job, or for all jobs when job_id is None."""
        self._listeners.setdefault(job_id, []).append(handler)

    def off_update(self, handler: JobListener, job_id: Optional[str] = None) -> None:
        handlers = self._listeners.get(job_id, [])
        if handler in handlers:
            handlers.remove(handler)

    def _notify(self, job: BackgroundJob) -> None:
        for handler in [*self._listeners.get(job.id, []), *self._listeners.get(None, [])]:
            try:
                handler(job)
            except Exception as e:
                logger.error("Error in job update listener for %s: %s", job.id, e)

    def cleanup_old_jobs(self, now: Optional[datetime] = None) -> int:
        """
        Remove terminal jobs older than the retention window.

        Only runs when more than ``cleanup_threshold`` jobs are registered.

        Returns:
            Number of jobs removed
        """
        if len(self._jobs) <= self.cleanup_threshold:
            return 0
        cutoff = (now or utcnow()) - self.retention
        stale = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status.is_terminal and (job.completed_at or job.updated_at) < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
            self._listeners.pop(job_id, None)
        if stale:
            logger.info("Cleaned up %d old jobs", len(stale))
        return len(stale)
