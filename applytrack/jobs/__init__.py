"""Background job tracking and task submission."""
from .runner import TaskRunner
from .tracker import BackgroundJob, JobStatus, JobTracker, JobType

__all__ = ["BackgroundJob", "JobStatus", "JobTracker", "JobType", "TaskRunner"]
