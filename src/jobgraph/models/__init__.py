"""SQLAlchemy models."""

from jobgraph.core.database import Base
from jobgraph.models.dependency import DependencyType, JobDependency, WaitForStatus
from jobgraph.models.job import ScheduledJob
from jobgraph.models.run import ExecutionStatus, JobExecution

__all__ = [
    "Base",
    "DependencyType",
    "ExecutionStatus",
    "JobDependency",
    "JobExecution",
    "ScheduledJob",
    "WaitForStatus",
]
