"""Job execution model (run history written by the execution subsystem)."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from jobgraph.core.database import Base


class ExecutionStatus(str, enum.Enum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.SUCCESS,
    ExecutionStatus.FAILURE,
    ExecutionStatus.ABORTED,
    ExecutionStatus.TIMEOUT,
    ExecutionStatus.CANCELLED,
})

FAILURE_STATUSES = frozenset({
    ExecutionStatus.FAILURE,
    ExecutionStatus.ABORTED,
    ExecutionStatus.TIMEOUT,
    ExecutionStatus.CANCELLED,
})


class JobExecution(Base):
    __tablename__ = "job_executions"
    __table_args__ = (
        Index("ix_job_executions_job_completed", "job_id", "completed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    execution_status: Mapped[str] = mapped_column(String(20), default=ExecutionStatus.PENDING.value)
    triggered_by: Mapped[str] = mapped_column(String(50), default="scheduler")
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
