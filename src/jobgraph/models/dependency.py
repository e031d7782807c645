"""Job dependency model — one directed edge of the job graph."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from jobgraph.core.database import Base


class DependencyType(str, enum.Enum):
    BLOCKING = "blocking"
    OPTIONAL = "optional"
    CROSS_DAY = "cross_day"
    CONDITIONAL = "conditional"

    @property
    def is_blocking(self) -> bool:
        """Blocking-class types can keep a job from being ready."""
        return self is not DependencyType.OPTIONAL


class WaitForStatus(str, enum.Enum):
    ANY = "any"
    SUCCESS = "success"
    COMPLETED = "completed"
    FAILURE = "failure"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobDependency(Base):
    """Defines an edge in the job graph: ``job_id`` waits on ``depends_on_job_id``."""
    __tablename__ = "job_dependencies"
    __table_args__ = (
        CheckConstraint("job_id <> depends_on_job_id", name="ck_job_dependencies_not_self"),
        CheckConstraint("lookback_days BETWEEN 0 AND 30", name="ck_job_dependencies_lookback"),
        CheckConstraint(
            "max_wait_minutes IS NULL OR max_wait_minutes BETWEEN 0 AND 1440",
            name="ck_job_dependencies_max_wait",
        ),
        Index("ix_job_dependencies_pair", "job_id", "depends_on_job_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    depends_on_job_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    dependency_type: Mapped[str] = mapped_column(String(20), default=DependencyType.BLOCKING.value)
    wait_for_status: Mapped[str] = mapped_column(String(20), default=WaitForStatus.SUCCESS.value)
    max_wait_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lookback_days: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Optimistic locking: UPDATEs are guarded by the version they read
    __mapper_args__ = {"version_id_col": version}
