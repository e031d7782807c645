"""Read-only access to scheduled jobs and their run history."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobgraph.graph.satisfaction import RunRecord, as_utc
from jobgraph.models.job import ScheduledJob
from jobgraph.models.run import TERMINAL_STATUSES, ExecutionStatus, JobExecution


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_ids(self) -> list[int]:
        result = await self.session.execute(select(ScheduledJob.id).order_by(ScheduledJob.id))
        return list(result.scalars().all())

    async def get_names(self, job_ids) -> dict[int, str]:
        job_ids = set(job_ids)
        if not job_ids:
            return {}
        result = await self.session.execute(
            select(ScheduledJob.id, ScheduledJob.name).where(ScheduledJob.id.in_(job_ids))
        )
        return {row.id: row.name for row in result}

    async def get_duration_estimates(self, job_ids) -> dict[int, float]:
        job_ids = set(job_ids)
        if not job_ids:
            return {}
        result = await self.session.execute(
            select(ScheduledJob.id, ScheduledJob.estimated_duration_minutes).where(
                ScheduledJob.id.in_(job_ids),
                ScheduledJob.estimated_duration_minutes.is_not(None),
            )
        )
        return {row.id: row.estimated_duration_minutes for row in result}

    async def list_finished_runs(self, job_ids, since: datetime) -> list[RunRecord]:
        """Terminal runs of ``job_ids`` completed at or after ``since``."""
        job_ids = set(job_ids)
        if not job_ids:
            return []
        result = await self.session.execute(
            select(JobExecution)
            .where(
                JobExecution.job_id.in_(job_ids),
                JobExecution.execution_status.in_([s.value for s in TERMINAL_STATUSES]),
                JobExecution.completed_at.is_not(None),
                JobExecution.completed_at >= since,
            )
            .order_by(JobExecution.completed_at.desc())
        )
        return [
            RunRecord(
                job_id=run.job_id,
                status=ExecutionStatus(run.execution_status),
                completed_at=as_utc(run.completed_at),
            )
            for run in result.scalars().all()
        ]
