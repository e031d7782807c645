"""Async data access for dependency edges."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from jobgraph.core.errors import ConcurrentModificationConflict
from jobgraph.graph.snapshot import EdgeRecord
from jobgraph.models.dependency import JobDependency


class DependencyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> JobDependency:
        dependency = JobDependency(**kwargs)
        self.session.add(dependency)
        await self.session.commit()
        await self.session.refresh(dependency)
        return dependency

    async def get_by_id(self, id: int) -> JobDependency | None:
        result = await self.session.execute(
            select(JobDependency)
            .where(JobDependency.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[JobDependency]:
        result = await self.session.execute(
            select(JobDependency)
            .order_by(JobDependency.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def load_records(self) -> list[EdgeRecord]:
        """Every edge as an immutable record, for snapshot building."""
        return [EdgeRecord.from_row(row) for row in await self.list_all()]

    async def load_active_records(self) -> list[EdgeRecord]:
        result = await self.session.execute(
            select(JobDependency)
            .where(JobDependency.is_active.is_(True))
            .order_by(JobDependency.id)
            .execution_options(populate_existing=True)
        )
        return [EdgeRecord.from_row(row) for row in result.scalars().all()]

    async def update(self, dependency: JobDependency, **kwargs) -> JobDependency:
        # Rollback expires the instance, so keep the id for the error
        dependency_id = dependency.id
        for key, value in kwargs.items():
            setattr(dependency, key, value)
        try:
            await self.session.commit()
        except StaleDataError as e:
            await self.session.rollback()
            raise ConcurrentModificationConflict(dependency_id) from e
        await self.session.refresh(dependency)
        return dependency

    async def delete(self, dependency: JobDependency) -> None:
        await self.session.delete(dependency)
        await self.session.commit()

    async def delete_for_job(self, job_id: int) -> int:
        result = await self.session.execute(
            delete(JobDependency).where(JobDependency.job_id == job_id)
        )
        await self.session.commit()
        return result.rowcount
