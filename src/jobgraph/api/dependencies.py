"""Job dependency API endpoints — edge CRUD, graph queries and analytics."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobgraph.core.database import get_session
from jobgraph.models.dependency import DependencyType, WaitForStatus
from jobgraph.schemas.dependency import (
    BatchRequest, BatchResponse, ChainResponse, DeleteAllResponse,
    DependencyCreate, DependencyEnvelope, DependencyListResponse, DependencyResponse,
    DependencyStatusResponse, DependencyUpdate, EvaluationListResponse,
    GraphResponse, JobIdsResponse, MostDependedResponse,
    OrphanedJobsResponse, SatisfiedResponse, StatisticsResponse,
)
from jobgraph.services.dependency_service import DependencyService, QueryResult

router = APIRouter(prefix="/job-dependencies", tags=["job-dependencies"])

Limit = Query(None, ge=1, le=100)
Offset = Query(0, ge=0)


def get_service(session: AsyncSession = Depends(get_session)) -> DependencyService:
    return DependencyService(session)


def _page(result: QueryResult) -> dict:
    return {"data": result.data, "pagination": result.pagination, "source": result.source}


def _listing(result: QueryResult) -> dict:
    return {"data": result.data, "total": len(result.data), "source": result.source}


# ─── Listing & search ───


@router.get("", response_model=DependencyListResponse)
async def list_dependencies(
    activeOnly: bool = True,
    limit: int | None = Limit,
    offset: int = Offset,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    """List dependency edges."""
    return _page(await service.list_edges(limit=limit, offset=offset, active_only=activeOnly, skip_cache=skipCache))


@router.get("/search", response_model=DependencyListResponse)
async def search_dependencies(
    id: int | None = None,
    job_id: int | None = None,
    depends_on_job_id: int | None = None,
    dependency_type: DependencyType | None = None,
    wait_for_status: WaitForStatus | None = None,
    is_active: bool | None = None,
    lookback_days_min: int | None = None,
    lookback_days_max: int | None = None,
    max_wait_minutes_min: int | None = None,
    max_wait_minutes_max: int | None = None,
    limit: int | None = Limit,
    offset: int = Offset,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    """Filter edges by any combination of fields and ranges."""
    result = await service.search_edges(
        id=id,
        job_id=job_id,
        depends_on_job_id=depends_on_job_id,
        dependency_type=dependency_type,
        wait_for_status=wait_for_status,
        is_active=is_active,
        lookback_days_min=lookback_days_min,
        lookback_days_max=lookback_days_max,
        max_wait_minutes_min=max_wait_minutes_min,
        max_wait_minutes_max=max_wait_minutes_max,
        limit=limit,
        offset=offset,
        skip_cache=skipCache,
    )
    return _page(result)


@router.get("/specific", response_model=DependencyEnvelope)
async def get_specific_dependency(
    job_id: int,
    depends_on_job_id: int,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    """Get the edge for an ordered (job, prerequisite) pair."""
    result = await service.get_specific_edge(job_id, depends_on_job_id, skip_cache=skipCache)
    return {"data": result.data, "source": result.source}


# ─── Analytics ───


@router.get("/graph", response_model=GraphResponse)
async def dependency_graph(skipCache: bool = False, service: DependencyService = Depends(get_service)):
    return _listing(await service.dependency_graph(skip_cache=skipCache))


@router.get("/orphaned", response_model=OrphanedJobsResponse)
async def orphaned_jobs(skipCache: bool = False, service: DependencyService = Depends(get_service)):
    """Jobs with no active prerequisites and no active dependents."""
    return _listing(await service.orphaned_jobs(skip_cache=skipCache))


@router.get("/most-depended", response_model=MostDependedResponse)
async def most_depended_on(
    limit: int | None = Query(None, ge=1, le=100),
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    return _listing(await service.most_depended_on(limit, skip_cache=skipCache))


@router.get("/complex", response_model=DependencyListResponse)
async def complex_dependencies(skipCache: bool = False, service: DependencyService = Depends(get_service)):
    """Cross-day and conditional edges, plus edges of jobs with deep chains."""
    result = await service.complex_dependencies(skip_cache=skipCache)
    return {"data": result.data, "source": result.source}


@router.get("/statistics", response_model=StatisticsResponse)
async def statistics(skipCache: bool = False, service: DependencyService = Depends(get_service)):
    result = await service.statistics(skip_cache=skipCache)
    return {"data": result.data, "source": result.source}


# ─── Per-job queries ───


@router.get("/job/{job_id}", response_model=DependencyListResponse)
async def dependencies_for_job(
    job_id: int,
    activeOnly: bool = True,
    limit: int | None = Limit,
    offset: int = Offset,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    """Edges where the job is the dependent."""
    return _page(await service.dependencies_for_job(
        job_id, active_only=activeOnly, limit=limit, offset=offset, skip_cache=skipCache,
    ))


@router.get("/depends-on/{job_id}", response_model=DependencyListResponse)
async def jobs_depending_on(
    job_id: int,
    activeOnly: bool = True,
    limit: int | None = Limit,
    offset: int = Offset,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    """Edges where the job is the prerequisite."""
    return _page(await service.jobs_depending_on(
        job_id, active_only=activeOnly, limit=limit, offset=offset, skip_cache=skipCache,
    ))


@router.get("/blocking/{job_id}", response_model=DependencyListResponse)
async def blocking_dependencies(
    job_id: int,
    limit: int | None = Limit,
    offset: int = Offset,
    skipCache: bool = False,
    service: DependencyService = Depends(get_service),
):
    return _page(await service.blocking_dependencies(job_id, limit=limit, offset=offset, skip_cache=skipCache))


@router.get("/immediate/{job_id}", response_model=JobIdsResponse)
async def immediate_dependencies(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    """First-level prerequisites only."""
    result = await service.immediate_dependencies(job_id, skip_cache=skipCache)
    return {"data": {"jobIds": result.data, "total": len(result.data)}, "source": result.source}


@router.get("/dependents/{job_id}", response_model=JobIdsResponse)
async def all_dependents(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    """Every job that waits on this one, directly or transitively."""
    result = await service.all_dependents(job_id, skip_cache=skipCache)
    return {"data": {"jobIds": result.data, "total": len(result.data)}, "source": result.source}


@router.get("/chain/{job_id}", response_model=ChainResponse)
async def dependency_chain(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    return _listing(await service.chain(job_id, skip_cache=skipCache))


@router.get("/critical-path/{job_id}", response_model=ChainResponse)
async def critical_path(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    return _listing(await service.critical_path(job_id, skip_cache=skipCache))


@router.get("/satisfied/{job_id}", response_model=SatisfiedResponse)
async def dependencies_satisfied(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    result = await service.is_satisfied(job_id, skip_cache=skipCache)
    return {"data": {"satisfied": result.data}, "source": result.source}


@router.get("/unsatisfied/{job_id}", response_model=EvaluationListResponse)
async def unsatisfied_dependencies(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    return _listing(await service.unsatisfied_dependencies(job_id, skip_cache=skipCache))


@router.get("/status/{job_id}", response_model=DependencyStatusResponse)
async def dependency_status(job_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    result = await service.dependency_status(job_id, skip_cache=skipCache)
    return {"data": result.data, "source": result.source}


@router.get("/{dependency_id}", response_model=DependencyEnvelope)
async def get_dependency(dependency_id: int, skipCache: bool = False, service: DependencyService = Depends(get_service)):
    result = await service.get_edge(dependency_id, skip_cache=skipCache)
    return {"data": result.data, "source": result.source}


# ─── Mutations ───


@router.post("", response_model=DependencyResponse, status_code=status.HTTP_201_CREATED)
async def create_dependency(data: DependencyCreate, service: DependencyService = Depends(get_service)):
    """Create an edge: ``job_id`` waits on ``depends_on_job_id``."""
    return await service.create_edge(
        job_id=data.job_id,
        depends_on_job_id=data.depends_on_job_id,
        dependency_type=data.dependency_type,
        wait_for_status=data.wait_for_status,
        max_wait_minutes=data.max_wait_minutes,
        lookback_days=data.lookback_days,
        is_active=data.is_active,
        actor=data.user_id,
    )


@router.post("/batch/activate", response_model=BatchResponse, response_model_exclude_none=True)
async def batch_activate(
    data: BatchRequest,
    user_id: int | None = None,
    service: DependencyService = Depends(get_service),
):
    result = await service.batch_activate(data.dependency_ids, actor=user_id)
    return {"data": result.to_dict()}


@router.post("/batch/deactivate", response_model=BatchResponse, response_model_exclude_none=True)
async def batch_deactivate(
    data: BatchRequest,
    user_id: int | None = None,
    service: DependencyService = Depends(get_service),
):
    result = await service.batch_deactivate(data.dependency_ids, actor=user_id)
    return {"data": result.to_dict()}


@router.put("/{dependency_id}", response_model=DependencyResponse)
async def update_dependency(
    dependency_id: int,
    data: DependencyUpdate,
    service: DependencyService = Depends(get_service),
):
    return await service.update_edge(
        dependency_id,
        data.changes(),
        actor=data.user_id,
        expected_version=data.version,
    )


@router.patch("/{dependency_id}/activate", response_model=DependencyResponse)
async def activate_dependency(
    dependency_id: int,
    user_id: int | None = None,
    service: DependencyService = Depends(get_service),
):
    return await service.activate_edge(dependency_id, actor=user_id)


@router.patch("/{dependency_id}/deactivate", response_model=DependencyResponse)
async def deactivate_dependency(
    dependency_id: int,
    user_id: int | None = None,
    service: DependencyService = Depends(get_service),
):
    return await service.deactivate_edge(dependency_id, actor=user_id)


@router.delete("/job/{job_id}/all", response_model=DeleteAllResponse)
async def delete_all_for_job(job_id: int, service: DependencyService = Depends(get_service)):
    removed = await service.delete_all_for_job(job_id)
    return {"data": {"removed": removed}}


@router.delete("/{dependency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dependency(dependency_id: int, service: DependencyService = Depends(get_service)):
    await service.delete_edge(dependency_id)
