"""Pydantic schemas for job dependencies."""

from datetime import datetime

from pydantic import BaseModel, Field

from jobgraph.models.dependency import DependencyType, WaitForStatus


class DependencyCreate(BaseModel):
    job_id: int
    depends_on_job_id: int
    dependency_type: DependencyType = DependencyType.BLOCKING
    wait_for_status: WaitForStatus = WaitForStatus.SUCCESS
    max_wait_minutes: int | None = None
    lookback_days: int = 1
    is_active: bool = True
    user_id: int | None = None


class DependencyUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""
    dependency_type: DependencyType | None = None
    wait_for_status: WaitForStatus | None = None
    max_wait_minutes: int | None = None
    lookback_days: int | None = None
    is_active: bool | None = None
    user_id: int | None = None
    version: int | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"user_id", "version"})


class DependencyResponse(BaseModel):
    id: int
    job_id: int
    depends_on_job_id: int
    dependency_type: DependencyType
    wait_for_status: WaitForStatus
    max_wait_minutes: int | None
    lookback_days: int
    is_active: bool
    version: int
    created_at: datetime | None
    updated_at: datetime | None
    created_by: int | None
    updated_by: int | None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    hasMore: bool


class DependencyEnvelope(BaseModel):
    success: bool = True
    data: DependencyResponse
    source: str | None = None


class DependencyListResponse(BaseModel):
    success: bool = True
    data: list[DependencyResponse]
    pagination: Pagination | None = None
    source: str | None = None


class BatchRequest(BaseModel):
    dependency_ids: list[int] = Field(default_factory=list)


class BatchItemError(BaseModel):
    id: int
    error: str
    kind: str


class BatchData(BaseModel):
    activated: int | None = None
    deactivated: int | None = None
    errors: list[BatchItemError] = Field(default_factory=list)


class BatchResponse(BaseModel):
    success: bool = True
    data: BatchData


class SatisfiedData(BaseModel):
    satisfied: bool


class SatisfiedResponse(BaseModel):
    success: bool = True
    data: SatisfiedData
    source: str | None = None


class DependencyEvaluation(BaseModel):
    dependency_id: int
    depends_on_job_id: int
    depends_on_job_name: str | None = None
    required_status: WaitForStatus
    current_status: str | None = None
    status: str
    reason: str | None = None
    dependency_type: DependencyType
    blocking: bool
    is_active: bool = True


class EvaluationListResponse(BaseModel):
    success: bool = True
    data: list[DependencyEvaluation]
    total: int
    source: str | None = None


class DependencyStatusData(BaseModel):
    job_id: int
    satisfied: bool
    satisfied_count: int
    unsatisfied_count: int
    blocking_count: int
    dependencies: list[DependencyEvaluation]


class DependencyStatusResponse(BaseModel):
    success: bool = True
    data: DependencyStatusData
    source: str | None = None


class ChainItem(BaseModel):
    job_id: int
    job_name: str | None = None
    level: int
    depends_on: int | None = None
    estimated_duration_minutes: float | None = None


class ChainResponse(BaseModel):
    success: bool = True
    data: list[ChainItem]
    total: int
    source: str | None = None


class JobIdsData(BaseModel):
    jobIds: list[int]
    total: int


class JobIdsResponse(BaseModel):
    success: bool = True
    data: JobIdsData
    source: str | None = None


class GraphNode(BaseModel):
    job_id: int
    job_name: str | None = None
    dependencies: list[int]
    dependents: list[int]


class GraphResponse(BaseModel):
    success: bool = True
    data: list[GraphNode]
    total: int
    source: str | None = None


class MostDependedJob(BaseModel):
    job_id: int
    job_name: str | None = None
    dependent_count: int


class MostDependedResponse(BaseModel):
    success: bool = True
    data: list[MostDependedJob]
    total: int
    source: str | None = None


class OrphanedJob(BaseModel):
    job_id: int
    job_name: str | None = None
    has_dependencies: bool
    has_dependents: bool


class OrphanedJobsResponse(BaseModel):
    success: bool = True
    data: list[OrphanedJob]
    total: int
    source: str | None = None


class DependencyStatistics(BaseModel):
    total_dependencies: int
    active_dependencies: int
    inactive_dependencies: int
    blocking_dependencies: int
    optional_dependencies: int
    cross_day_dependencies: int
    conditional_dependencies: int
    jobs_with_dependencies: int
    jobs_with_no_dependencies: int
    average_dependencies_per_job: float
    max_dependencies_for_single_job: int


class StatisticsResponse(BaseModel):
    success: bool = True
    data: DependencyStatistics
    source: str | None = None


class RemovedData(BaseModel):
    removed: int


class DeleteAllResponse(BaseModel):
    success: bool = True
    data: RemovedData
