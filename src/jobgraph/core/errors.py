"""Dependency engine exceptions.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer answers with. Validation errors must not be retried without changing
the input; ``ConcurrentModificationConflict`` is safe to retry after
re-reading the edge.
"""

from __future__ import annotations


class JobGraphError(Exception):
    """Base exception for all dependency engine errors."""

    kind = "error"
    status_code = 500


class DependencyValidationError(JobGraphError):
    """Raised when a candidate edge violates a structural invariant."""

    kind = "validation_error"
    status_code = 400


class InvalidSelfDependency(DependencyValidationError):
    kind = "invalid_self_dependency"

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job {job_id} cannot depend on itself")


class OutOfRangeParameter(DependencyValidationError):
    kind = "out_of_range_parameter"

    def __init__(self, field: str, value: int, low: int, high: int):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value} is outside the allowed range [{low}, {high}]")


class CycleDetected(DependencyValidationError):
    kind = "cycle_detected"
    status_code = 409

    def __init__(self, cycle: list[int]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join(str(j) for j in cycle)}")


class DuplicateEdge(DependencyValidationError):
    kind = "duplicate_edge"
    status_code = 409

    def __init__(self, job_id: int, depends_on_job_id: int, existing_id: int):
        self.job_id = job_id
        self.depends_on_job_id = depends_on_job_id
        self.existing_id = existing_id
        super().__init__(
            f"An active dependency {job_id} → {depends_on_job_id} already exists (id={existing_id})"
        )


class NotFound(JobGraphError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class ConcurrentModificationConflict(JobGraphError):
    """The edge changed underneath the caller; re-read and reapply."""

    kind = "concurrent_modification"
    status_code = 409

    def __init__(self, dependency_id: int):
        self.dependency_id = dependency_id
        super().__init__(f"Dependency {dependency_id} was modified concurrently")


class GraphCorruption(JobGraphError):
    """A traversal found a cycle the write path should have prevented."""

    kind = "graph_corruption"
    status_code = 500

    def __init__(self, cycle: list[int]):
        self.cycle = cycle
        super().__init__(f"Dependency graph is corrupted, cycle found: {' → '.join(str(j) for j in cycle)}")
