"""Dependency service — validated mutations and snapshot-backed queries.

Writes take the process-wide write lock, re-read the active edge set from
the store, validate, persist and invalidate the snapshot before releasing
the lock. Reads go through the snapshot cache and never take the write lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from jobgraph.core.config import JobGraphSettings, get_settings
from jobgraph.core.errors import ConcurrentModificationConflict, DependencyValidationError, NotFound
from jobgraph.graph import analytics, resolver, satisfaction
from jobgraph.graph.snapshot import EdgeRecord, GraphSnapshot, GraphState, get_graph_state
from jobgraph.graph.validation import validate_edge
from jobgraph.models.dependency import DependencyType, JobDependency, WaitForStatus
from jobgraph.repositories.dependency_repo import DependencyRepository
from jobgraph.repositories.job_repo import JobRepository
from jobgraph.services.batch import BatchResult, run_batch

logger = logging.getLogger("jobgraph.service")

UPDATABLE_FIELDS = frozenset({
    "dependency_type",
    "wait_for_status",
    "max_wait_minutes",
    "lookback_days",
    "is_active",
})
IMMUTABLE_FIELDS = frozenset({"job_id", "depends_on_job_id"})


@dataclass
class QueryResult:
    """Query payload plus where the snapshot came from."""
    data: Any
    source: str
    pagination: dict | None = None


def paginate(items: list, limit: int, offset: int, max_limit: int = 100) -> tuple[list, dict]:
    limit = min(max(limit, 1), max_limit)
    offset = max(offset, 0)
    page = items[offset:offset + limit]
    return page, {
        "limit": limit,
        "offset": offset,
        "total": len(items),
        "hasMore": offset + len(page) < len(items),
    }


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise DependencyValidationError(f"Invalid value {value!r}, expected one of: {allowed}") from None


def _in_range(value: int | None, low: int | None, high: int | None) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


class DependencyService:
    def __init__(
        self,
        session: AsyncSession,
        state: GraphState | None = None,
        settings: JobGraphSettings | None = None,
    ):
        self.repo = DependencyRepository(session)
        self.jobs = JobRepository(session)
        self.state = state or get_graph_state()
        self.settings = settings or get_settings()

    # ─── Snapshot ───

    async def snapshot(self, skip_cache: bool = False) -> tuple[GraphSnapshot, str]:
        return await self.state.cache.get(self.repo.load_records, skip_cache=skip_cache)

    def _validate(self, candidate: EdgeRecord, active: list[EdgeRecord], action: str) -> None:
        try:
            validate_edge(candidate, active)
        except DependencyValidationError as e:
            logger.warning(f"Rejected {action} of {candidate.job_id} → {candidate.depends_on_job_id} ({e.kind}): {e}")
            raise

    def _paginate(self, items: list, limit: int | None, offset: int) -> tuple[list, dict]:
        if limit is None:
            limit = self.settings.default_page_size
        return paginate(items, limit, offset, self.settings.max_page_size)

    async def _get_row(self, dependency_id: int) -> JobDependency:
        dependency = await self.repo.get_by_id(dependency_id)
        if dependency is None:
            raise NotFound("JobDependency", dependency_id)
        return dependency

    # ─── Mutations ───

    async def create_edge(
        self,
        job_id: int,
        depends_on_job_id: int,
        dependency_type: DependencyType | str = DependencyType.BLOCKING,
        wait_for_status: WaitForStatus | str = WaitForStatus.SUCCESS,
        max_wait_minutes: int | None = None,
        lookback_days: int = 1,
        is_active: bool = True,
        actor: int | None = None,
    ) -> JobDependency:
        candidate = EdgeRecord(
            id=0,
            job_id=job_id,
            depends_on_job_id=depends_on_job_id,
            dependency_type=_coerce(DependencyType, dependency_type),
            wait_for_status=_coerce(WaitForStatus, wait_for_status),
            max_wait_minutes=max_wait_minutes,
            lookback_days=lookback_days,
            is_active=is_active,
        )
        async with self.state.write_lock:
            active = await self.repo.load_active_records()
            self._validate(candidate, active, "create")
            dependency = await self.repo.create(
                job_id=job_id,
                depends_on_job_id=depends_on_job_id,
                dependency_type=candidate.dependency_type.value,
                wait_for_status=candidate.wait_for_status.value,
                max_wait_minutes=max_wait_minutes,
                lookback_days=lookback_days,
                is_active=is_active,
                created_by=actor,
                updated_by=actor,
            )
            self.state.cache.invalidate("create")

        logger.info(f"Created dependency {dependency.id}: {job_id} → {depends_on_job_id} (by {actor})")
        return dependency

    async def update_edge(
        self,
        dependency_id: int,
        changes: dict[str, Any],
        actor: int | None = None,
        expected_version: int | None = None,
    ) -> JobDependency:
        """Apply a partial update. ``job_id``/``depends_on_job_id`` cannot change.

        ``None`` clears ``max_wait_minutes``; for every other field it means
        "leave unchanged".
        """
        changes = {k: v for k, v in changes.items() if v is not None or k == "max_wait_minutes"}
        immutable = IMMUTABLE_FIELDS & set(changes)
        if immutable:
            raise DependencyValidationError(f"Fields cannot be changed after creation: {', '.join(sorted(immutable))}")
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise DependencyValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        async with self.state.write_lock:
            dependency = await self._get_row(dependency_id)
            if expected_version is not None and expected_version != dependency.version:
                raise ConcurrentModificationConflict(dependency_id)

            current = EdgeRecord.from_row(dependency)
            merged = {
                "dependency_type": _coerce(DependencyType, changes.get("dependency_type", current.dependency_type)),
                "wait_for_status": _coerce(WaitForStatus, changes.get("wait_for_status", current.wait_for_status)),
                "max_wait_minutes": changes.get("max_wait_minutes", current.max_wait_minutes),
                "lookback_days": changes.get("lookback_days", current.lookback_days),
                "is_active": changes.get("is_active", current.is_active),
            }
            candidate = EdgeRecord(
                id=current.id,
                job_id=current.job_id,
                depends_on_job_id=current.depends_on_job_id,
                **merged,
            )
            active = await self.repo.load_active_records()
            self._validate(candidate, active, "update")

            merged["dependency_type"] = merged["dependency_type"].value
            merged["wait_for_status"] = merged["wait_for_status"].value
            dependency = await self.repo.update(dependency, updated_by=actor, **merged)
            self.state.cache.invalidate("update")

        logger.info(f"Updated dependency {dependency_id} (by {actor})")
        return dependency

    async def delete_edge(self, dependency_id: int) -> None:
        async with self.state.write_lock:
            dependency = await self._get_row(dependency_id)
            await self.repo.delete(dependency)
            self.state.cache.invalidate("delete")
        logger.info(f"Deleted dependency {dependency_id}")

    async def delete_all_for_job(self, job_id: int) -> int:
        async with self.state.write_lock:
            removed = await self.repo.delete_for_job(job_id)
            if removed:
                self.state.cache.invalidate("delete-all")
        logger.info(f"Deleted {removed} dependencies of job {job_id}")
        return removed

    async def _set_active(self, dependency_id: int, active: bool, actor: int | None) -> JobDependency:
        async with self.state.write_lock:
            dependency = await self._get_row(dependency_id)
            if dependency.is_active == active:
                return dependency

            if active:
                # Reactivation rejoins the active subgraph: full re-validation
                candidate = replace(EdgeRecord.from_row(dependency), is_active=True)
                self._validate(candidate, await self.repo.load_active_records(), "activate")

            dependency = await self.repo.update(dependency, is_active=active, updated_by=actor)
            self.state.cache.invalidate("activate" if active else "deactivate")

        logger.info(f"{'Activated' if active else 'Deactivated'} dependency {dependency_id} (by {actor})")
        return dependency

    async def activate_edge(self, dependency_id: int, actor: int | None = None) -> JobDependency:
        return await self._set_active(dependency_id, True, actor)

    async def deactivate_edge(self, dependency_id: int, actor: int | None = None) -> JobDependency:
        return await self._set_active(dependency_id, False, actor)

    async def batch_activate(self, ids: Iterable[int], actor: int | None = None) -> BatchResult:
        return await run_batch("activated", ids, lambda i: self.activate_edge(i, actor))

    async def batch_deactivate(self, ids: Iterable[int], actor: int | None = None) -> BatchResult:
        return await run_batch("deactivated", ids, lambda i: self.deactivate_edge(i, actor))

    # ─── Edge queries ───

    async def list_edges(
        self,
        limit: int | None = None,
        offset: int = 0,
        active_only: bool = True,
        skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        page, pagination = self._paginate(snapshot.edges_view(active_only), limit, offset)
        return QueryResult(data=page, source=source, pagination=pagination)

    async def search_edges(
        self,
        id: int | None = None,
        job_id: int | None = None,
        depends_on_job_id: int | None = None,
        dependency_type: DependencyType | str | None = None,
        wait_for_status: WaitForStatus | str | None = None,
        is_active: bool | None = None,
        lookback_days_min: int | None = None,
        lookback_days_max: int | None = None,
        max_wait_minutes_min: int | None = None,
        max_wait_minutes_max: int | None = None,
        limit: int | None = None,
        offset: int = 0,
        skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        dep_type = _coerce(DependencyType, dependency_type) if dependency_type is not None else None
        wait_for = _coerce(WaitForStatus, wait_for_status) if wait_for_status is not None else None

        matches = [
            e for e in snapshot.edges
            if (id is None or e.id == id)
            and (job_id is None or e.job_id == job_id)
            and (depends_on_job_id is None or e.depends_on_job_id == depends_on_job_id)
            and (dep_type is None or e.dependency_type is dep_type)
            and (wait_for is None or e.wait_for_status is wait_for)
            and (is_active is None or e.is_active == is_active)
            and _in_range(e.lookback_days, lookback_days_min, lookback_days_max)
            and _in_range(e.max_wait_minutes, max_wait_minutes_min, max_wait_minutes_max)
        ]
        page, pagination = self._paginate(matches, limit, offset)
        return QueryResult(data=page, source=source, pagination=pagination)

    async def get_edge(self, dependency_id: int, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        edge = snapshot.edge_by_id(dependency_id)
        if edge is None:
            raise NotFound("JobDependency", dependency_id)
        return QueryResult(data=edge, source=source)

    async def get_specific_edge(self, job_id: int, depends_on_job_id: int, skip_cache: bool = False) -> QueryResult:
        """The edge for an ordered pair, preferring the active one."""
        snapshot, source = await self.snapshot(skip_cache)
        pair = [
            e for e in snapshot.edges
            if e.job_id == job_id and e.depends_on_job_id == depends_on_job_id
        ]
        if not pair:
            raise NotFound("JobDependency", f"{job_id} → {depends_on_job_id}")
        edge = max(pair, key=lambda e: (e.is_active, e.id))
        return QueryResult(data=edge, source=source)

    async def dependencies_for_job(
        self, job_id: int, active_only: bool = True, limit: int | None = None, offset: int = 0, skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        page, pagination = self._paginate(snapshot.edges_for_job(job_id, active_only), limit, offset)
        return QueryResult(data=page, source=source, pagination=pagination)

    async def jobs_depending_on(
        self, job_id: int, active_only: bool = True, limit: int | None = None, offset: int = 0, skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        page, pagination = self._paginate(snapshot.edges_depending_on(job_id, active_only), limit, offset)
        return QueryResult(data=page, source=source, pagination=pagination)

    async def blocking_dependencies(
        self, job_id: int, limit: int | None = None, offset: int = 0, skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        blocking = [e for e in snapshot.edges_for_job(job_id, active_only=True) if e.is_blocking]
        page, pagination = self._paginate(blocking, limit, offset)
        return QueryResult(data=page, source=source, pagination=pagination)

    # ─── Graph traversal ───

    async def immediate_dependencies(self, job_id: int, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        return QueryResult(data=resolver.immediate_dependencies(snapshot.forward, job_id), source=source)

    async def all_dependents(self, job_id: int, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        return QueryResult(data=resolver.all_dependents(snapshot.reverse, job_id), source=source)

    async def _with_names(self, items: list[dict]) -> list[dict]:
        names = await self.jobs.get_names(item["job_id"] for item in items)
        for item in items:
            item["job_name"] = names.get(item["job_id"])
        return items

    async def chain(self, job_id: int, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        nodes = resolver.chain(snapshot.forward, job_id)
        items = [
            {"job_id": n.job_id, "level": n.depth, "depends_on": n.via}
            for n in nodes
        ]
        return QueryResult(data=await self._with_names(items), source=source)

    async def critical_path(self, job_id: int, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        ancestors = resolver.all_prerequisites(snapshot.forward, job_id) + [job_id]
        durations = await self.jobs.get_duration_estimates(ancestors)
        path = resolver.critical_path(snapshot.forward, job_id, durations or None)
        return QueryResult(data=await self._with_names([n.to_dict() for n in path]), source=source)

    async def dependency_graph(self, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        return QueryResult(data=await self._with_names(analytics.dependency_graph(snapshot)), source=source)

    # ─── Satisfaction ───

    async def _evaluate(
        self, snapshot: GraphSnapshot, job_id: int, now: datetime | None,
    ) -> list[satisfaction.EdgeEvaluation]:
        now = now or datetime.now(timezone.utc)
        edges = snapshot.edges_for_job(job_id, active_only=True)
        if not edges:
            return []
        since = min(satisfaction.window_start(now, e.lookback_days) for e in edges)
        runs = await self.jobs.list_finished_runs({e.depends_on_job_id for e in edges}, since)
        return satisfaction.evaluate_job(job_id, edges, runs, now)

    async def is_satisfied(self, job_id: int, now: datetime | None = None, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        evaluations = await self._evaluate(snapshot, job_id, now)
        return QueryResult(data=satisfaction.is_satisfied(evaluations), source=source)

    async def unsatisfied_dependencies(
        self, job_id: int, now: datetime | None = None, skip_cache: bool = False,
    ) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        evaluations = satisfaction.unsatisfied(await self._evaluate(snapshot, job_id, now))
        items = [e.to_dict() for e in evaluations]
        names = await self.jobs.get_names(e.depends_on_job_id for e in evaluations)
        for item in items:
            item["depends_on_job_name"] = names.get(item["depends_on_job_id"])
        return QueryResult(data=items, source=source)

    async def dependency_status(
        self, job_id: int, now: datetime | None = None, skip_cache: bool = False,
    ) -> QueryResult:
        """Per-edge diagnostics for a job, inactive edges included."""
        snapshot, source = await self.snapshot(skip_cache)
        evaluations = await self._evaluate(snapshot, job_id, now)
        by_id = {e.dependency_id: e for e in evaluations}
        all_edges = snapshot.edges_for_job(job_id, active_only=False)
        names = await self.jobs.get_names(e.depends_on_job_id for e in all_edges)

        items = []
        for edge in all_edges:
            evaluation = by_id.get(edge.id)
            if evaluation is not None:
                item = evaluation.to_dict()
            else:
                item = {
                    "dependency_id": edge.id,
                    "depends_on_job_id": edge.depends_on_job_id,
                    "required_status": edge.wait_for_status.value,
                    "current_status": None,
                    "status": "inactive",
                    "reason": None,
                    "dependency_type": edge.dependency_type.value,
                    "blocking": edge.is_blocking,
                }
            item["is_active"] = edge.is_active
            item["depends_on_job_name"] = names.get(edge.depends_on_job_id)
            items.append(item)

        summary = {
            "job_id": job_id,
            "satisfied": satisfaction.is_satisfied(evaluations),
            "satisfied_count": sum(1 for e in evaluations if e.satisfied),
            "unsatisfied_count": sum(1 for e in evaluations if not e.satisfied),
            "blocking_count": sum(1 for e in evaluations if e.blocking),
            "dependencies": items,
        }
        return QueryResult(data=summary, source=source)

    # ─── Analytics ───

    async def orphaned_jobs(self, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        orphans = analytics.orphaned_jobs(snapshot, await self.jobs.list_ids())
        items = [
            {"job_id": job_id, "has_dependencies": False, "has_dependents": False}
            for job_id in orphans
        ]
        return QueryResult(data=await self._with_names(items), source=source)

    async def most_depended_on(self, limit: int | None = None, skip_cache: bool = False) -> QueryResult:
        if limit is None:
            limit = self.settings.most_depended_default_limit
        limit = min(max(limit, 1), self.settings.max_page_size)
        snapshot, source = await self.snapshot(skip_cache)
        items = [
            {"job_id": job_id, "dependent_count": count}
            for job_id, count in analytics.most_depended_on(snapshot, limit)
        ]
        return QueryResult(data=await self._with_names(items), source=source)

    async def complex_dependencies(self, depth_threshold: int | None = None, skip_cache: bool = False) -> QueryResult:
        if depth_threshold is None:
            depth_threshold = self.settings.complex_chain_depth
        snapshot, source = await self.snapshot(skip_cache)
        return QueryResult(data=analytics.complex_dependencies(snapshot, depth_threshold), source=source)

    async def statistics(self, skip_cache: bool = False) -> QueryResult:
        snapshot, source = await self.snapshot(skip_cache)
        return QueryResult(data=analytics.statistics(snapshot, await self.jobs.list_ids()), source=source)

