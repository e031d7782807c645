"""Tests for the dependency service against a real database."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from jobgraph.core import database
from jobgraph.core.database import create_tables, init_engine
from jobgraph.core.errors import (
    ConcurrentModificationConflict,
    CycleDetected,
    DependencyValidationError,
    DuplicateEdge,
    InvalidSelfDependency,
    NotFound,
    OutOfRangeParameter,
)
from jobgraph.graph.snapshot import SOURCE_CACHE, SOURCE_DATABASE, SOURCE_FORCED
from jobgraph.repositories.dependency_repo import DependencyRepository
from jobgraph.services.dependency_service import DependencyService, paginate
from tests.conftest import add_run, seed_jobs


@pytest.fixture
def service(db_session):
    return DependencyService(db_session)


# ─── Mutations ───

class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults(self, service):
        dep = await service.create_edge(5, 3, actor=42)
        assert dep.id is not None
        assert dep.dependency_type == "blocking"
        assert dep.wait_for_status == "success"
        assert dep.lookback_days == 1
        assert dep.max_wait_minutes is None
        assert dep.is_active is True
        assert dep.version == 1
        assert dep.created_by == 42
        assert dep.updated_by == 42

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, service):
        """Job 5 waits on job 3, so job 3 cannot wait on job 5."""
        await service.create_edge(5, 3, lookback_days=2)
        with pytest.raises(CycleDetected) as exc:
            await service.create_edge(3, 5)
        assert exc.value.cycle == [3, 5, 3]

        result = await service.list_edges()
        assert len(result.data) == 1

    @pytest.mark.asyncio
    async def test_self_dependency_rejected(self, service):
        with pytest.raises(InvalidSelfDependency):
            await service.create_edge(4, 4)

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, service):
        first = await service.create_edge(5, 3)
        with pytest.raises(DuplicateEdge) as exc:
            await service.create_edge(5, 3, dependency_type="optional")
        assert exc.value.existing_id == first.id

    @pytest.mark.asyncio
    async def test_inactive_duplicate_allowed(self, service):
        await service.create_edge(5, 3)
        dep = await service.create_edge(5, 3, is_active=False)
        assert dep.is_active is False

    @pytest.mark.asyncio
    async def test_range_rejected(self, service):
        with pytest.raises(OutOfRangeParameter):
            await service.create_edge(5, 3, lookback_days=31)
        with pytest.raises(OutOfRangeParameter):
            await service.create_edge(5, 3, max_wait_minutes=1441)

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, service):
        with pytest.raises(DependencyValidationError):
            await service.create_edge(5, 3, dependency_type="eventually")


class TestUpdate:
    @pytest.mark.asyncio
    async def test_partial_update(self, service):
        dep = await service.create_edge(5, 3, max_wait_minutes=60)
        updated = await service.update_edge(dep.id, {"lookback_days": 7}, actor=9)
        assert updated.lookback_days == 7
        assert updated.max_wait_minutes == 60
        assert updated.updated_by == 9
        assert updated.created_by is None
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_clear_max_wait(self, service):
        dep = await service.create_edge(5, 3, max_wait_minutes=60)
        updated = await service.update_edge(dep.id, {"max_wait_minutes": None})
        assert updated.max_wait_minutes is None

    @pytest.mark.asyncio
    async def test_range_enforced(self, service):
        dep = await service.create_edge(5, 3)
        with pytest.raises(OutOfRangeParameter):
            await service.update_edge(dep.id, {"lookback_days": -1})
        with pytest.raises(OutOfRangeParameter):
            await service.update_edge(dep.id, {"max_wait_minutes": 5000})

    @pytest.mark.asyncio
    async def test_endpoints_immutable(self, service):
        dep = await service.create_edge(5, 3)
        with pytest.raises(DependencyValidationError):
            await service.update_edge(dep.id, {"depends_on_job_id": 4})

    @pytest.mark.asyncio
    async def test_stale_version(self, service):
        dep = await service.create_edge(5, 3)
        await service.update_edge(dep.id, {"lookback_days": 2}, expected_version=1)
        with pytest.raises(ConcurrentModificationConflict):
            await service.update_edge(dep.id, {"lookback_days": 3}, expected_version=1)

    @pytest.mark.asyncio
    async def test_reactivating_through_update_checks_cycles(self, service):
        dep = await service.create_edge(3, 5, is_active=False)
        await service.create_edge(5, 3)
        with pytest.raises(CycleDetected):
            await service.update_edge(dep.id, {"is_active": True})

    @pytest.mark.asyncio
    async def test_missing_edge(self, service):
        with pytest.raises(NotFound):
            await service.update_edge(999, {"lookback_days": 2})


class TestOptimisticLock:
    @pytest.mark.asyncio
    async def test_concurrent_write_detected(self, engine):
        async with database.async_session_factory() as first, database.async_session_factory() as second:
            repo_a = DependencyRepository(first)
            repo_b = DependencyRepository(second)
            dep = await repo_a.create(job_id=5, depends_on_job_id=3)

            row_a = await repo_a.get_by_id(dep.id)
            row_b = await repo_b.get_by_id(dep.id)
            await repo_a.update(row_a, lookback_days=3)
            with pytest.raises(ConcurrentModificationConflict) as exc:
                await repo_b.update(row_b, lookback_days=4)
            assert exc.value.dependency_id == dep.id


class TestActivation:
    @pytest.mark.asyncio
    async def test_idempotent(self, service):
        dep = await service.create_edge(5, 3)
        again = await service.activate_edge(dep.id)
        assert again.is_active is True
        assert again.version == 1

        off = await service.deactivate_edge(dep.id, actor=2)
        assert off.is_active is False
        assert off.updated_by == 2
        off_again = await service.deactivate_edge(dep.id)
        assert off_again.is_active is False
        assert off_again.version == off.version

    @pytest.mark.asyncio
    async def test_reactivation_revalidated(self, service):
        dep = await service.create_edge(5, 3)
        await service.deactivate_edge(dep.id)
        await service.create_edge(3, 5)
        with pytest.raises(CycleDetected):
            await service.activate_edge(dep.id)

    @pytest.mark.asyncio
    async def test_reactivation_rejects_duplicate(self, service):
        dep = await service.create_edge(5, 3, is_active=False)
        await service.create_edge(5, 3)
        with pytest.raises(DuplicateEdge):
            await service.activate_edge(dep.id)

    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(NotFound):
            await service.activate_edge(404)


class TestBatch:
    @pytest.mark.asyncio
    async def test_activate_partial_failure(self, service):
        one = await service.create_edge(1, 2, is_active=False)
        two = await service.create_edge(3, 4, is_active=False)
        result = await service.batch_activate([one.id, two.id, 999])

        assert result.to_dict()["activated"] == 2
        assert len(result.errors) == 1
        assert result.errors[0].id == 999
        assert result.errors[0].kind == "not_found"
        assert "not found" in result.errors[0].error

        listed = await service.list_edges()
        assert {e.id for e in listed.data} == {one.id, two.id}

    @pytest.mark.asyncio
    async def test_deactivate_partial_failure(self, service):
        one = await service.create_edge(1, 2)
        two = await service.create_edge(3, 4)
        result = await service.batch_deactivate([one.id, two.id, 12345])
        assert result.succeeded == 2
        assert [e.id for e in result.errors] == [12345]

    @pytest.mark.asyncio
    async def test_cycle_inside_batch(self, service):
        """Items are applied in order; the second activation would close a cycle."""
        a = await service.create_edge(1, 2, is_active=False)
        b = await service.create_edge(2, 1, is_active=False)
        result = await service.batch_activate([a.id, b.id])
        assert result.succeeded == 1
        assert result.errors[0].id == b.id
        assert result.errors[0].kind == "cycle_detected"

    @pytest.mark.asyncio
    async def test_duplicate_ids_processed_once(self, service):
        dep = await service.create_edge(1, 2)
        result = await service.batch_deactivate([dep.id, dep.id])
        assert result.succeeded == 1
        assert result.errors == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_edge(self, service):
        dep = await service.create_edge(1, 2)
        await service.delete_edge(dep.id)
        with pytest.raises(NotFound):
            await service.get_edge(dep.id)

    @pytest.mark.asyncio
    async def test_delete_all_for_job(self, service):
        await service.create_edge(1, 2)
        await service.create_edge(1, 3, is_active=False)
        await service.create_edge(4, 1)
        assert await service.delete_all_for_job(1) == 2
        remaining = await service.list_edges(active_only=False)
        assert [(e.job_id, e.depends_on_job_id) for e in remaining.data] == [(4, 1)]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_opposing_creates_cannot_both_win(self, tmp_path):
        init_engine(f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}")
        await create_tables()
        try:
            async with database.async_session_factory() as first, database.async_session_factory() as second:
                results = await asyncio.gather(
                    DependencyService(first).create_edge(1, 2),
                    DependencyService(second).create_edge(2, 1),
                    return_exceptions=True,
                )
            errors = [r for r in results if isinstance(r, Exception)]
            assert len(errors) == 1
            assert isinstance(errors[0], CycleDetected)

            async with database.async_session_factory() as session:
                assert len(await DependencyRepository(session).load_active_records()) == 1
        finally:
            await database.engine.dispose()


# ─── Queries ───

class TestSnapshotSource:
    @pytest.mark.asyncio
    async def test_source_values(self, service):
        assert (await service.list_edges()).source == SOURCE_DATABASE
        assert (await service.list_edges()).source == SOURCE_CACHE

        await service.create_edge(1, 2)
        result = await service.list_edges()
        assert result.source == SOURCE_DATABASE
        assert len(result.data) == 1

        assert (await service.list_edges(skip_cache=True)).source == SOURCE_FORCED
        assert (await service.chain(1)).source == SOURCE_CACHE

    @pytest.mark.asyncio
    async def test_rejected_write_keeps_cache(self, service):
        await service.create_edge(1, 2)
        await service.list_edges()
        with pytest.raises(CycleDetected):
            await service.create_edge(2, 1)
        assert (await service.list_edges()).source == SOURCE_CACHE


class TestEdgeQueries:
    @pytest.mark.asyncio
    async def test_pagination(self, service):
        for dep in range(2, 7):
            await service.create_edge(1, dep)
        result = await service.list_edges(limit=2, offset=2)
        assert [e.depends_on_job_id for e in result.data] == [4, 5]
        assert result.pagination == {"limit": 2, "offset": 2, "total": 5, "hasMore": True}

    def test_paginate_clamps(self):
        page, meta = paginate(list(range(300)), limit=500, offset=-3)
        assert len(page) == 100
        assert meta["offset"] == 0
        assert meta["hasMore"] is True

    @pytest.mark.asyncio
    async def test_search(self, service):
        await service.create_edge(1, 2, lookback_days=5)
        await service.create_edge(1, 3, dependency_type="optional")
        await service.create_edge(4, 2, max_wait_minutes=30, is_active=False)

        by_target = await service.search_edges(depends_on_job_id=2)
        assert len(by_target.data) == 2
        optional = await service.search_edges(dependency_type="optional")
        assert [e.depends_on_job_id for e in optional.data] == [3]
        windowed = await service.search_edges(lookback_days_min=2, lookback_days_max=10)
        assert [e.depends_on_job_id for e in windowed.data] == [2]
        waits = await service.search_edges(max_wait_minutes_min=0)
        assert [e.job_id for e in waits.data] == [4]
        inactive = await service.search_edges(is_active=False)
        assert len(inactive.data) == 1
        none = await service.search_edges(job_id=99)
        assert none.data == []

    @pytest.mark.asyncio
    async def test_specific_prefers_active(self, service):
        active = await service.create_edge(1, 2)
        await service.create_edge(1, 2, is_active=False)
        result = await service.get_specific_edge(1, 2)
        assert result.data.id == active.id
        with pytest.raises(NotFound):
            await service.get_specific_edge(2, 1)

    @pytest.mark.asyncio
    async def test_job_views(self, service):
        await service.create_edge(1, 2)
        await service.create_edge(1, 3, dependency_type="optional")
        await service.create_edge(1, 4, is_active=False)
        await service.create_edge(5, 2)

        assert len((await service.dependencies_for_job(1)).data) == 2
        assert len((await service.dependencies_for_job(1, active_only=False)).data) == 3
        assert [e.job_id for e in (await service.jobs_depending_on(2)).data] == [1, 5]
        assert [e.depends_on_job_id for e in (await service.blocking_dependencies(1)).data] == [2]
        assert (await service.immediate_dependencies(1)).data == [2, 3]
        assert (await service.all_dependents(2)).data == [1, 5]
        assert (await service.dependencies_for_job(42)).data == []


class TestChainQueries:
    @pytest.mark.asyncio
    async def test_chain_with_names(self, service, db_session):
        await seed_jobs(db_session, {1: "report", 2: "transform", 3: "extract"})
        await service.create_edge(1, 2)
        await service.create_edge(2, 3)

        result = await service.chain(1)
        assert result.data == [
            {"job_id": 1, "level": 0, "depends_on": None, "job_name": "report"},
            {"job_id": 2, "level": 1, "depends_on": 1, "job_name": "transform"},
            {"job_id": 3, "level": 2, "depends_on": 2, "job_name": "extract"},
        ]

    @pytest.mark.asyncio
    async def test_critical_path_uses_estimates(self, service, db_session):
        await seed_jobs(
            db_session,
            {1: "report", 2: "quick", 3: "quicker", 4: "slow"},
            durations={2: 1.0, 3: 1.0, 4: 90.0},
        )
        await service.create_edge(1, 2)
        await service.create_edge(2, 3)
        await service.create_edge(1, 4)

        result = await service.critical_path(1)
        assert [item["job_id"] for item in result.data] == [1, 4]
        assert result.data[1]["estimated_duration_minutes"] == 90.0

    @pytest.mark.asyncio
    async def test_critical_path_by_edges(self, service):
        await service.create_edge(1, 2)
        await service.create_edge(2, 3)
        await service.create_edge(1, 4)
        result = await service.critical_path(1)
        assert [item["job_id"] for item in result.data] == [1, 2, 3]


class TestSatisfaction:
    @pytest.mark.asyncio
    async def test_failed_prerequisite(self, service, db_session):
        """Job 7 waits on a success of job 2, whose last run failed."""
        await service.create_edge(7, 2, lookback_days=1)
        await add_run(db_session, 2, "failure")

        assert (await service.is_satisfied(7)).data is False
        unsatisfied = (await service.unsatisfied_dependencies(7)).data
        assert len(unsatisfied) == 1
        assert unsatisfied[0]["depends_on_job_id"] == 2
        assert unsatisfied[0]["current_status"] == "failure"
        assert unsatisfied[0]["status"] == "unsatisfied"

    @pytest.mark.asyncio
    async def test_successful_prerequisite(self, service, db_session):
        await service.create_edge(7, 2)
        await add_run(db_session, 2, "success")
        assert (await service.is_satisfied(7)).data is True
        assert (await service.unsatisfied_dependencies(7)).data == []

    @pytest.mark.asyncio
    async def test_old_run_outside_window(self, service, db_session):
        await service.create_edge(7, 2, lookback_days=1)
        await add_run(db_session, 2, "success", datetime.now(timezone.utc) - timedelta(days=3))
        assert (await service.is_satisfied(7)).data is False

    @pytest.mark.asyncio
    async def test_isolated_job(self, service, db_session):
        await seed_jobs(db_session, {10: "standalone"})
        assert (await service.is_satisfied(10)).data is True
        orphans = (await service.orphaned_jobs()).data
        assert orphans == [
            {"job_id": 10, "has_dependencies": False, "has_dependents": False, "job_name": "standalone"},
        ]

    @pytest.mark.asyncio
    async def test_status_summary(self, service, db_session):
        await seed_jobs(db_session, {2: "upstream"})
        await service.create_edge(7, 2)
        await service.create_edge(7, 3, dependency_type="optional")
        await service.create_edge(7, 4, is_active=False)
        await add_run(db_session, 2, "success")

        status = (await service.dependency_status(7)).data
        assert status["satisfied"] is True
        assert status["satisfied_count"] == 1
        assert status["unsatisfied_count"] == 1
        assert status["blocking_count"] == 1
        by_target = {d["depends_on_job_id"]: d for d in status["dependencies"]}
        assert by_target[2]["status"] == "satisfied"
        assert by_target[2]["depends_on_job_name"] == "upstream"
        assert by_target[3]["status"] == "unsatisfied"
        assert by_target[4]["status"] == "inactive"
        assert by_target[4]["is_active"] is False


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_most_depended_and_statistics(self, service, db_session):
        await seed_jobs(db_session, {1: "a", 2: "b", 3: "c", 9: "idle"})
        await service.create_edge(1, 3)
        await service.create_edge(2, 3)
        await service.create_edge(1, 2, dependency_type="cross_day")

        ranked = (await service.most_depended_on()).data
        assert [(r["job_id"], r["dependent_count"]) for r in ranked] == [(3, 2), (2, 1)]
        assert ranked[0]["job_name"] == "c"

        stats = (await service.statistics()).data
        assert stats["total_dependencies"] == 3
        assert stats["cross_day_dependencies"] == 1
        assert stats["jobs_with_dependencies"] == 2
        assert stats["jobs_with_no_dependencies"] == 2

        complex_edges = (await service.complex_dependencies()).data
        assert [e.dependency_type.value for e in complex_edges] == ["cross_day"]

        orphans = (await service.orphaned_jobs()).data
        assert [o["job_id"] for o in orphans] == [9]

    @pytest.mark.asyncio
    async def test_most_depended_limit_clamped(self, service, db_session):
        await seed_jobs(db_session, {1: "a", 2: "b", 3: "c", 4: "d"})
        await service.create_edge(1, 3)
        await service.create_edge(2, 3)
        await service.create_edge(2, 4)

        ranked = (await service.most_depended_on(limit=0)).data
        assert [r["job_id"] for r in ranked] == [3]

        assert len((await service.most_depended_on()).data) == 2
        assert len((await service.most_depended_on(limit=500)).data) == 2

    @pytest.mark.asyncio
    async def test_empty_store(self, service):
        assert (await service.most_depended_on()).data == []
        assert (await service.orphaned_jobs()).data == []
        assert (await service.dependency_graph()).data == []
        assert (await service.complex_dependencies()).data == []
