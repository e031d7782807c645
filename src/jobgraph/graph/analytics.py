"""Analytics over a graph snapshot: orphans, hot spots, complexity, totals."""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from jobgraph.graph.resolver import chain_depth
from jobgraph.graph.snapshot import EdgeRecord, GraphSnapshot
from jobgraph.models.dependency import DependencyType


def orphaned_jobs(snapshot: GraphSnapshot, known_jobs: Iterable[int] = ()) -> list[int]:
    """Jobs with no active prerequisites and no active dependents.

    The universe is ``known_jobs`` plus every job named on any edge, so a job
    whose edges were all deactivated shows up as orphaned.
    """
    universe = set(known_jobs) | snapshot.job_ids(active_only=False)
    connected = snapshot.job_ids(active_only=True)
    return sorted(universe - connected)


def most_depended_on(snapshot: GraphSnapshot, limit: int = 10) -> list[tuple[int, int]]:
    """``(job_id, dependent_count)`` pairs, most depended-on first, ties by id."""
    counts = Counter(e.depends_on_job_id for e in snapshot.active_edges)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit]


def complex_dependencies(snapshot: GraphSnapshot, depth_threshold: int = 3) -> list[EdgeRecord]:
    """Active cross-day/conditional edges, plus edges of jobs with deep chains."""
    depths: dict[int, int] = {}
    result = []
    for edge in snapshot.active_edges:
        if edge.dependency_type in (DependencyType.CROSS_DAY, DependencyType.CONDITIONAL):
            result.append(edge)
            continue
        if edge.job_id not in depths:
            depths[edge.job_id] = chain_depth(snapshot.forward, edge.job_id)
        if depths[edge.job_id] > depth_threshold:
            result.append(edge)
    return result


def statistics(snapshot: GraphSnapshot, known_jobs: Iterable[int] = ()) -> dict:
    edges = snapshot.edges
    active = snapshot.active_edges
    by_type = Counter(e.dependency_type for e in active)

    # Prerequisite count per dependent job
    per_job = Counter(e.job_id for e in active)
    universe = set(known_jobs) | snapshot.job_ids(active_only=False)
    with_deps = len(per_job)

    return {
        "total_dependencies": len(edges),
        "active_dependencies": len(active),
        "inactive_dependencies": len(edges) - len(active),
        "blocking_dependencies": by_type[DependencyType.BLOCKING],
        "optional_dependencies": by_type[DependencyType.OPTIONAL],
        "cross_day_dependencies": by_type[DependencyType.CROSS_DAY],
        "conditional_dependencies": by_type[DependencyType.CONDITIONAL],
        "jobs_with_dependencies": with_deps,
        "jobs_with_no_dependencies": len(universe - set(per_job)),
        "average_dependencies_per_job": round(len(active) / with_deps, 2) if with_deps else 0.0,
        "max_dependencies_for_single_job": max(per_job.values(), default=0),
    }


def dependency_graph(snapshot: GraphSnapshot) -> list[dict]:
    """One node per job on an active edge with its prerequisites and dependents."""
    return [
        {
            "job_id": job_id,
            "dependencies": snapshot.prerequisites(job_id),
            "dependents": snapshot.dependents(job_id),
        }
        for job_id in sorted(snapshot.job_ids(active_only=True))
    ]
