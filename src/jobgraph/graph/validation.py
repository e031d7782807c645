"""Write-time checks that keep the active dependency graph well-formed.

All checks are pure: they look at a candidate edge and the current active
edge set and either return quietly or raise a ``DependencyValidationError``.
Persisting only after a clean pass is the caller's job.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from jobgraph.core.errors import (
    CycleDetected,
    DuplicateEdge,
    InvalidSelfDependency,
    OutOfRangeParameter,
)
from jobgraph.graph.snapshot import EdgeRecord

LOOKBACK_DAYS_RANGE = (0, 30)
MAX_WAIT_MINUTES_RANGE = (0, 1440)


def check_parameters(lookback_days: int | None, max_wait_minutes: int | None) -> None:
    """Reject window parameters outside their bounds. ``None`` means unchanged/absent."""
    if lookback_days is not None:
        low, high = LOOKBACK_DAYS_RANGE
        if not low <= lookback_days <= high:
            raise OutOfRangeParameter("lookback_days", lookback_days, low, high)
    if max_wait_minutes is not None:
        low, high = MAX_WAIT_MINUTES_RANGE
        if not low <= max_wait_minutes <= high:
            raise OutOfRangeParameter("max_wait_minutes", max_wait_minutes, low, high)


def find_path(forward: dict[int, list[int]], start: int, target: int) -> list[int] | None:
    """Depth-first search for a prerequisite path ``start → ... → target``."""
    stack: list[tuple[int, list[int]]] = [(start, [start])]
    visited: set[int] = set()
    while stack:
        node, path = stack.pop()
        if node == target:
            return path
        if node in visited:
            continue
        visited.add(node)
        # Reverse so the lowest id is explored first
        for nxt in reversed(forward.get(node, [])):
            if nxt not in visited:
                stack.append((nxt, path + [nxt]))
    return None


def check_acyclic(candidate: EdgeRecord, active_edges: Iterable[EdgeRecord]) -> None:
    """Raise ``CycleDetected`` if adding ``candidate`` closes a directed cycle.

    Inserting ``A → B`` (A waits on B) is illegal when B already waits,
    directly or transitively, on A.
    """
    forward: dict[int, list[int]] = defaultdict(list)
    for edge in active_edges:
        if edge.id == candidate.id:
            continue
        forward[edge.job_id].append(edge.depends_on_job_id)
    for deps in forward.values():
        deps.sort()

    path = find_path(forward, candidate.depends_on_job_id, candidate.job_id)
    if path is not None:
        raise CycleDetected([candidate.job_id] + path)


def check_unique(candidate: EdgeRecord, active_edges: Iterable[EdgeRecord]) -> None:
    for edge in active_edges:
        if edge.id == candidate.id:
            continue
        if edge.job_id == candidate.job_id and edge.depends_on_job_id == candidate.depends_on_job_id:
            raise DuplicateEdge(candidate.job_id, candidate.depends_on_job_id, edge.id)


def validate_edge(candidate: EdgeRecord, active_edges: Iterable[EdgeRecord]) -> None:
    """Run every structural check against ``candidate``.

    Inactive candidates only get the self-dependency and range checks: they
    are not part of the active subgraph, so they cannot duplicate or close a
    cycle until they are activated, at which point this runs again.
    """
    if candidate.job_id == candidate.depends_on_job_id:
        raise InvalidSelfDependency(candidate.job_id)
    check_parameters(candidate.lookback_days, candidate.max_wait_minutes)
    if not candidate.is_active:
        return

    active = [e for e in active_edges if e.is_active]
    check_unique(candidate, active)
    check_acyclic(candidate, active)
