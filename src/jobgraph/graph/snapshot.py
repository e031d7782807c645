"""Graph snapshot — in-memory adjacency built from the edge store.

The snapshot is a derived, disposable view of the full edge set. Edges are
kept as a flat tuple of ``EdgeRecord`` with integer job ids; adjacency maps
index into it, so traversals are plain dict and set operations.

Lifecycle of the process-wide ``GraphCache``:

* built lazily on the first query,
* marked stale by ``invalidate()`` after every successful write,
* rebuilt on the next read once stale, or immediately when a caller asks
  to skip the cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from jobgraph.models.dependency import DependencyType, WaitForStatus

logger = logging.getLogger("jobgraph.graph")

SOURCE_CACHE = "cache"
SOURCE_DATABASE = "database"
SOURCE_FORCED = "database-forced"


@dataclass(frozen=True)
class EdgeRecord:
    """Immutable copy of one dependency row."""
    id: int
    job_id: int
    depends_on_job_id: int
    dependency_type: DependencyType = DependencyType.BLOCKING
    wait_for_status: WaitForStatus = WaitForStatus.SUCCESS
    max_wait_minutes: int | None = None
    lookback_days: int = 1
    is_active: bool = True
    version: int = field(default=1, compare=False)
    created_at: datetime | None = field(default=None, compare=False)
    updated_at: datetime | None = field(default=None, compare=False)
    created_by: int | None = field(default=None, compare=False)
    updated_by: int | None = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row) -> "EdgeRecord":
        return cls(
            id=row.id,
            job_id=row.job_id,
            depends_on_job_id=row.depends_on_job_id,
            dependency_type=DependencyType(row.dependency_type),
            wait_for_status=WaitForStatus(row.wait_for_status),
            max_wait_minutes=row.max_wait_minutes,
            lookback_days=row.lookback_days,
            is_active=row.is_active,
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
            created_by=row.created_by,
            updated_by=row.updated_by,
        )

    @property
    def is_blocking(self) -> bool:
        return self.dependency_type.is_blocking


def _adjacency(edges: Iterable[EdgeRecord]) -> tuple[dict[int, list[int]], dict[int, list[int]]]:
    forward: dict[int, set[int]] = defaultdict(set)
    reverse: dict[int, set[int]] = defaultdict(set)
    for edge in edges:
        forward[edge.job_id].add(edge.depends_on_job_id)
        reverse[edge.depends_on_job_id].add(edge.job_id)
    # Neighbour lists are sorted by job id
    return (
        {job: sorted(deps) for job, deps in forward.items()},
        {job: sorted(deps) for job, deps in reverse.items()},
    )


@dataclass
class GraphSnapshot:
    """Point-in-time adjacency over the dependency edges.

    ``forward`` maps a job to its prerequisites, ``reverse`` maps a job to
    its dependents. Both cover active edges only; ``edges`` keeps every row.
    """
    edges: tuple[EdgeRecord, ...] = ()
    forward: dict[int, list[int]] = field(default_factory=dict)
    reverse: dict[int, list[int]] = field(default_factory=dict)

    @classmethod
    def build(cls, edges: Iterable[EdgeRecord]) -> "GraphSnapshot":
        ordered = tuple(sorted(edges, key=lambda e: e.id))
        forward, reverse = _adjacency(e for e in ordered if e.is_active)
        return cls(
            edges=ordered,
            forward=forward,
            reverse=reverse,
        )

    @property
    def active_edges(self) -> list[EdgeRecord]:
        return [e for e in self.edges if e.is_active]

    def edges_view(self, active_only: bool = True) -> list[EdgeRecord]:
        return self.active_edges if active_only else list(self.edges)

    def job_ids(self, active_only: bool = False) -> set[int]:
        """Every job id that appears on an edge."""
        ids: set[int] = set()
        for edge in self.edges_view(active_only):
            ids.add(edge.job_id)
            ids.add(edge.depends_on_job_id)
        return ids

    def prerequisites(self, job_id: int) -> list[int]:
        return self.forward.get(job_id, [])

    def dependents(self, job_id: int) -> list[int]:
        return self.reverse.get(job_id, [])

    def edge_by_id(self, edge_id: int) -> EdgeRecord | None:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def edges_for_job(self, job_id: int, active_only: bool = True) -> list[EdgeRecord]:
        return [e for e in self.edges_view(active_only) if e.job_id == job_id]

    def edges_depending_on(self, job_id: int, active_only: bool = True) -> list[EdgeRecord]:
        return [e for e in self.edges_view(active_only) if e.depends_on_job_id == job_id]

    def __len__(self) -> int:
        return len(self.edges)


EdgeLoader = Callable[[], Awaitable[list[EdgeRecord]]]


class GraphCache:
    """Holds the current snapshot and knows when it must be rebuilt."""

    def __init__(self):
        self._snapshot: GraphSnapshot | None = None
        self._stale = True
        self._lock = asyncio.Lock()

    @property
    def is_stale(self) -> bool:
        return self._stale or self._snapshot is None

    def invalidate(self, reason: str = "write") -> None:
        """Mark the snapshot stale; the next read rebuilds it."""
        self._stale = True
        logger.debug(f"Graph snapshot invalidated ({reason})")

    async def get(self, loader: EdgeLoader, skip_cache: bool = False) -> tuple[GraphSnapshot, str]:
        """Return ``(snapshot, source)``, rebuilding through ``loader`` if needed."""
        if not skip_cache and not self.is_stale:
            return self._snapshot, SOURCE_CACHE

        async with self._lock:
            if not skip_cache and not self.is_stale:
                # Another reader rebuilt it while we waited
                return self._snapshot, SOURCE_CACHE
            # An invalidate() that lands mid-load must leave the cache stale
            self._stale = False
            try:
                edges = await loader()
            except Exception:
                self._stale = True
                raise
            snapshot = GraphSnapshot.build(edges)
            self._snapshot = snapshot
            source = SOURCE_FORCED if skip_cache else SOURCE_DATABASE
            logger.info(f"Graph snapshot rebuilt: {len(snapshot)} edges ({source})")
            return snapshot, source


@dataclass
class GraphState:
    """Process-wide engine state: the snapshot cache and the writer lock.

    Every mutation of the active subgraph runs under ``write_lock`` so the
    cycle check and the insert it guards happen as one critical section.
    """
    cache: GraphCache = field(default_factory=GraphCache)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


_state = GraphState()


def get_graph_state() -> GraphState:
    return _state


def reset_graph_state() -> GraphState:
    """Discard the cached snapshot and locks (daemon startup, tests)."""
    global _state
    _state = GraphState()
    return _state
