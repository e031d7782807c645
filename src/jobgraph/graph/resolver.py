"""Chain and critical-path resolution over a graph snapshot."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from jobgraph.core.errors import GraphCorruption

logger = logging.getLogger("jobgraph.graph")


@dataclass(frozen=True)
class ChainNode:
    """A job on a dependency chain.

    ``depth`` is 0 for the job itself, 1 for its direct prerequisites and so
    on. ``via`` is the dependent job through which this node was reached.
    """
    job_id: int
    depth: int
    via: int | None = None
    estimated_duration_minutes: float | None = None

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "level": self.depth,
            "depends_on": self.via,
            "estimated_duration_minutes": self.estimated_duration_minutes,
        }


def find_cycle(adjacency: dict[int, list[int]], root: int) -> list[int] | None:
    """Three-colour DFS from ``root``. Returns the cycle path or None."""
    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[int, int] = {}
    path: list[int] = []

    # Iterative: chains may be deeper than the recursion limit
    stack: list[tuple[int, int]] = [(root, 0)]
    while stack:
        node, index = stack.pop()
        if index == 0:
            color[node] = GRAY
            path.append(node)
        children = adjacency.get(node, [])
        if index < len(children):
            stack.append((node, index + 1))
            child = children[index]
            state = color.get(child, WHITE)
            if state == GRAY:
                return path[path.index(child):] + [child]
            if state == WHITE:
                stack.append((child, 0))
        else:
            color[node] = BLACK
            path.pop()
    return None


def _ensure_acyclic(adjacency: dict[int, list[int]], root: int) -> None:
    cycle = find_cycle(adjacency, root)
    if cycle:
        logger.error(f"Graph corruption detected while resolving job {root}: {cycle}")
        raise GraphCorruption(cycle)


def reachable(adjacency: dict[int, list[int]], start: int) -> list[int]:
    """All nodes reachable from ``start`` (excluding it), sorted by id."""
    visited = set()
    queue = deque(adjacency.get(start, []))
    while queue:
        node = queue.popleft()
        if node in visited:
            continue
        visited.add(node)
        queue.extend(adjacency.get(node, []))
    visited.discard(start)
    return sorted(visited)


def immediate_dependencies(forward: dict[int, list[int]], job_id: int) -> list[int]:
    return list(forward.get(job_id, []))


def all_dependents(reverse: dict[int, list[int]], job_id: int) -> list[int]:
    """Transitive closure of jobs that wait, directly or not, on ``job_id``."""
    return reachable(reverse, job_id)


def all_prerequisites(forward: dict[int, list[int]], job_id: int) -> list[int]:
    return reachable(forward, job_id)


def chain(forward: dict[int, list[int]], job_id: int) -> list[ChainNode]:
    """Breadth-first ancestor chain starting at ``job_id``.

    Each job appears once, at the level where BFS first reaches it.
    Raises ``GraphCorruption`` if the prerequisites of ``job_id`` loop back
    on themselves.
    """
    _ensure_acyclic(forward, job_id)

    nodes = [ChainNode(job_id=job_id, depth=0)]
    visited = {job_id}
    queue = deque([(job_id, 0)])
    while queue:
        node, depth = queue.popleft()
        for dep in forward.get(node, []):
            if dep in visited:
                continue
            visited.add(dep)
            nodes.append(ChainNode(job_id=dep, depth=depth + 1, via=node))
            queue.append((dep, depth + 1))
    return nodes


def chain_depth(forward: dict[int, list[int]], job_id: int) -> int:
    """Deepest BFS level below ``job_id`` (0 for a job without prerequisites)."""
    return max(node.depth for node in chain(forward, job_id))


def critical_path(
    forward: dict[int, list[int]],
    job_id: int,
    durations: dict[int, float] | None = None,
) -> list[ChainNode]:
    """Longest prerequisite path from ``job_id`` down to a root job.

    Without ``durations`` the path with the most edges wins. With them the
    path maximising the summed estimate of its jobs wins, and jobs without
    an estimate count as zero; equal totals fall back to the edge count.
    Remaining ties keep the lowest prerequisite id at each branch.
    """
    _ensure_acyclic(forward, job_id)

    def node_weight(node: int) -> float:
        if durations is None:
            return 0
        return durations.get(node) or 0

    # best[node] = ((duration, edges) of the best path starting at node, next hop)
    best: dict[int, tuple[tuple[float, int], int | None]] = {}

    # Post-order over the acyclic ancestor graph
    stack: list[tuple[int, bool]] = [(job_id, False)]
    while stack:
        node, expanded = stack.pop()
        if node in best:
            continue
        deps = forward.get(node, [])
        if not expanded:
            stack.append((node, True))
            stack.extend((dep, False) for dep in deps if dep not in best)
            continue

        next_hop, tail = None, (0, 0)
        for dep in deps:
            duration, edges = best[dep][0]
            candidate = (duration, edges + 1)
            if next_hop is None or candidate > tail:
                next_hop, tail = dep, candidate
        best[node] = ((node_weight(node) + tail[0], tail[1]), next_hop)

    path = []
    node, depth, via = job_id, 0, None
    while node is not None:
        path.append(ChainNode(
            job_id=node,
            depth=depth,
            via=via,
            estimated_duration_minutes=durations.get(node) if durations else None,
        ))
        via, node = node, best[node][1]
        depth += 1
    return path
