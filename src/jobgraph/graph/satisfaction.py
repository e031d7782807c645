"""Decides whether a job's prerequisites currently hold.

Evaluation is a pure function of the job's edges, the prerequisites' run
records and an evaluation time. "Not satisfied" is an ordinary result,
never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from jobgraph.graph.snapshot import EdgeRecord
from jobgraph.models.dependency import WaitForStatus
from jobgraph.models.run import FAILURE_STATUSES, TERMINAL_STATUSES, ExecutionStatus

REASON_NO_RUN = "no qualifying run in window"
REASON_TIMEOUT = "timeout"


@dataclass(frozen=True)
class RunRecord:
    """A finished prerequisite run, as reported by the execution subsystem."""
    job_id: int
    status: ExecutionStatus
    completed_at: datetime


@dataclass(frozen=True)
class EdgeEvaluation:
    dependency_id: int
    job_id: int
    depends_on_job_id: int
    dependency_type: str
    required_status: str
    satisfied: bool
    blocking: bool
    current_status: str | None = None
    reason: str | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "dependency_id": self.dependency_id,
            "depends_on_job_id": self.depends_on_job_id,
            "required_status": self.required_status,
            "current_status": self.current_status,
            "status": "satisfied" if self.satisfied else "unsatisfied",
            "reason": self.reason,
            "dependency_type": self.dependency_type,
            "blocking": self.blocking,
        }


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def status_matches(wait_for: WaitForStatus, status: ExecutionStatus) -> bool:
    if status not in TERMINAL_STATUSES:
        return False
    if wait_for is WaitForStatus.ANY:
        return True
    if wait_for is WaitForStatus.COMPLETED:
        return status not in FAILURE_STATUSES
    if wait_for is WaitForStatus.SUCCESS:
        return status is ExecutionStatus.SUCCESS
    if wait_for is WaitForStatus.FAILURE:
        return status is ExecutionStatus.FAILURE
    raise ValueError(f"Unhandled wait_for_status: {wait_for!r}")


def window_start(now: datetime, lookback_days: int) -> datetime:
    """Start of the lookback window; 0 days means since midnight UTC today."""
    now = as_utc(now)
    if lookback_days == 0:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    return now - timedelta(days=lookback_days)


def evaluate_edge(edge: EdgeRecord, runs: Iterable[RunRecord], now: datetime) -> EdgeEvaluation:
    """Evaluate one edge against its prerequisite's run history."""
    now = as_utc(now)
    start = window_start(now, edge.lookback_days)

    in_window = sorted(
        (
            r for r in runs
            if r.job_id == edge.depends_on_job_id
            and r.status in TERMINAL_STATUSES
            and start <= as_utc(r.completed_at) <= now
        ),
        key=lambda r: as_utc(r.completed_at),
        reverse=True,
    )
    latest = in_window[0] if in_window else None
    qualifying = next((r for r in in_window if status_matches(edge.wait_for_status, r.status)), None)

    satisfied, reason = True, None
    if qualifying is None:
        satisfied, reason = False, REASON_NO_RUN
    elif edge.max_wait_minutes is not None:
        if as_utc(qualifying.completed_at) < now - timedelta(minutes=edge.max_wait_minutes):
            satisfied, reason = False, REASON_TIMEOUT

    return EdgeEvaluation(
        dependency_id=edge.id,
        job_id=edge.job_id,
        depends_on_job_id=edge.depends_on_job_id,
        dependency_type=edge.dependency_type.value,
        required_status=edge.wait_for_status.value,
        satisfied=satisfied,
        blocking=edge.is_blocking,
        current_status=latest.status.value if latest else None,
        reason=reason,
        completed_at=as_utc(qualifying.completed_at) if qualifying else None,
    )


def evaluate_job(
    job_id: int,
    edges: Iterable[EdgeRecord],
    runs: Iterable[RunRecord],
    now: datetime,
) -> list[EdgeEvaluation]:
    """Evaluate every active edge of ``job_id``, ordered by edge id."""
    runs = list(runs)
    return [
        evaluate_edge(edge, runs, now)
        for edge in sorted(edges, key=lambda e: e.id)
        if edge.job_id == job_id and edge.is_active
    ]


def is_satisfied(evaluations: Iterable[EdgeEvaluation]) -> bool:
    """AND over blocking-class edges; vacuously true when there are none."""
    return all(e.satisfied for e in evaluations if e.blocking)


def unsatisfied(evaluations: Iterable[EdgeEvaluation]) -> list[EdgeEvaluation]:
    """Unsatisfied edges, blocking first; optional ones stay flagged ``blocking=False``."""
    failing = [e for e in evaluations if not e.satisfied]
    return sorted(failing, key=lambda e: (not e.blocking, e.dependency_id))
