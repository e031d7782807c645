"""Applies one transition to many edges, item by item."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from jobgraph.core.errors import JobGraphError

logger = logging.getLogger("jobgraph.service.batch")


@dataclass
class BatchItemError:
    id: int
    error: str
    kind: str

    def to_dict(self) -> dict:
        return {"id": self.id, "error": self.error, "kind": self.kind}


@dataclass
class BatchResult:
    """Outcome of a batch call: a success count plus per-item errors.

    A batch is never atomic as a whole; each item commits on its own.
    """
    action: str
    succeeded: int = 0
    errors: list[BatchItemError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            self.action: self.succeeded,
            "errors": [e.to_dict() for e in self.errors],
        }


async def run_batch(
    action: str,
    ids: Iterable[int],
    apply: Callable[[int], Awaitable[object]],
) -> BatchResult:
    """Run ``apply`` for every id, collecting failures instead of stopping.

    Ids are processed sequentially in the order given (duplicates once).
    Engine errors become per-item entries; anything else propagates.
    """
    result = BatchResult(action=action)
    seen: set[int] = set()
    for item_id in ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        try:
            await apply(item_id)
        except JobGraphError as e:
            logger.warning(f"Batch {action}: dependency {item_id} failed ({e.kind}): {e}")
            result.errors.append(BatchItemError(id=item_id, error=str(e), kind=e.kind))
        else:
            result.succeeded += 1

    logger.info(f"Batch {action}: {result.succeeded} ok, {result.failed} failed")
    return result
