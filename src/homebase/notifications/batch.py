"""Best-effort batch: run an operation per item, never let one failure stop the rest."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    succeeded: list[T] = field(default_factory=list)
    failed: list[T] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def total(self) -> int:
        return self.succeeded_count + self.failed_count


async def best_effort(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[bool | None]],
    label: str = "batch",
) -> BatchResult[T]:
    """Apply ``operation`` to every item sequentially.

    An item fails when the operation raises or returns ``False``; errors are
    logged and keyed by item index. The loop always runs to the end.
    """
    result: BatchResult[T] = BatchResult()
    for index, item in enumerate(items):
        try:
            outcome = await operation(item)
        except Exception as exc:
            logger.warning(f"{label}_item_failed", index=index, error=str(exc), exc_info=True)
            result.failed.append(item)
            result.errors[index] = str(exc) or type(exc).__name__
            continue
        if outcome is False:
            result.failed.append(item)
            result.errors[index] = "operation reported failure"
        else:
            result.succeeded.append(item)

    logger.info(
        f"{label}_complete",
        succeeded=result.succeeded_count,
        failed=result.failed_count,
    )
    return result
