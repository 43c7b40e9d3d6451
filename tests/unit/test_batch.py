"""Unit tests for the best-effort batch combinator."""

import pytest

from homebase.notifications.batch import best_effort


@pytest.mark.asyncio
async def test_all_items_succeed():
    seen = []

    async def op(item: int) -> bool:
        seen.append(item)
        return True

    result = await best_effort([1, 2, 3], op)
    assert seen == [1, 2, 3]
    assert result.succeeded == [1, 2, 3]
    assert result.failed_count == 0
    assert result.total == 3


@pytest.mark.asyncio
async def test_exception_does_not_stop_the_loop():
    async def op(item: int) -> None:
        if item == 2:
            raise RuntimeError("recipient 2 is broken")

    result = await best_effort([1, 2, 3], op, label="test")
    assert result.succeeded == [1, 3]
    assert result.failed == [2]
    assert result.errors == {1: "recipient 2 is broken"}


@pytest.mark.asyncio
async def test_false_return_counts_as_failure():
    async def op(item: str) -> bool:
        return item != "skip"

    result = await best_effort(["a", "skip", "b"], op)
    assert result.succeeded_count == 2
    assert result.failed_count == 1
    assert 1 in result.errors


@pytest.mark.asyncio
async def test_empty_batch():
    async def op(item: object) -> bool:
        raise AssertionError("never called")

    result = await best_effort([], op)
    assert result.total == 0
