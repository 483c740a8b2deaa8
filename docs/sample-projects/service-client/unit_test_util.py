"""Tests written once. Each build gets the test functions it can run"""
import pytest

from python_maybe_async import maybe_async


@maybe_async.both
async def some_function() -> bool:
    return True


@maybe_async.test(harness="pytest.mark.anyio")
async def test_async_fn() -> None:
    res = await some_function()
    assert res is True


@maybe_async.test(flag="is_sync")
async def test_async_fn2() -> None:
    res = await some_function()
    assert res is True


@maybe_async.test
@pytest.mark.parametrize("count", [1, 2])
async def test_async_fn3(count: int) -> None:
    results = [await some_function() for _ in range(count)]
    assert results == [True] * count
