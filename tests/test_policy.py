from __future__ import annotations

import asyncio

import pytest

from pysafeloc.policy import is_current, next_tick_delay
from pysafeloc.schedule import Generation, RecurringTicker


def test_fixed_interval_without_backoff() -> None:
    for failures in (0, 1, 10):
        assert next_tick_delay(interval_s=15, consecutive_failures=failures, backoff_enabled=False, max_interval_s=120) == 15


def test_backoff_doubles_and_caps() -> None:
    delays = [
        next_tick_delay(interval_s=15, consecutive_failures=n, backoff_enabled=True, max_interval_s=120)
        for n in range(6)
    ]
    assert delays == [15, 30, 60, 120, 120, 120]
    assert next_tick_delay(interval_s=15, consecutive_failures=10_000, backoff_enabled=True, max_interval_s=120) == 120


def test_backoff_never_shorter_than_interval() -> None:
    assert next_tick_delay(interval_s=30, consecutive_failures=3, backoff_enabled=True, max_interval_s=10) == 30


def test_generation_tokens() -> None:
    generation = Generation()
    token = generation.advance()
    assert generation.is_current(token)
    generation.advance()
    assert not generation.is_current(token)
    assert is_current(3, 3)
    assert not is_current(2, 3)


@pytest.mark.asyncio
async def test_ticker_fires_immediately_and_survives_errors() -> None:
    fired: list[int] = []

    def _tick() -> None:
        fired.append(len(fired))
        if len(fired) == 1:
            raise RuntimeError("first tick fails")

    ticker = RecurringTicker(_tick, lambda: 0.01)
    ticker.start()
    ticker.start()
    await asyncio.sleep(0.06)
    ticker.cancel()
    count = len(fired)
    await asyncio.sleep(0.03)

    assert count >= 3
    assert len(fired) == count
    assert not ticker.running


@pytest.mark.asyncio
async def test_ticker_without_immediate_fire_waits_for_delay() -> None:
    fired: list[None] = []
    ticker = RecurringTicker(lambda: fired.append(None), lambda: 10.0)
    ticker.start(immediate=False)
    await asyncio.sleep(0.01)
    assert fired == []
    assert ticker.running
    ticker.cancel()
