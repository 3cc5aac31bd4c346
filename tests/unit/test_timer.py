import asyncio
from datetime import timedelta

import pytest

from checkout_engine.domain.timer import CancellationToken, ExpiryTimer


def _timer(clock, seconds, fired):
    return ExpiryTimer(
        clock() + timedelta(seconds=seconds),
        lambda: fired.append(clock()),
        clock=clock,
    )


def test_tick_reports_minutes_and_seconds(clock):
    fired = []
    timer = _timer(clock, 600, fired)

    assert timer.tick()
    assert (timer.minutes, timer.seconds) == (10, 0)

    clock.advance(61.4)
    timer.tick()
    assert (timer.minutes, timer.seconds) == (8, 58)
    assert not timer.is_almost_expired


def test_almost_expired_under_two_minutes(clock):
    timer = _timer(clock, 600, [])

    clock.advance(480)
    timer.tick()
    assert not timer.is_almost_expired

    clock.advance(1)
    timer.tick()
    assert timer.is_almost_expired


def test_fires_once_at_deadline(clock):
    fired = []
    timer = _timer(clock, 600, fired)

    clock.advance(600)
    assert not timer.tick()
    assert not timer.tick()

    assert len(fired) == 1
    assert timer.expired
    assert (timer.minutes, timer.seconds) == (0, 0)


def test_remaining_is_recomputed_from_deadline(clock):
    timer = _timer(clock, 600, [])
    timer.tick()

    # a stalled ticker catches up in one tick
    clock.advance(300)
    timer.tick()

    assert timer.remaining_seconds == 300
    assert (timer.minutes, timer.seconds) == (5, 0)


def test_stopped_timer_never_fires(clock):
    fired = []
    timer = _timer(clock, 600, fired)

    timer.stop()
    clock.advance(601)

    assert not timer.tick()
    assert fired == []
    assert not timer.running


@pytest.mark.asyncio
async def test_background_task_fires_callback(clock):
    fired = []
    timer = _timer(clock, 1, fired)

    task = timer.start(interval=0.01)
    clock.advance(2)
    await asyncio.wait_for(task, timeout=1)

    assert len(fired) == 1


@pytest.mark.asyncio
async def test_stop_cancels_background_task(clock):
    timer = _timer(clock, 600, [])

    task = timer.start(interval=0.01)
    await asyncio.sleep(0)
    timer.stop()

    with pytest.raises(asyncio.CancelledError):
        await task


def test_cancellation_token_keeps_first_reason():
    token = CancellationToken()
    assert not token.cancelled

    token.cancel("expired")
    token.cancel("cancelled")

    assert token.cancelled
    assert token.reason == "expired"
