import asyncio
from datetime import timedelta

import pytest

from app.autonomy.countdown import CountdownRegistry, QuizCountdown
from app.models.records import utcnow


@pytest.mark.asyncio
async def test_countdown_fires_once_at_deadline():
    fired = []

    async def _expire(attempt_id):
        fired.append(attempt_id)

    countdown = QuizCountdown("a1", utcnow() + timedelta(milliseconds=50), _expire, tick_seconds=0.01).start()
    await asyncio.sleep(0.2)
    assert fired == ["a1"]
    assert countdown.fired is True
    assert countdown.running is False


@pytest.mark.asyncio
async def test_past_deadline_fires_immediately():
    fired = []

    async def _expire(attempt_id):
        fired.append(attempt_id)

    QuizCountdown("late", utcnow() - timedelta(seconds=5), _expire, tick_seconds=0.01).start()
    await asyncio.sleep(0.05)
    assert fired == ["late"]


@pytest.mark.asyncio
async def test_cancelled_countdown_never_fires():
    fired = []

    async def _expire(attempt_id):
        fired.append(attempt_id)

    async with QuizCountdown("a2", utcnow() + timedelta(milliseconds=80), _expire, tick_seconds=0.01) as countdown:
        await asyncio.sleep(0.01)
        assert countdown.running
    await asyncio.sleep(0.15)
    assert fired == []
    countdown.cancel()


@pytest.mark.asyncio
async def test_failing_expiry_is_contained():
    async def _expire(attempt_id):
        raise RuntimeError("store down")

    countdown = QuizCountdown("a3", utcnow(), _expire, tick_seconds=0.01).start()
    await asyncio.sleep(0.05)
    assert countdown.fired is True
    assert countdown.running is False


@pytest.mark.asyncio
async def test_registry_disarms_and_cleans_up():
    fired = []

    async def _expire(attempt_id):
        fired.append(attempt_id)

    registry = CountdownRegistry()
    registry.arm("keep", utcnow() + timedelta(milliseconds=30), _expire)
    registry.arm("drop", utcnow() + timedelta(milliseconds=30), _expire)
    registry.arm("later", utcnow() + timedelta(seconds=60), _expire)
    assert registry.disarm("drop") is True
    assert registry.disarm("drop") is False

    await asyncio.sleep(0.2)
    assert fired == ["keep"]
    assert "keep" not in registry
    assert registry.active() == ["later"]

    assert registry.cancel_all() == 1
    assert registry.active() == []
