from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from app.core.settings import settings
from app.models.records import utcnow

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str], Awaitable[None]]


class QuizCountdown:
    """Cooperative per-attempt timer. Ticks until the deadline, then fires ``on_expire`` once.

    The deadline lives on the persisted attempt; this timer only drives the
    auto-submit and can be rebuilt from it at any time.
    """

    def __init__(
        self,
        attempt_id: str,
        deadline: datetime,
        on_expire: ExpiryCallback,
        *,
        tick_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.attempt_id = attempt_id
        self.deadline = deadline if deadline.tzinfo else deadline.replace(tzinfo=timezone.utc)
        self.on_expire = on_expire
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.countdown_tick_seconds
        self.clock = clock
        self.fired = False
        self._task: asyncio.Task | None = None

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, (self.deadline - self.clock()).total_seconds())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "QuizCountdown":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"countdown-{self.attempt_id}")
        return self

    async def _run(self) -> None:
        while not self.fired:
            remaining = self.remaining_seconds
            if remaining <= 0:
                self.fired = True
                try:
                    await self.on_expire(self.attempt_id)
                except Exception:  # noqa: BLE001
                    logger.exception("Auto-submit failed for attempt %s", self.attempt_id)
                return
            await asyncio.sleep(min(self.tick_seconds, remaining))

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def __aenter__(self) -> "QuizCountdown":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class CountdownRegistry:
    """Live countdowns by attempt id. Every exit path disarms: submit, expiry, shutdown."""

    def __init__(self):
        self._countdowns: dict[str, QuizCountdown] = {}

    def arm(self, attempt_id: str, deadline: datetime, on_expire: ExpiryCallback) -> QuizCountdown:
        self.disarm(attempt_id)

        async def _expire(expired_id: str) -> None:
            try:
                await on_expire(expired_id)
            finally:
                self._countdowns.pop(expired_id, None)

        countdown = QuizCountdown(attempt_id, deadline, _expire).start()
        self._countdowns[attempt_id] = countdown
        logger.debug("Countdown armed attempt=%s remaining=%.1fs", attempt_id, countdown.remaining_seconds)
        return countdown

    def disarm(self, attempt_id: str) -> bool:
        countdown = self._countdowns.pop(attempt_id, None)
        if countdown is None:
            return False
        countdown.cancel()
        return True

    def cancel_all(self) -> int:
        count = len(self._countdowns)
        for countdown in list(self._countdowns.values()):
            countdown.cancel()
        self._countdowns.clear()
        return count

    def active(self) -> list[str]:
        return [attempt_id for attempt_id, countdown in self._countdowns.items() if countdown.running]

    def __contains__(self, attempt_id: str) -> bool:
        return attempt_id in self._countdowns


countdown_registry = CountdownRegistry()
