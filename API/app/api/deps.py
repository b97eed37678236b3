from __future__ import annotations

from typing import Any, Callable, TypeVar

from starlette.concurrency import run_in_threadpool

from app.core.event_bus import ACHIEVEMENT_UNLOCKED, TOPIC_UNLOCKED, event_bus
from app.engine.progress import ProgressUpdate
from app.engine.services import EngineServices, get_services
from app.memory.cache import invalidate_leaderboards

T = TypeVar("T")


def services_dep() -> EngineServices:
    return get_services()


async def run_engine(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Engine and store calls are synchronous; keep them off the event loop."""
    return await run_in_threadpool(func, *args, **kwargs)


async def announce(event_type: str, student_id: str | None, data: dict, update: ProgressUpdate | None = None) -> None:
    """Publish a change and everything it unlocked, then drop cached leaderboards."""
    await event_bus.publish(event_type, student_id, data)
    if update is not None:
        for slug in update.newly_unlocked:
            await event_bus.publish(TOPIC_UNLOCKED, student_id, {"topic": slug})
        for achievement_id in update.new_achievements:
            await event_bus.publish(ACHIEVEMENT_UNLOCKED, student_id, {"achievement_id": achievement_id})
    await invalidate_leaderboards()


def topic_progress_view(update: ProgressUpdate) -> dict:
    return {
        "topic": update.topic,
        "mastery": update.record.mastery,
        "status": update.record.status.value,
        "quizzes_attempted": update.record.quizzes_attempted,
        "last_quiz_score": update.record.last_quiz_score,
        "best_quiz_score": update.record.best_quiz_score,
        "newly_unlocked": update.newly_unlocked,
        "new_achievements": update.new_achievements,
    }
