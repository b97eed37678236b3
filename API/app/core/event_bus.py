import asyncio
from collections import deque
from datetime import datetime, timezone

QUIZ_SCORED = "quiz_scored"
TOPIC_UNLOCKED = "topic_unlocked"
ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
CONTENT_VIEWED = "content_viewed"
QUARTER_CHANGED = "quarter_changed"
PROGRESS_RESET = "progress_reset"


class _Subscriber:
    __slots__ = ("queue", "student_id")

    def __init__(self, student_id: str | None):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.student_id = student_id

    def wants(self, event: dict) -> bool:
        return self.student_id is None or event.get("student_id") == self.student_id


class EventBus:
    """Fan-out of engine events to live listeners (the /events stream)."""

    def __init__(self, history_size: int = 200):
        self._subscribers: list[_Subscriber] = []
        self._history: deque[dict] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    async def publish(self, event_type: str, student_id: str | None, data: dict) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "student_id": student_id,
            "data": data,
        }
        async with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            if subscriber.wants(event):
                subscriber.queue.put_nowait(event)

    async def subscribe(self, student_id: str | None = None, replay_last: int = 10) -> asyncio.Queue:
        subscriber = _Subscriber(student_id)
        async with self._lock:
            self._subscribers.append(subscriber)
            history = [event for event in self._history if subscriber.wants(event)][-replay_last:]
        for event in history:
            subscriber.queue.put_nowait(event)
        return subscriber.queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            self._subscribers = [s for s in self._subscribers if s.queue is not queue]

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def history(self) -> list[dict]:
        return list(self._history)


event_bus = EventBus()
