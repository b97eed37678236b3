"""Progression Gate: which topics a student may open."""
from __future__ import annotations

from enum import Enum

from app.models.records import ProgressStatus, StudentProgress, Topic, TopicProgress


class GateState(str, Enum):
    LOCKED = "Locked"
    UNLOCKED = "Unlocked"


def clears_threshold(progress: TopicProgress | None, threshold: int) -> bool:
    """Completed and scored at least ``threshold`` on the best attempt so far.

    The best score is read alongside the last one so a weaker retake never
    relocks the topic that follows.
    """
    if progress is None or progress.status != ProgressStatus.COMPLETED:
        return False
    scores = [s for s in (progress.last_quiz_score, progress.best_quiz_score) if s is not None]
    return bool(scores) and max(scores) >= threshold


def topic_state(topic: Topic, catalog: list[Topic], progress: StudentProgress | None, threshold: int) -> GateState:
    if topic.order == 1:
        return GateState.UNLOCKED
    previous = next((t for t in catalog if t.order == topic.order - 1), None)
    if previous is None:
        return GateState.LOCKED
    record = progress.topics.get(previous.slug) if progress else None
    return GateState.UNLOCKED if clears_threshold(record, threshold) else GateState.LOCKED


def gate_map(catalog: list[Topic], progress: StudentProgress | None, threshold: int) -> dict[str, GateState]:
    return {topic.slug: topic_state(topic, catalog, progress, threshold) for topic in sorted(catalog, key=lambda t: t.order)}


def unlocked_topics(catalog: list[Topic], progress: StudentProgress | None, threshold: int) -> list[str]:
    return [slug for slug, state in gate_map(catalog, progress, threshold).items() if state == GateState.UNLOCKED]
