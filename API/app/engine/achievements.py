from __future__ import annotations

from app.data.achievements import FIRST_QUIZ, LESSON_EXPLORER, TOPIC_STARTER, topic_achievement_id
from app.models.records import StudentProgress


def earned_achievements(progress: StudentProgress, *, mastery_threshold: int, explorer_topic_count: int) -> list[str]:
    earned: list[str] = []
    records = progress.topics
    if any(record.quizzes_attempted > 0 for record in records.values()):
        earned.append(FIRST_QUIZ)
    viewed = [slug for slug, record in records.items() if record.materials_viewed]
    if viewed:
        earned.append(TOPIC_STARTER)
    if len(viewed) >= explorer_topic_count:
        earned.append(LESSON_EXPLORER)
    for slug, record in records.items():
        achievement_id = topic_achievement_id(slug)
        if achievement_id and record.mastery >= mastery_threshold:
            earned.append(achievement_id)
    return earned


def unlock_new(progress: StudentProgress, *, mastery_threshold: int, explorer_topic_count: int) -> list[str]:
    """Add newly earned achievement ids to ``progress`` and return them. Unlocked ids are never removed."""
    have = set(progress.unlocked_achievement_ids)
    fresh = [
        achievement_id
        for achievement_id in earned_achievements(
            progress, mastery_threshold=mastery_threshold, explorer_topic_count=explorer_topic_count
        )
        if achievement_id not in have
    ]
    progress.unlocked_achievement_ids.extend(fresh)
    return fresh
