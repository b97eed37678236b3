from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Thresholds:
    """Engine thresholds, resolved once from settings and passed down explicitly."""

    unlock: int = 75
    mastered: int = 80
    achievement_mastery: int = 85
    lesson_explorer_topics: int = 3

    @classmethod
    def from_settings(cls, settings) -> "Thresholds":
        return cls(
            unlock=settings.unlock_threshold,
            mastered=settings.mastered_threshold,
            achievement_mastery=settings.achievement_mastery_threshold,
            lesson_explorer_topics=settings.lesson_explorer_topic_count,
        )
