"""Mastery Aggregator: folds the result log into per-topic and overall mastery.

Per-topic mastery is the points-weighted average of a topic's results. Taken
over the log in submission order, the stored value is the running maximum of
that cumulative average, which keeps it both weighted and non-decreasing. The
value kept on ``TopicProgress`` is a cache of :func:`topic_mastery` and can
always be rebuilt from the log.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from app.engine.evaluator import percent
from app.models.records import ProgressStatus, QuizResult, StudentProgress, TopicProgress, utcnow


def _ordered(results: Iterable[QuizResult]) -> list[QuizResult]:
    return sorted(results, key=lambda r: (r.submitted_at, r.id))


def weighted_mastery(results: Iterable[QuizResult]) -> int:
    """sum(earned) / sum(possible) * 100, half-up; 0 when nothing was possible."""
    earned = possible = 0
    for result in results:
        earned += result.score
        possible += result.total
    return percent(earned, possible)


def topic_mastery(results: Iterable[QuizResult]) -> int:
    best = 0
    earned = possible = 0
    for result in _ordered(results):
        earned += result.score
        possible += result.total
        best = max(best, percent(earned, possible))
    return best


def derive_status(progress: TopicProgress, threshold: int) -> ProgressStatus:
    if progress.quizzes_attempted > 0:
        best = progress.best_quiz_score if progress.best_quiz_score is not None else progress.last_quiz_score
        if best is not None and best >= threshold:
            return ProgressStatus.COMPLETED
        return ProgressStatus.IN_PROGRESS
    if progress.materials_viewed:
        return ProgressStatus.IN_PROGRESS
    return ProgressStatus.NOT_STARTED


def apply_result(
    progress: StudentProgress,
    result: QuizResult,
    topic_results: list[QuizResult],
    threshold: int,
) -> TopicProgress:
    """Fold one scored result into ``progress`` in place and return the topic record.

    ``topic_results`` is the topic's result log including ``result``.
    """
    record = progress.topics.get(result.topic) or TopicProgress()
    record.quizzes_attempted += 1
    record.last_quiz_score = result.percentage
    record.last_quiz_correct = result.score
    record.last_quiz_total = result.total
    record.best_quiz_score = max(record.best_quiz_score or 0, result.percentage)
    record.mastery = max(record.mastery, topic_mastery(topic_results))
    record.last_activity = result.submitted_at
    record.status = derive_status(record, threshold)
    progress.topics[result.topic] = record
    progress.total_points += result.score
    return record


def apply_content_viewed(progress: StudentProgress, topic: str, when: datetime | None = None) -> TopicProgress:
    record = progress.topics.get(topic) or TopicProgress()
    record.materials_viewed = True
    record.last_activity = when or utcnow()
    if record.status == ProgressStatus.NOT_STARTED:
        record.status = ProgressStatus.IN_PROGRESS
    progress.topics[topic] = record
    return record


def attempted(progress: StudentProgress) -> dict[str, TopicProgress]:
    return {slug: record for slug, record in progress.topics.items() if record.quizzes_attempted > 0}


def overall_mastery(topic_masteries: dict[str, int]) -> int:
    """Mean over attempted topics only; never-attempted topics are left out, not counted as 0."""
    if not topic_masteries:
        return 0
    return percent(sum(topic_masteries.values()), len(topic_masteries) * 100)


def derived_topic_masteries(progress: StudentProgress, results: list[QuizResult]) -> dict[str, int]:
    """Per-topic mastery rebuilt from the log, falling back to the stored cache for topics without log entries."""
    by_topic: dict[str, list[QuizResult]] = {}
    for result in results:
        by_topic.setdefault(result.topic, []).append(result)
    masteries = {topic: topic_mastery(topic_results) for topic, topic_results in by_topic.items()}
    for slug, record in attempted(progress).items():
        masteries.setdefault(slug, record.mastery)
    return masteries


@dataclass(frozen=True)
class MasterySummary:
    topic_mastery: dict[str, int]
    overall_mastery: int
    topics_mastered: int
    topics_completed: int
    quiz_count: int
    average_score: int
    total_points: int

    def as_dict(self) -> dict:
        return {
            "topic_mastery": dict(self.topic_mastery),
            "overall_mastery": self.overall_mastery,
            "topics_mastered": self.topics_mastered,
            "topics_completed": self.topics_completed,
            "quiz_count": self.quiz_count,
            "average_score": self.average_score,
            "total_points": self.total_points,
        }


def summarize(progress: StudentProgress, results: list[QuizResult], mastered_threshold: int) -> MasterySummary:
    masteries = derived_topic_masteries(progress, results)
    # Mastered (a mastery bound) and completed (a status) are separate counts.
    mastered = sum(1 for value in masteries.values() if value >= mastered_threshold)
    completed = sum(1 for record in progress.topics.values() if record.status == ProgressStatus.COMPLETED)
    average = percent(sum(r.percentage for r in results), len(results) * 100) if results else 0
    return MasterySummary(
        topic_mastery=masteries,
        overall_mastery=overall_mastery(masteries),
        topics_mastered=mastered,
        topics_completed=completed,
        quiz_count=len(results),
        average_score=average,
        total_points=progress.total_points,
    )
