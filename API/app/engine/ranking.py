"""Ranking Engine: ordered leaderboard over a filtered student population.

Ranks are ordinal. Every entry gets a distinct rank 1..N from its sort
position, even when all scored keys tie; the display name and finally the
student id decide such ties so the order is total and reproducible.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.core.logging import DOMAIN_RANKING, get_domain_logger
from app.engine.evaluator import percent
from app.engine.mastery import derived_topic_masteries, overall_mastery
from app.models.records import MasteryLevel, QuizResult, Student, StudentProgress, StudentRankingEntry

logger = get_domain_logger(__name__, DOMAIN_RANKING)


@dataclass(frozen=True)
class RankingFilters:
    topic: str | None = None
    grade: str | None = None
    section: str | None = None
    teacher_id: str | None = None

    def admits(self, student: Student) -> bool:
        if self.grade and student.grade_level != self.grade:
            return False
        if self.section and student.section_id != self.section:
            return False
        if self.teacher_id and student.teacher_id != self.teacher_id:
            return False
        return True

    def as_dict(self) -> dict:
        return {"topic": self.topic, "grade": self.grade, "section": self.section, "teacher_id": self.teacher_id}


def mastery_level(score: int) -> MasteryLevel:
    if score >= 90:
        return MasteryLevel.EXPERT
    if score >= 70:
        return MasteryLevel.ADVANCED
    if score >= 50:
        return MasteryLevel.PROFICIENT
    return MasteryLevel.BEGINNER


def _entry(
    student: Student,
    progress: StudentProgress,
    results: list[QuizResult],
    filters: RankingFilters,
    total_topics: int,
    mastered_threshold: int,
) -> StudentRankingEntry:
    masteries = derived_topic_masteries(progress, results)
    if filters.topic:
        overall = masteries.get(filters.topic, 0)
    else:
        overall = overall_mastery(masteries)
    average = percent(sum(r.percentage for r in results), len(results) * 100) if results else 0
    return StudentRankingEntry(
        student_id=student.id,
        display_name=student.name,
        rank=0,
        overall_score=overall,
        quiz_count=len(results),
        topics_mastered=sum(1 for value in masteries.values() if value >= mastered_threshold),
        total_topics=total_topics,
        average_score=average,
        mastery_level=mastery_level(overall),
    )


def sort_key(entry: StudentRankingEntry) -> tuple:
    return (
        -entry.overall_score,
        -entry.topics_mastered,
        -entry.quiz_count,
        entry.display_name.casefold(),
        entry.student_id,
    )


def rank(
    students: list[Student],
    progress_by_student: dict[str, StudentProgress],
    results_by_student: dict[str, list[QuizResult]],
    filters: RankingFilters | None = None,
    *,
    total_topics: int,
    mastered_threshold: int,
) -> list[StudentRankingEntry]:
    filters = filters or RankingFilters()
    entries = [
        _entry(
            student,
            progress_by_student.get(student.id) or StudentProgress(student_id=student.id),
            results_by_student.get(student.id, []),
            filters,
            total_topics,
            mastered_threshold,
        )
        for student in students
        if filters.admits(student)
    ]
    entries.sort(key=sort_key)
    for position, entry in enumerate(entries, start=1):
        entry.rank = position
    logger.debug("Ranked %d of %d students filters=%s", len(entries), len(students), filters.as_dict())
    return entries
