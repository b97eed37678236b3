"""Student roster plus leaderboard assembly from store documents."""
from __future__ import annotations

from app.core.errors import NotFoundError
from app.engine.keys import PROGRESS, RESULTS, STUDENTS, student_key
from app.engine.ranking import RankingFilters, rank
from app.engine.thresholds import Thresholds
from app.memory.store import DocumentStore, Query
from app.models.records import QuizResult, Student, StudentProgress, StudentRankingEntry

# Everything a leaderboard is computed from.
SOURCE_PREFIXES = (STUDENTS, PROGRESS, RESULTS)


def rank_documents(
    documents,
    filters: RankingFilters,
    *,
    total_topics: int,
    thresholds: Thresholds,
) -> list[StudentRankingEntry]:
    """Leaderboard from ``(key, doc)`` pairs spanning students, progress and results."""
    students: list[Student] = []
    progress: dict[str, StudentProgress] = {}
    results: dict[str, list[QuizResult]] = {}
    for key, doc in documents:
        if key.startswith(STUDENTS):
            students.append(Student.model_validate(doc))
        elif key.startswith(PROGRESS):
            record = StudentProgress.model_validate(doc)
            progress[record.student_id] = record
        elif key.startswith(RESULTS):
            result = QuizResult.model_validate(doc)
            results.setdefault(result.student_id, []).append(result)
    return rank(
        students,
        progress,
        results,
        filters,
        total_topics=total_topics,
        mastered_threshold=thresholds.mastered,
    )


class LeaderboardService:
    def __init__(self, store: DocumentStore, total_topics: int, thresholds: Thresholds):
        self.store = store
        self.total_topics = total_topics
        self.thresholds = thresholds

    def register_student(self, student: Student) -> Student:
        self.store.put(student_key(student.id), student.model_dump(mode="json"))
        return student

    def student(self, student_id: str) -> Student:
        doc = self.store.get(student_key(student_id))
        if doc is None:
            raise NotFoundError(f"Student {student_id} not found")
        return Student.model_validate(doc)

    def students(self) -> list[Student]:
        return [Student.model_validate(doc) for _, doc in self.store.query(Query(prefix=STUDENTS))]

    def compute(self, filters: RankingFilters) -> list[StudentRankingEntry]:
        documents = [pair for prefix in SOURCE_PREFIXES for pair in self.store.query(Query(prefix=prefix))]
        return self.from_documents(documents, filters)

    def from_documents(self, documents, filters: RankingFilters) -> list[StudentRankingEntry]:
        return rank_documents(documents, filters, total_topics=self.total_topics, thresholds=self.thresholds)
