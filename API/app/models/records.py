"""Domain records exchanged with the document store.

Documents are stored as ``model_dump(mode="json")`` of these models and read
back with ``model_validate``; nothing else in the engine touches raw dicts.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Curriculum ───────────────────────────────────────────────────────────────

class Topic(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str
    title: str
    order: int = Field(ge=1)


# ── Questions (tagged by question_type) ──────────────────────────────────────

class MultipleChoiceQuestion(BaseModel):
    id: str
    text: str = ""
    question_type: Literal["multipleChoice"] = "multipleChoice"
    options: list[str] = Field(default_factory=list)
    correct_answer_index: int = Field(ge=0)


class IdentificationQuestion(BaseModel):
    id: str
    text: str = ""
    question_type: Literal["identification"] = "identification"
    answer_key: list[str] = Field(min_length=1, max_length=1)


class EnumerationQuestion(BaseModel):
    id: str
    text: str = ""
    question_type: Literal["enumeration"] = "enumeration"
    answer_key: list[str] = Field(min_length=1)


Question = Annotated[
    Union[MultipleChoiceQuestion, IdentificationQuestion, EnumerationQuestion],
    Field(discriminator="question_type"),
]


class QuizDefinition(BaseModel):
    id: str
    topic: str
    title: str = ""
    grading_period: str | None = None
    questions: list[Question] = Field(default_factory=list)
    randomize_questions: bool = False
    time_limit_minutes: int | None = None

    @field_validator("time_limit_minutes")
    @classmethod
    def _non_positive_means_untimed(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            return None
        return value

    @model_validator(mode="after")
    def _unique_question_ids(self) -> "QuizDefinition":
        # Answers are keyed by question id.
        seen: set[str] = set()
        duplicates: set[str] = set()
        for question in self.questions:
            if question.id in seen:
                duplicates.add(question.id)
            seen.add(question.id)
        if duplicates:
            raise ValueError(f"Duplicate question ids: {', '.join(sorted(duplicates))}")
        return self


# ── Course content (tagged by content_type) ──────────────────────────────────

class QuizItem(BaseModel):
    id: str
    teacher_id: str
    title: str
    topic: str
    grading_period: str | None = None
    content_type: Literal["quiz"] = "quiz"
    quiz: QuizDefinition
    is_archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class LessonMaterialItem(BaseModel):
    id: str
    teacher_id: str
    title: str
    topic: str
    grading_period: str | None = None
    content_type: Literal["lessonMaterial"] = "lessonMaterial"
    main_content: str = ""
    is_archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)


CourseContent = Annotated[Union[QuizItem, LessonMaterialItem], Field(discriminator="content_type")]


# ── Student state ────────────────────────────────────────────────────────────

class ProgressStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class TopicProgress(BaseModel):
    mastery: int = Field(default=0, ge=0, le=100)
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    last_activity: datetime = Field(default_factory=utcnow)
    quizzes_attempted: int = Field(default=0, ge=0)
    last_quiz_score: int | None = None
    last_quiz_correct: int | None = None
    last_quiz_total: int | None = None
    best_quiz_score: int | None = None
    materials_viewed: bool = False


class StudentProgress(BaseModel):
    student_id: str
    topics: dict[str, TopicProgress] = Field(default_factory=dict)
    unlocked_achievement_ids: list[str] = Field(default_factory=list)
    total_points: int = 0


class QuizResult(BaseModel):
    id: str
    student_id: str
    quiz_id: str
    topic: str
    grading_period: str | None = None
    score: int = Field(ge=0)
    total: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)
    difficulty: str | None = None
    submitted_at: datetime = Field(default_factory=utcnow)
    counts_toward_quarter: bool = True


class QuarterStatus(BaseModel):
    q1: bool = False
    q2: bool = False
    q3: bool = False
    q4: bool = False


class Student(BaseModel):
    id: str
    username: str = ""
    display_name: str | None = None
    grade_level: str | None = None
    section_id: str | None = None
    teacher_id: str | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.username or self.id


class MasteryLevel(str, Enum):
    EXPERT = "Expert"
    ADVANCED = "Advanced"
    PROFICIENT = "Proficient"
    BEGINNER = "Beginner"


class StudentRankingEntry(BaseModel):
    student_id: str
    display_name: str
    rank: int
    overall_score: int
    quiz_count: int
    topics_mastered: int
    total_topics: int
    average_score: int
    mastery_level: MasteryLevel


# ── Attempts ─────────────────────────────────────────────────────────────────

class AttemptStatus(str, Enum):
    OPEN = "open"
    SUBMITTED = "submitted"


class Evaluation(BaseModel):
    correct_count: int
    total: int
    percentage: int
    empty: bool = False
    question_results: dict[str, bool] = Field(default_factory=dict)
    skipped_answer_ids: list[str] = Field(default_factory=list)


class QuizAttempt(BaseModel):
    id: str
    student_id: str
    quiz_id: str
    topic: str
    grading_period: str | None = None
    presented_order: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    deadline: datetime | None = None
    status: AttemptStatus = AttemptStatus.OPEN
    answers: dict[str, Any] = Field(default_factory=dict)
    evaluation: Evaluation | None = None
    submitted_at: datetime | None = None
    auto_submitted: bool = False
