"""Course content: quizzes and lesson materials published by teachers."""
from __future__ import annotations

from pydantic import TypeAdapter

from app.core.errors import NotFoundError, TopicLockedError
from app.engine.gate import GateState
from app.engine.keys import CONTENT, content_key
from app.memory.store import DocumentStore, Query
from app.models.records import CourseContent, LessonMaterialItem, QuizItem

_content_adapter: TypeAdapter = TypeAdapter(CourseContent)


def parse_content(doc: dict) -> QuizItem | LessonMaterialItem:
    return _content_adapter.validate_python(doc)


def describe(item: QuizItem | LessonMaterialItem) -> dict:
    """Listing view of one content item; quizzes never expose their answer keys here."""
    base = {
        "id": item.id,
        "title": item.title,
        "topic": item.topic,
        "grading_period": item.grading_period,
        "content_type": item.content_type,
        "created_at": item.created_at.isoformat(),
    }
    if isinstance(item, QuizItem):
        base["question_count"] = len(item.quiz.questions)
        base["time_limit_minutes"] = item.quiz.time_limit_minutes
    elif isinstance(item, LessonMaterialItem):
        base["main_content"] = item.main_content
    else:
        raise TypeError(f"Unsupported content type: {type(item).__name__}")
    return base


class ContentCatalog:
    def __init__(self, store: DocumentStore):
        self.store = store

    def publish(self, item: QuizItem | LessonMaterialItem) -> QuizItem | LessonMaterialItem:
        if isinstance(item, QuizItem):
            # The quiz is addressed by its content id everywhere else.
            item = item.model_copy(
                update={
                    "quiz": item.quiz.model_copy(
                        update={"id": item.id, "topic": item.topic, "grading_period": item.grading_period}
                    )
                }
            )
        self.store.put(content_key(item.id), item.model_dump(mode="json"))
        return item

    def get(self, content_id: str) -> QuizItem | LessonMaterialItem:
        doc = self.store.get(content_key(content_id))
        if doc is None:
            raise NotFoundError(f"Content {content_id} not found")
        return parse_content(doc)

    def quiz(self, quiz_id: str) -> QuizItem:
        item = self.get(quiz_id)
        if not isinstance(item, QuizItem):
            raise NotFoundError(f"Content {quiz_id} is not a quiz")
        return item

    def for_topic(self, topic: str, include_archived: bool = False) -> list[QuizItem | LessonMaterialItem]:
        items = [parse_content(doc) for _, doc in self.store.query(Query(prefix=CONTENT, where=(("topic", topic),)))]
        if not include_archived:
            items = [item for item in items if not item.is_archived]
        return sorted(items, key=lambda item: (item.created_at, item.id))

    def visible_to_student(self, topic: str, state: GateState) -> dict:
        """Lesson materials plus the most recent quiz of an unlocked topic."""
        if state != GateState.UNLOCKED:
            raise TopicLockedError(f"Topic {topic} is locked", details={"topic": topic})
        materials: list[LessonMaterialItem] = []
        latest_quiz: QuizItem | None = None
        for item in self.for_topic(topic):
            if isinstance(item, LessonMaterialItem):
                materials.append(item)
            elif isinstance(item, QuizItem):
                latest_quiz = item
            else:
                raise TypeError(f"Unsupported content type: {type(item).__name__}")
        return {
            "topic": topic,
            "materials": [describe(item) for item in materials],
            "quiz": describe(latest_quiz) if latest_quiz else None,
        }
