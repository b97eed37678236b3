"""Quiz attempt lifecycle: start, save draft answers, submit exactly once.

A timed attempt gets a server-side deadline and a signed deadline token. A
submission arriving after the deadline is scored with the answers saved
before it, the same outcome an auto-submit at the deadline would produce.
Submitting commits the attempt, its result and the progress update in one
conditional transaction, so two racing submissions of the same attempt
cannot both be scored.
"""
from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.errors import AttemptClosedError, DeadlineTokenError, NotFoundError, PermissionDeniedError, TopicLockedError
from app.core.jwt_auth import create_deadline_token, verify_deadline_token
from app.core.logging import DOMAIN_GRADING, get_domain_logger
from app.engine.content import ContentCatalog
from app.engine.evaluator import evaluate, shuffle_questions
from app.engine.gate import GateState
from app.engine.keys import ATTEMPTS, attempt_key, result_key
from app.engine.progress import ProgressService, ProgressUpdate
from app.memory.store import DocumentStore, Query, Transaction
from app.models.records import AttemptStatus, Evaluation, QuizAttempt, QuizItem, QuizResult, utcnow

logger = get_domain_logger(__name__, DOMAIN_GRADING)


@dataclass
class StartedAttempt:
    attempt: QuizAttempt
    questions: list[dict]
    deadline_token: str | None = None


@dataclass
class SubmissionOutcome:
    attempt: QuizAttempt
    evaluation: Evaluation
    result: QuizResult | None = None
    update: ProgressUpdate | None = None
    replayed: bool = False
    late: bool = False


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _public_question(question) -> dict:
    data = question.model_dump(mode="json")
    data.pop("correct_answer_index", None)
    data.pop("answer_key", None)
    return data


class AttemptService:
    def __init__(self, store: DocumentStore, content: ContentCatalog, progress: ProgressService):
        self.store = store
        self.content = content
        self.progress = progress

    def load(self, attempt_id: str) -> QuizAttempt:
        doc = self.store.get(attempt_key(attempt_id))
        if doc is None:
            raise NotFoundError(f"Attempt {attempt_id} not found")
        return QuizAttempt.model_validate(doc)

    def _owned(self, attempt_id: str, student_id: str) -> QuizAttempt:
        attempt = self.load(attempt_id)
        if attempt.student_id != student_id:
            raise PermissionDeniedError("Attempt belongs to another student")
        return attempt

    def start(
        self,
        student_id: str,
        quiz_id: str,
        *,
        rng: random.Random | None = None,
        now: datetime | None = None,
    ) -> StartedAttempt:
        item = self.content.quiz(quiz_id)
        if self.progress.topic_state(student_id, item.topic) != GateState.UNLOCKED:
            raise TopicLockedError(f"Topic {item.topic} is locked", details={"topic": item.topic})

        now = now or utcnow()
        quiz = item.quiz
        presented = shuffle_questions(quiz, rng)
        deadline = now + timedelta(minutes=quiz.time_limit_minutes) if quiz.time_limit_minutes else None
        attempt = QuizAttempt(
            id=uuid.uuid4().hex,
            student_id=student_id,
            quiz_id=item.id,
            topic=item.topic,
            grading_period=item.grading_period,
            presented_order=[q.id for q in presented],
            started_at=now,
            deadline=deadline,
        )
        self.store.put(attempt_key(attempt.id), attempt.model_dump(mode="json"))
        token = create_deadline_token(attempt.id, student_id, deadline) if deadline else None
        logger.info("Attempt started id=%s student=%s quiz=%s deadline=%s", attempt.id, student_id, item.id, deadline)
        return StartedAttempt(
            attempt=attempt,
            questions=[_public_question(q) for q in presented],
            deadline_token=token,
        )

    def save_answers(
        self, attempt_id: str, student_id: str, answers: dict[str, Any], *, now: datetime | None = None
    ) -> QuizAttempt:
        """Persist draft answers. Refused once the attempt is submitted or its deadline passed."""
        self._owned(attempt_id, student_id)
        now = now or utcnow()
        key = attempt_key(attempt_id)

        def _save(tx: Transaction) -> QuizAttempt:
            attempt = QuizAttempt.model_validate(tx.get(key))
            if attempt.status != AttemptStatus.OPEN:
                raise AttemptClosedError(f"Attempt {attempt_id} is already submitted")
            if attempt.deadline and now > _aware(attempt.deadline):
                raise AttemptClosedError(f"Attempt {attempt_id} is past its deadline")
            attempt.answers = {**attempt.answers, **answers}
            tx.put(key, attempt.model_dump(mode="json"))
            return attempt

        return self.store.run_transaction([key], _save)

    def submit(
        self,
        attempt_id: str,
        student_id: str,
        answers: dict[str, Any] | None = None,
        *,
        deadline_token: str | None = None,
        auto: bool = False,
        now: datetime | None = None,
    ) -> SubmissionOutcome:
        attempt = self._owned(attempt_id, student_id)
        if attempt.status == AttemptStatus.SUBMITTED:
            return self._replay(attempt)

        now = now or utcnow()
        late = False
        if attempt.deadline:
            deadline = _aware(attempt.deadline)
            if not auto:
                if not deadline_token:
                    raise DeadlineTokenError("Timed attempts must be submitted with their deadline token")
                signed = _aware(verify_deadline_token(deadline_token, attempt_id, student_id))
                if signed != deadline:
                    raise DeadlineTokenError("Deadline token does not match the attempt deadline")
            late = now > deadline
        if late or auto or answers is None:
            final_answers = dict(attempt.answers)
        else:
            final_answers = {**attempt.answers, **answers}
        if late and answers:
            logger.info("Late submission attempt=%s; scoring answers saved before the deadline", attempt_id)

        item: QuizItem = self.content.quiz(attempt.quiz_id)
        by_id = {q.id: q for q in item.quiz.questions}
        presented = [by_id[qid] for qid in attempt.presented_order if qid in by_id]
        evaluation = evaluate(item.quiz, final_answers, presented)

        result = None
        if not evaluation.empty:
            result = QuizResult(
                id=attempt.id,
                student_id=student_id,
                quiz_id=attempt.quiz_id,
                topic=attempt.topic,
                grading_period=attempt.grading_period,
                score=evaluation.correct_count,
                total=evaluation.total,
                percentage=evaluation.percentage,
                submitted_at=now,
            )

        key = attempt_key(attempt_id)
        read_keys = [key] + (self.progress.read_keys_for(result) if result else [])

        def _claim(tx: Transaction) -> SubmissionOutcome | None:
            current = QuizAttempt.model_validate(tx.get(key))
            if current.status == AttemptStatus.SUBMITTED:
                return None
            current.status = AttemptStatus.SUBMITTED
            current.answers = final_answers
            current.evaluation = evaluation
            current.submitted_at = now
            current.auto_submitted = auto or late
            update = self.progress.fold_result(tx, result) if result else None
            tx.put(key, current.model_dump(mode="json"))
            return SubmissionOutcome(
                attempt=current,
                evaluation=evaluation,
                result=update.result if update else None,
                update=update,
                late=late,
            )

        outcome = self.store.run_transaction(read_keys, _claim)
        if outcome is None:
            return self._replay(self.load(attempt_id))
        logger.info(
            "Attempt submitted id=%s student=%s correct=%d/%d pct=%d auto=%s",
            attempt_id,
            student_id,
            evaluation.correct_count,
            evaluation.total,
            evaluation.percentage,
            outcome.attempt.auto_submitted,
        )
        if outcome.update:
            self.progress.log_update(outcome.result, outcome.update)
        return outcome

    def _replay(self, attempt: QuizAttempt) -> SubmissionOutcome:
        doc = self.store.get(result_key(attempt.student_id, attempt.id))
        logger.debug("Replaying recorded outcome of attempt %s", attempt.id)
        return SubmissionOutcome(
            attempt=attempt,
            evaluation=attempt.evaluation or Evaluation(correct_count=0, total=0, percentage=0, empty=True),
            result=QuizResult.model_validate(doc) if doc else None,
            replayed=True,
        )

    def open_timed_attempts(self) -> list[QuizAttempt]:
        rows = self.store.query(Query(prefix=ATTEMPTS, where=(("status", AttemptStatus.OPEN.value),)))
        return [attempt for attempt in (QuizAttempt.model_validate(doc) for _, doc in rows) if attempt.deadline]

    def expire_overdue(self, now: datetime | None = None) -> list[SubmissionOutcome]:
        """Auto-submit every open attempt whose deadline has passed."""
        now = now or utcnow()
        outcomes = []
        for attempt in self.open_timed_attempts():
            if _aware(attempt.deadline) <= now:
                outcomes.append(self.submit(attempt.id, attempt.student_id, auto=True, now=now))
        return outcomes
