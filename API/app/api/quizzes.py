from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.deps import announce, run_engine, services_dep, topic_progress_view
from app.autonomy.countdown import countdown_registry
from app.core.auth import Identity, ensure_self_or_staff, get_identity, require_roles
from app.core.event_bus import QUIZ_SCORED
from app.core.logging import DOMAIN_GRADING, get_domain_logger
from app.engine.attempts import SubmissionOutcome
from app.engine.services import EngineServices, get_services
from app.models.records import AttemptStatus, utcnow

router = APIRouter(prefix="/quizzes", tags=["quizzes"])
logger = get_domain_logger(__name__, DOMAIN_GRADING)


class SaveAnswersRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)
    deadline_token: str | None = None


def _outcome_view(outcome: SubmissionOutcome) -> dict:
    return {
        "attempt_id": outcome.attempt.id,
        "quiz_id": outcome.attempt.quiz_id,
        "topic": outcome.attempt.topic,
        "correct_count": outcome.evaluation.correct_count,
        "total": outcome.evaluation.total,
        "percentage": outcome.evaluation.percentage,
        "empty": outcome.evaluation.empty,
        "question_results": outcome.evaluation.question_results,
        "skipped_answer_ids": outcome.evaluation.skipped_answer_ids,
        "replayed": outcome.replayed,
        "late": outcome.late,
        "auto_submitted": outcome.attempt.auto_submitted,
        "counts_toward_quarter": outcome.result.counts_toward_quarter if outcome.result else False,
        "progress": topic_progress_view(outcome.update) if outcome.update else None,
    }


async def _publish_outcome(outcome: SubmissionOutcome) -> None:
    if outcome.replayed or outcome.result is None:
        return
    await announce(
        QUIZ_SCORED,
        outcome.attempt.student_id,
        {
            "attempt_id": outcome.attempt.id,
            "quiz_id": outcome.attempt.quiz_id,
            "topic": outcome.attempt.topic,
            "percentage": outcome.evaluation.percentage,
            "auto_submitted": outcome.attempt.auto_submitted,
        },
        outcome.update,
    )


async def auto_submit(attempt_id: str) -> None:
    """Countdown expiry: score the attempt with whatever answers were saved."""
    services = get_services()
    attempt = await run_engine(services.attempts.load, attempt_id)
    if attempt.status != AttemptStatus.OPEN:
        return
    outcome = await run_engine(services.attempts.submit, attempt_id, attempt.student_id, auto=True)
    logger.info("Auto-submitted attempt=%s replayed=%s", attempt_id, outcome.replayed)
    await _publish_outcome(outcome)


@router.post("/{quiz_id}/attempts", status_code=201)
async def start_attempt(
    quiz_id: str,
    identity: Identity = Depends(require_roles("student")),
    services: EngineServices = Depends(services_dep),
):
    started = await run_engine(services.attempts.start, identity.user_id, quiz_id)
    attempt = started.attempt
    if attempt.deadline:
        countdown_registry.arm(attempt.id, attempt.deadline, auto_submit)
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "topic": attempt.topic,
        "questions": started.questions,
        "deadline": attempt.deadline.isoformat() if attempt.deadline else None,
        "deadline_token": started.deadline_token,
    }


@router.get("/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    attempt = await run_engine(services.attempts.load, attempt_id)
    ensure_self_or_staff(identity, attempt.student_id)
    remaining = None
    if attempt.deadline and attempt.status == AttemptStatus.OPEN:
        remaining = max(0, int((attempt.deadline - utcnow()).total_seconds()))
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "status": attempt.status.value,
        "deadline": attempt.deadline.isoformat() if attempt.deadline else None,
        "remaining_seconds": remaining,
        "saved_answers": attempt.answers,
        "evaluation": attempt.evaluation.model_dump() if attempt.evaluation else None,
    }


@router.put("/attempts/{attempt_id}/answers")
async def save_answers(
    attempt_id: str,
    payload: SaveAnswersRequest,
    identity: Identity = Depends(require_roles("student")),
    services: EngineServices = Depends(services_dep),
):
    attempt = await run_engine(services.attempts.save_answers, attempt_id, identity.user_id, payload.answers)
    return {"attempt_id": attempt.id, "saved": sorted(attempt.answers)}


@router.post("/attempts/{attempt_id}/submit")
async def submit_attempt(
    attempt_id: str,
    payload: SubmitRequest,
    identity: Identity = Depends(require_roles("student")),
    services: EngineServices = Depends(services_dep),
):
    outcome = await run_engine(
        services.attempts.submit,
        attempt_id,
        identity.user_id,
        payload.answers,
        deadline_token=payload.deadline_token,
    )
    countdown_registry.disarm(attempt_id)
    await _publish_outcome(outcome)
    return _outcome_view(outcome)
