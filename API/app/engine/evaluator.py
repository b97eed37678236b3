"""Quiz Evaluator: grades one submission against its quiz definition.

Grading depends only on question ids, never on presentation order, so a
shuffled attempt scores exactly like an unshuffled one.
"""
from __future__ import annotations

import math
import random
from typing import Any

from app.core.logging import DOMAIN_GRADING, get_domain_logger
from app.models.records import (
    EnumerationQuestion,
    Evaluation,
    IdentificationQuestion,
    MultipleChoiceQuestion,
    QuizDefinition,
)

logger = get_domain_logger(__name__, DOMAIN_GRADING)


def percent(part: float, whole: float) -> int:
    """Integer percentage rounded half-up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    if isinstance(part, int) and isinstance(whole, int):
        return (200 * part + whole) // (2 * whole)
    return int(math.floor(part / whole * 100 + 0.5))


def shuffle_questions(quiz: QuizDefinition, rng: random.Random | None = None) -> list:
    """Presentation order for one attempt. Fisher-Yates when the quiz asks for it."""
    questions = list(quiz.questions)
    if not quiz.randomize_questions:
        return questions
    rng = rng or random.Random()
    for i in range(len(questions) - 1, 0, -1):
        j = rng.randint(0, i)
        questions[i], questions[j] = questions[j], questions[i]
    return questions


def _fold(text: Any) -> str:
    return str(text).strip().casefold()


def _enumeration_set(lines: Any) -> set[str]:
    if isinstance(lines, (list, tuple)):
        items = lines
    else:
        items = str(lines).splitlines()
    # Duplicates collapse here, so repeating an item is neither rewarded nor penalised.
    return {folded for folded in (_fold(item) for item in items) if folded}


def is_correct(question, answer: Any) -> bool:
    if answer is None:
        return False
    if isinstance(question, MultipleChoiceQuestion):
        if isinstance(answer, bool):
            return False
        try:
            return int(answer) == question.correct_answer_index and float(answer) == int(answer)
        except (TypeError, ValueError, OverflowError):
            return False
    if isinstance(question, IdentificationQuestion):
        return _fold(answer) == _fold(question.answer_key[0])
    if isinstance(question, EnumerationQuestion):
        return _enumeration_set(answer) == _enumeration_set(question.answer_key)
    raise TypeError(f"Unsupported question type: {type(question).__name__}")


def evaluate(quiz: QuizDefinition, answers: dict[str, Any], presented_order: list | None = None) -> Evaluation:
    """Score ``answers`` (question id -> answer) against ``quiz``.

    Unanswered questions count as incorrect. Answers for ids the quiz does not
    contain are skipped. A quiz without questions yields an empty evaluation
    with percentage 0 rather than an error.
    """
    questions = list(presented_order) if presented_order is not None else list(quiz.questions)
    known_ids = {question.id for question in quiz.questions}

    skipped = sorted(str(qid) for qid in answers if qid not in known_ids)
    if skipped:
        logger.debug("Skipping answers for unknown questions quiz=%s ids=%s", quiz.id, skipped)

    results: dict[str, bool] = {}
    for question in questions:
        if question.id not in known_ids:
            continue
        results[question.id] = is_correct(question, answers.get(question.id))

    total = len(results)
    correct = sum(1 for ok in results.values() if ok)
    if total == 0:
        logger.info("Quiz %s has no questions; reporting an empty evaluation", quiz.id)
    return Evaluation(
        correct_count=correct,
        total=total,
        percentage=percent(correct, total),
        empty=total == 0,
        question_results=results,
        skipped_answer_ids=skipped,
    )
