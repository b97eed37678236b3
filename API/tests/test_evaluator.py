import random

import pytest
from pydantic import ValidationError

from app.engine.evaluator import evaluate, is_correct, percent, shuffle_questions
from app.models.records import EnumerationQuestion, IdentificationQuestion, MultipleChoiceQuestion, QuizDefinition


def _mixed_quiz(randomize: bool = False) -> QuizDefinition:
    return QuizDefinition(
        id="quiz-1",
        topic="quadratic-equations-functions",
        randomize_questions=randomize,
        questions=[
            MultipleChoiceQuestion(id="mc", options=["0", "1", "2"], correct_answer_index=1),
            IdentificationQuestion(id="id", answer_key=["42"]),
            EnumerationQuestion(id="enum", answer_key=["x", "y"]),
        ],
    )


def test_end_to_end_mixed_quiz_scores_full_marks():
    evaluation = evaluate(_mixed_quiz(), {"mc": 1, "id": "42", "enum": "y\nx"})
    assert evaluation.correct_count == 3
    assert evaluation.total == 3
    assert evaluation.percentage == 100
    assert evaluation.empty is False


@pytest.mark.parametrize("submission", ["b\na\nc", "a\nb\nc\na", "c\nB\nA", "  a \n\n b\nc\n"])
def test_enumeration_ignores_order_case_and_duplicates(submission):
    question = EnumerationQuestion(id="e", answer_key=["a", "b", "c"])
    assert is_correct(question, submission)


def test_enumeration_missing_item_is_incorrect():
    question = EnumerationQuestion(id="e", answer_key=["a", "b", "c"])
    assert not is_correct(question, "a\nb")
    assert not is_correct(question, "a\nb\nc\nd")


@pytest.mark.parametrize("answer,expected", [("  paris ", True), ("Paris ", True), ("PARIS", True), ("parís", False)])
def test_identification_trims_and_folds_case_only(answer, expected):
    question = IdentificationQuestion(id="i", answer_key=["Paris"])
    assert is_correct(question, answer) is expected


def test_multiple_choice_requires_exact_index():
    question = MultipleChoiceQuestion(id="m", options=["a", "b"], correct_answer_index=1)
    assert is_correct(question, 1)
    assert is_correct(question, "1")
    assert not is_correct(question, 0)
    assert not is_correct(question, 1.5)
    assert not is_correct(question, True)
    assert not is_correct(question, "b")


def test_multiple_choice_rejects_non_finite_answers():
    question = MultipleChoiceQuestion(id="m", options=["a", "b"], correct_answer_index=1)
    assert not is_correct(question, float("inf"))
    assert not is_correct(question, float("-inf"))
    assert not is_correct(question, float("nan"))
    assert not is_correct(question, 10**400)


def test_duplicate_question_ids_are_rejected():
    with pytest.raises(ValidationError, match="Duplicate question ids: a"):
        QuizDefinition(
            id="quiz-dup",
            topic="variation",
            questions=[
                MultipleChoiceQuestion(id="a", options=["0", "1"], correct_answer_index=0),
                MultipleChoiceQuestion(id="a", options=["0", "1"], correct_answer_index=1),
            ],
        )


def test_unanswered_questions_count_as_incorrect():
    evaluation = evaluate(_mixed_quiz(), {"mc": 1})
    assert evaluation.correct_count == 1
    assert evaluation.total == 3
    assert evaluation.percentage == 33
    assert evaluation.question_results == {"mc": True, "id": False, "enum": False}


def test_unknown_question_ids_are_skipped_not_fatal():
    evaluation = evaluate(_mixed_quiz(), {"mc": 1, "id": "42", "enum": "x\ny", "ghost": "boo"})
    assert evaluation.percentage == 100
    assert evaluation.skipped_answer_ids == ["ghost"]


def test_empty_quiz_reports_empty_condition():
    quiz = QuizDefinition(id="empty", topic="variation", questions=[])
    evaluation = evaluate(quiz, {"anything": 1})
    assert evaluation.empty is True
    assert evaluation.total == 0
    assert evaluation.percentage == 0


def test_percentage_rounds_half_up():
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(0, 0) == 0


def test_shuffle_is_a_permutation_and_only_when_requested():
    quiz = _mixed_quiz(randomize=False)
    assert [q.id for q in shuffle_questions(quiz, random.Random(3))] == ["mc", "id", "enum"]

    randomized = _mixed_quiz(randomize=True)
    shuffled = shuffle_questions(randomized, random.Random(3))
    assert sorted(q.id for q in shuffled) == ["enum", "id", "mc"]
    assert [q.id for q in randomized.questions] == ["mc", "id", "enum"]


def test_score_ignores_presentation_order():
    quiz = _mixed_quiz(randomize=True)
    answers = {"mc": 1, "id": "wrong", "enum": "x\ny"}
    baseline = evaluate(quiz, answers).percentage
    for seed in range(20):
        order = shuffle_questions(quiz, random.Random(seed))
        assert evaluate(quiz, answers, order).percentage == baseline
