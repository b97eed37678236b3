from datetime import datetime, timedelta, timezone

from app.engine.mastery import (
    apply_content_viewed,
    apply_result,
    derive_status,
    overall_mastery,
    summarize,
    topic_mastery,
    weighted_mastery,
)
from app.models.records import ProgressStatus, QuizResult, StudentProgress, TopicProgress

T0 = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
TOPIC = "quadratic-equations-functions"


def _result(rid: str, score: int, total: int, minutes: int = 0, topic: str = TOPIC) -> QuizResult:
    return QuizResult(
        id=rid,
        student_id="s1",
        quiz_id="q-" + rid,
        topic=topic,
        score=score,
        total=total,
        percentage=round(score * 100 / total) if total else 0,
        submitted_at=T0 + timedelta(minutes=minutes),
    )


def test_weighted_mastery_weights_by_points():
    # 9/10 and 1/2 -> 10/12 -> 83, not the 70 a plain mean of percentages would give.
    assert weighted_mastery([_result("a", 9, 10), _result("b", 1, 2)]) == 83


def test_topic_mastery_never_decreases_on_worse_retake():
    first = _result("a", 9, 10, minutes=0)
    worse = _result("b", 2, 10, minutes=5)
    assert topic_mastery([first]) == 90
    assert topic_mastery([first, worse]) == 90
    assert weighted_mastery([first, worse]) == 55


def test_topic_mastery_grows_with_better_cumulative_average():
    log = [_result("a", 5, 10, 0), _result("b", 10, 10, 1), _result("c", 10, 10, 2)]
    assert topic_mastery(log) == 83


def test_apply_result_updates_record_and_points():
    progress = StudentProgress(student_id="s1")
    first = _result("a", 8, 10)
    record = apply_result(progress, first, [first], threshold=75)
    assert record.quizzes_attempted == 1
    assert record.mastery == 80
    assert record.last_quiz_score == 80
    assert record.last_quiz_correct == 8
    assert record.last_quiz_total == 10
    assert record.status == ProgressStatus.COMPLETED
    assert progress.total_points == 8

    worse = _result("b", 1, 10, minutes=3)
    record = apply_result(progress, worse, [first, worse], threshold=75)
    assert record.mastery == 80
    assert record.last_quiz_score == 10
    assert record.best_quiz_score == 80
    assert record.status == ProgressStatus.COMPLETED
    assert progress.total_points == 9


def test_status_in_progress_below_threshold():
    progress = StudentProgress(student_id="s1")
    low = _result("a", 7, 10)
    assert apply_result(progress, low, [low], threshold=75).status == ProgressStatus.IN_PROGRESS


def test_derive_status_before_any_attempt():
    assert derive_status(TopicProgress(), 75) == ProgressStatus.NOT_STARTED
    assert derive_status(TopicProgress(materials_viewed=True), 75) == ProgressStatus.IN_PROGRESS


def test_content_view_starts_topic_but_never_downgrades():
    progress = StudentProgress(student_id="s1")
    record = apply_content_viewed(progress, "variation")
    assert record.status == ProgressStatus.IN_PROGRESS
    assert record.materials_viewed is True

    progress.topics["statistics"] = TopicProgress(status=ProgressStatus.COMPLETED, quizzes_attempted=1, best_quiz_score=90)
    assert apply_content_viewed(progress, "statistics").status == ProgressStatus.COMPLETED


def test_overall_mastery_excludes_unattempted_topics():
    assert overall_mastery({"a": 80, "b": 61}) == 71
    assert overall_mastery({}) == 0


def test_summary_keeps_mastered_and_completed_distinct():
    progress = StudentProgress(student_id="s1")
    r1 = _result("a", 8, 10, 0, topic=TOPIC)
    r2 = _result("b", 19, 25, 1, topic="variation")
    apply_result(progress, r1, [r1], threshold=75)
    apply_result(progress, r2, [r2], threshold=75)
    apply_content_viewed(progress, "statistics")

    summary = summarize(progress, [r1, r2], mastered_threshold=80)
    assert summary.topic_mastery == {TOPIC: 80, "variation": 76}
    assert summary.topics_completed == 2
    assert summary.topics_mastered == 1
    assert summary.overall_mastery == 78
    assert summary.quiz_count == 2
    assert summary.average_score == 78
    assert summary.total_points == 27
