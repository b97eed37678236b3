from app.data.topics import topic_catalog
from app.engine.gate import GateState, gate_map, topic_state, unlocked_topics
from app.models.records import ProgressStatus, StudentProgress, TopicProgress

CATALOG = topic_catalog()
FIRST, SECOND, THIRD = CATALOG[0], CATALOG[1], CATALOG[2]


def _progress(**topics) -> StudentProgress:
    return StudentProgress(student_id="s1", topics=topics)


def test_first_topic_is_always_unlocked():
    assert topic_state(FIRST, CATALOG, None, 75) == GateState.UNLOCKED
    assert topic_state(FIRST, CATALOG, _progress(), 75) == GateState.UNLOCKED


def test_everything_after_first_starts_locked():
    states = gate_map(CATALOG, _progress(), 75)
    assert states[FIRST.slug] == GateState.UNLOCKED
    assert all(states[t.slug] == GateState.LOCKED for t in CATALOG[1:])


def test_second_unlocks_when_first_completed_at_threshold():
    record = TopicProgress(status=ProgressStatus.COMPLETED, quizzes_attempted=1, last_quiz_score=75, best_quiz_score=75)
    progress = _progress(**{FIRST.slug: record})
    assert topic_state(SECOND, CATALOG, progress, 75) == GateState.UNLOCKED
    assert topic_state(THIRD, CATALOG, progress, 75) == GateState.LOCKED


def test_below_threshold_keeps_next_topic_locked():
    record = TopicProgress(status=ProgressStatus.IN_PROGRESS, quizzes_attempted=1, last_quiz_score=74, best_quiz_score=74)
    assert topic_state(SECOND, CATALOG, _progress(**{FIRST.slug: record}), 75) == GateState.LOCKED


def test_completed_status_alone_is_not_enough_without_score():
    record = TopicProgress(status=ProgressStatus.COMPLETED, quizzes_attempted=1)
    assert topic_state(SECOND, CATALOG, _progress(**{FIRST.slug: record}), 75) == GateState.LOCKED


def test_weaker_retake_does_not_relock():
    record = TopicProgress(status=ProgressStatus.COMPLETED, quizzes_attempted=2, last_quiz_score=40, best_quiz_score=90)
    assert topic_state(SECOND, CATALOG, _progress(**{FIRST.slug: record}), 75) == GateState.UNLOCKED


def test_unlocked_topics_follow_catalog_order():
    done = TopicProgress(status=ProgressStatus.COMPLETED, quizzes_attempted=1, last_quiz_score=100, best_quiz_score=100)
    progress = _progress(**{FIRST.slug: done, SECOND.slug: done})
    assert unlocked_topics(CATALOG, progress, 75) == [FIRST.slug, SECOND.slug, THIRD.slug]
