from app.engine.leaderboard import SOURCE_PREFIXES
from app.engine.ranking import RankingFilters
from app.engine.services import build_services
from app.engine.thresholds import Thresholds
from app.memory.store import InMemoryDocumentStore, Query
from app.models.records import IdentificationQuestion, QuizDefinition, QuizItem, Student

TOPIC = "quadratic-equations-functions"


def _services():
    services = build_services(InMemoryDocumentStore(), Thresholds())
    quiz = QuizDefinition(id="quiz-1", topic=TOPIC, questions=[IdentificationQuestion(id="q", answer_key=["1"])])
    services.content.publish(QuizItem(id="quiz-1", teacher_id="t1", title="Quiz", topic=TOPIC, quiz=quiz))
    return services


def test_leaderboard_sources_ignore_attempt_drafts():
    services = _services()
    services.leaderboard.register_student(Student(id="s1", username="s1", display_name="Sam", teacher_id="t1"))
    latest = {}

    def _keep(snapshot):
        latest[snapshot.query.prefix] = snapshot

    subscriptions = [services.store.subscribe(Query(prefix=prefix), _keep) for prefix in SOURCE_PREFIXES]
    initial = {prefix: snapshot.sequence for prefix, snapshot in latest.items()}

    attempt = services.attempts.start("s1", "quiz-1").attempt
    services.attempts.save_answers(attempt.id, "s1", {"q": "1"})
    assert {prefix: snapshot.sequence for prefix, snapshot in latest.items()} == initial

    services.attempts.submit(attempt.id, "s1", {"q": "1"})
    documents = [pair for prefix in SOURCE_PREFIXES for pair in latest[prefix].documents]
    streamed = services.leaderboard.from_documents(documents, RankingFilters())
    assert streamed == services.leaderboard.compute(RankingFilters())
    assert streamed[0].overall_score == 100

    for subscription in subscriptions:
        subscription.close()
    assert services.store.subscription_count() == 0
