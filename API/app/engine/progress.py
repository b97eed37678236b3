"""Progress service: every read-modify-write of a student's progress runs in one store transaction."""
from __future__ import annotations

from dataclasses import dataclass, field

from app.core.logging import DOMAIN_PROGRESSION, get_domain_logger
from app.engine import achievements, gate, mastery
from app.engine.keys import progress_key, quarter_status_key, result_key, results_prefix
from app.engine.quarters import is_closed
from app.engine.thresholds import Thresholds
from app.memory.store import DocumentStore, Query, Transaction
from app.models.records import QuarterStatus, QuizResult, StudentProgress, Topic, TopicProgress

logger = get_domain_logger(__name__, DOMAIN_PROGRESSION)


@dataclass
class ProgressUpdate:
    topic: str
    record: TopicProgress
    newly_unlocked: list[str] = field(default_factory=list)
    new_achievements: list[str] = field(default_factory=list)
    result: QuizResult | None = None


class ProgressService:
    def __init__(self, store: DocumentStore, catalog: list[Topic], thresholds: Thresholds):
        self.store = store
        self.catalog = catalog
        self.thresholds = thresholds

    # ── reads ───────────────────────────────────────────────────────────────

    def load(self, student_id: str) -> StudentProgress:
        doc = self.store.get(progress_key(student_id))
        return StudentProgress.model_validate(doc) if doc else StudentProgress(student_id=student_id)

    def results(self, student_id: str) -> list[QuizResult]:
        rows = self.store.query(Query(prefix=results_prefix(student_id)))
        return sorted((QuizResult.model_validate(doc) for _, doc in rows), key=lambda r: (r.submitted_at, r.id))

    def gate_map(self, student_id: str) -> dict[str, gate.GateState]:
        return gate.gate_map(self.catalog, self.load(student_id), self.thresholds.unlock)

    def topic_state(self, student_id: str, topic_slug: str) -> gate.GateState:
        return self.gate_map(student_id).get(topic_slug, gate.GateState.LOCKED)

    def summary(self, student_id: str) -> mastery.MasterySummary:
        return mastery.summarize(self.load(student_id), self.results(student_id), self.thresholds.mastered)

    # ── writes ──────────────────────────────────────────────────────────────

    def read_keys_for(self, result: QuizResult) -> list[str]:
        return [
            progress_key(result.student_id),
            quarter_status_key(result.student_id),
            result_key(result.student_id, result.id),
        ]

    def fold_result(self, tx: Transaction, result: QuizResult) -> ProgressUpdate:
        """Append ``result`` and fold it into progress within ``tx``.

        ``tx`` must have been opened over :meth:`read_keys_for`. A result
        submitted while its quarter is ended still counts for mastery but is
        marked so it never enters that quarter's average.
        """
        student_id = result.student_id
        quarter_doc = tx.get(quarter_status_key(student_id))
        status = QuarterStatus.model_validate(quarter_doc) if quarter_doc else QuarterStatus()
        if result.grading_period and is_closed(status, result.grading_period):
            result = result.model_copy(update={"counts_toward_quarter": False})
            logger.info(
                "Result %s logged outside ended quarter %s for student=%s", result.id, result.grading_period, student_id
            )

        progress_doc = tx.get(progress_key(student_id))
        progress = StudentProgress.model_validate(progress_doc) if progress_doc else StudentProgress(student_id=student_id)
        before = set(gate.unlocked_topics(self.catalog, progress, self.thresholds.unlock))

        topic_results = [r for r in self.results(student_id) if r.topic == result.topic and r.id != result.id]
        topic_results.append(result)
        record = mastery.apply_result(progress, result, topic_results, self.thresholds.unlock)
        fresh = achievements.unlock_new(
            progress,
            mastery_threshold=self.thresholds.achievement_mastery,
            explorer_topic_count=self.thresholds.lesson_explorer_topics,
        )
        after = gate.unlocked_topics(self.catalog, progress, self.thresholds.unlock)
        newly_unlocked = [slug for slug in after if slug not in before]

        tx.put(result_key(student_id, result.id), result.model_dump(mode="json"))
        tx.put(progress_key(student_id), progress.model_dump(mode="json"))
        return ProgressUpdate(
            topic=result.topic,
            record=record,
            newly_unlocked=newly_unlocked,
            new_achievements=fresh,
            result=result,
        )

    def record_result(self, result: QuizResult) -> ProgressUpdate | None:
        """Record a result outside an attempt. Returns ``None`` if a result with this id already exists."""

        def _mutate(tx: Transaction) -> ProgressUpdate | None:
            if tx.get(result_key(result.student_id, result.id)) is not None:
                return None
            return self.fold_result(tx, result)

        update = self.store.run_transaction(self.read_keys_for(result), _mutate)
        if update is not None:
            self.log_update(result, update)
        return update

    def log_update(self, result: QuizResult, update: ProgressUpdate) -> None:
        logger.info(
            "Quiz scored student=%s topic=%s pct=%s mastery=%s status=%s",
            result.student_id,
            result.topic,
            result.percentage,
            update.record.mastery,
            update.record.status.value,
        )
        for slug in update.newly_unlocked:
            logger.info("Topic unlocked student=%s topic=%s", result.student_id, slug)

    def content_viewed(self, student_id: str, topic: str) -> ProgressUpdate:
        key = progress_key(student_id)

        def _mutate(tx: Transaction) -> ProgressUpdate:
            doc = tx.get(key)
            progress = StudentProgress.model_validate(doc) if doc else StudentProgress(student_id=student_id)
            record = mastery.apply_content_viewed(progress, topic)
            fresh = achievements.unlock_new(
                progress,
                mastery_threshold=self.thresholds.achievement_mastery,
                explorer_topic_count=self.thresholds.lesson_explorer_topics,
            )
            tx.put(key, progress.model_dump(mode="json"))
            return ProgressUpdate(topic=topic, record=record, new_achievements=fresh)

        update = self.store.run_transaction([key], _mutate)
        logger.debug("Content viewed student=%s topic=%s status=%s", student_id, topic, update.record.status.value)
        return update

    def reset(self, student_id: str) -> int:
        """Clear progress, achievements and the whole result log. Returns the number of results removed."""
        prefix = results_prefix(student_id)

        def _keys() -> list[str]:
            # Re-listed on every retry: a submission that wins the race adds a result key.
            return [progress_key(student_id), *(key for key, _ in self.store.query(Query(prefix=prefix)))]

        def _mutate(tx: Transaction) -> int:
            removed = 0
            for key in [k for k in tx.reads if k.startswith(prefix)]:
                if tx.get(key) is not None:
                    tx.delete(key)
                    removed += 1
            if tx.get(progress_key(student_id)) is not None:
                tx.delete(progress_key(student_id))
            return removed

        removed = self.store.run_transaction(_keys, _mutate)
        logger.info("Progress reset student=%s results_removed=%d", student_id, removed)
        return removed
