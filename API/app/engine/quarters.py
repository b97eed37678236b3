"""Quarter Lifecycle: per-student open/ended flags for the four grading periods.

Flags change only by explicit command. The rest of the engine only reads
them.
"""
from __future__ import annotations

from app.core.logging import DOMAIN_QUARTERS, get_domain_logger
from app.engine.grading import quarter_key, require_quarter_key
from app.engine.keys import quarter_status_key
from app.memory.store import DocumentStore, Transaction
from app.models.records import QuarterStatus

logger = get_domain_logger(__name__, DOMAIN_QUARTERS)


def is_closed(status: QuarterStatus, grading_period: str | None) -> bool:
    key = quarter_key(grading_period)
    return bool(key) and getattr(status, key)


class QuarterLifecycle:
    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, student_id: str) -> QuarterStatus:
        doc = self.store.get(quarter_status_key(student_id))
        return QuarterStatus.model_validate(doc) if doc else QuarterStatus()

    def set(self, student_id: str, quarter: str, ended: bool) -> QuarterStatus:
        return self.set_many([student_id], quarter, ended)[student_id]

    def toggle(self, student_id: str, quarter: str) -> QuarterStatus:
        key = require_quarter_key(quarter)
        doc_key = quarter_status_key(student_id)

        def _flip(tx: Transaction) -> QuarterStatus:
            current = tx.get(doc_key)
            status = QuarterStatus.model_validate(current) if current else QuarterStatus()
            setattr(status, key, not getattr(status, key))
            tx.put(doc_key, status.model_dump(mode="json"))
            return status

        status = self.store.run_transaction([doc_key], _flip)
        logger.info("Quarter toggled student=%s quarter=%s ended=%s", student_id, key, getattr(status, key))
        return status

    def set_many(self, student_ids: list[str], quarter: str, ended: bool) -> dict[str, QuarterStatus]:
        """End or reopen ``quarter`` for every listed student in one atomic write."""
        key = require_quarter_key(quarter)
        doc_keys = {student_id: quarter_status_key(student_id) for student_id in dict.fromkeys(student_ids)}
        if not doc_keys:
            return {}

        def _apply(tx: Transaction) -> dict[str, QuarterStatus]:
            updated = {}
            for student_id, doc_key in doc_keys.items():
                current = tx.get(doc_key)
                status = QuarterStatus.model_validate(current) if current else QuarterStatus()
                setattr(status, key, ended)
                tx.put(doc_key, status.model_dump(mode="json"))
                updated[student_id] = status
            return updated

        updated = self.store.run_transaction(list(doc_keys.values()), _apply)
        logger.info("Quarter %s %s for %d student(s)", key, "ended" if ended else "reopened", len(updated))
        return updated
