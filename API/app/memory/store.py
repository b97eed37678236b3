"""Document store collaborator: keyed documents, conditional transactions, snapshot subscriptions.

Backends differ only in how a versioned read and an atomic conditional commit
are performed. Query matching, transactions, subscriptions and change fan-out
live in :class:`DocumentStore`.
"""
from __future__ import annotations

import copy
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, TypeVar

from app.core.errors import ConflictError, StoreUnavailableError
from app.core.logging import DOMAIN_STORE, get_domain_logger
from app.core.resilience import retry_on_conflict
from app.core.settings import settings

logger = get_domain_logger(__name__, DOMAIN_STORE)

T = TypeVar("T")


@dataclass(frozen=True)
class Query:
    """All documents whose key starts with ``prefix`` and whose fields equal ``where``."""

    prefix: str
    where: tuple[tuple[str, Any], ...] = ()

    def matches_key(self, key: str) -> bool:
        return key.startswith(self.prefix)

    def matches(self, key: str, doc: dict) -> bool:
        if not self.matches_key(key):
            return False
        return all(doc.get(name) == value for name, value in self.where)


@dataclass(frozen=True)
class Snapshot:
    """Full result set of a query at one point in time. Replaces, never patches, prior state."""

    query: Query
    documents: tuple[tuple[str, dict], ...]
    sequence: int

    def docs(self) -> list[dict]:
        return [copy.deepcopy(doc) for _, doc in self.documents]


class Subscription:
    """Registered interest in a query. Release it by ``close()`` or by leaving its ``with`` block."""

    def __init__(self, store: "DocumentStore", query: Query, callback: Callable[[Snapshot], None]):
        self._store = store
        self.query = query
        self.callback = callback
        self.sequence = 0
        self.active = True

    def close(self) -> None:
        if self.active:
            self.active = False
            self._store._release(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@dataclass
class Transaction:
    """Buffered view handed to a ``transact`` mutator. Reads are limited to the declared keys."""

    reads: dict[str, dict | None]
    writes: dict[str, dict | None] = field(default_factory=dict)

    def get(self, key: str) -> dict | None:
        if key not in self.reads:
            raise KeyError(f"{key} was not declared as a transaction read key")
        if key in self.writes:
            return copy.deepcopy(self.writes[key])
        return copy.deepcopy(self.reads[key])

    def put(self, key: str, doc: dict) -> None:
        if key not in self.reads:
            raise KeyError(f"{key} was not declared as a transaction read key")
        self.writes[key] = copy.deepcopy(doc)

    def delete(self, key: str) -> None:
        if key not in self.reads:
            raise KeyError(f"{key} was not declared as a transaction read key")
        self.writes[key] = None


class DocumentStore(ABC):
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._subscriptions_lock = threading.Lock()

    # ── backend primitives ──────────────────────────────────────────────────

    @abstractmethod
    def _read_versioned(self, keys: list[str]) -> dict[str, tuple[dict | None, int]]:
        """Return ``{key: (doc, version)}``; absent documents have version 0."""
        raise NotImplementedError

    @abstractmethod
    def _commit(self, expected: dict[str, int], writes: dict[str, dict | None]) -> None:
        """Apply all writes atomically iff every key still has its expected version.

        Raises :class:`ConflictError` otherwise.
        """
        raise NotImplementedError

    @abstractmethod
    def _scan(self, prefix: str) -> list[tuple[str, dict]]:
        raise NotImplementedError

    # ── public contract ─────────────────────────────────────────────────────

    def get(self, key: str) -> dict | None:
        doc, _ = self._read_versioned([key])[key]
        return doc

    def put(self, key: str, doc: dict) -> None:
        """Full replace, regardless of the current version."""
        def _write(tx: Transaction) -> None:
            tx.put(key, doc)

        self.run_transaction([key], _write)

    def delete(self, key: str) -> None:
        def _remove(tx: Transaction) -> None:
            if tx.get(key) is not None:
                tx.delete(key)

        self.run_transaction([key], _remove)

    def query(self, query: Query) -> list[tuple[str, dict]]:
        return [(key, doc) for key, doc in self._scan(query.prefix) if query.matches(key, doc)]

    def transact(self, read_keys: list[str], mutator: Callable[[Transaction], T]) -> T:
        """Read ``read_keys``, let ``mutator`` stage writes, commit conditionally.

        A single attempt: a concurrent change to any read key raises
        :class:`ConflictError`. Use :meth:`run_transaction` to retry.
        """
        keys = list(dict.fromkeys(read_keys))
        versioned = self._read_versioned(keys)
        tx = Transaction(reads={key: versioned[key][0] for key in keys})
        result = mutator(tx)
        if tx.writes:
            self._commit({key: versioned[key][1] for key in keys}, tx.writes)
            self._notify(list(tx.writes))
        return result

    def run_transaction(
        self,
        read_keys: list[str] | Callable[[], list[str]],
        mutator: Callable[[Transaction], T],
    ) -> T:
        """``transact`` with retries. A callable ``read_keys`` is re-evaluated before every attempt."""
        def _attempt() -> T:
            keys = read_keys() if callable(read_keys) else read_keys
            return self.transact(keys, mutator)

        return retry_on_conflict(
            _attempt,
            max_retries=settings.transaction_max_retries,
            base_delay_seconds=settings.transaction_retry_delay_seconds,
        )

    def subscribe(self, query: Query, callback: Callable[[Snapshot], None]) -> Subscription:
        """Deliver the current result set now and a fresh full snapshot after every matching change."""
        subscription = Subscription(self, query, callback)
        with self._subscriptions_lock:
            self._subscriptions.append(subscription)
        self._deliver(subscription)
        return subscription

    def subscription_count(self) -> int:
        with self._subscriptions_lock:
            return len(self._subscriptions)

    # ── fan-out ─────────────────────────────────────────────────────────────

    def _release(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _notify(self, changed_keys: list[str]) -> None:
        with self._subscriptions_lock:
            interested = [
                s for s in self._subscriptions if any(s.query.matches_key(key) for key in changed_keys)
            ]
        for subscription in interested:
            self._deliver(subscription)

    def _deliver(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.sequence += 1
        documents = tuple((key, copy.deepcopy(doc)) for key, doc in self.query(subscription.query))
        snapshot = Snapshot(query=subscription.query, documents=documents, sequence=subscription.sequence)
        try:
            subscription.callback(snapshot)
        except Exception:  # noqa: BLE001
            # A failing listener must not fail the writer that triggered it.
            logger.exception("Subscription callback failed prefix=%s", subscription.query.prefix)


def _unchanged_keys(expected: dict[str, int], writes: dict[str, dict | None]) -> dict[str, int]:
    """Read keys a commit leaves as they are: never written, or deleted while already absent."""
    return {
        key: version
        for key, version in expected.items()
        if key not in writes or (writes[key] is None and version == 0)
    }


class InMemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self._docs: dict[str, tuple[dict, int]] = {}
        self._lock = threading.RLock()

    def _read_versioned(self, keys: list[str]) -> dict[str, tuple[dict | None, int]]:
        with self._lock:
            out = {}
            for key in keys:
                doc, version = self._docs.get(key, (None, 0))
                out[key] = (copy.deepcopy(doc), version)
            return out

    def _commit(self, expected: dict[str, int], writes: dict[str, dict | None]) -> None:
        with self._lock:
            for key, version in expected.items():
                current = self._docs.get(key, (None, 0))[1]
                if current != version:
                    raise ConflictError(f"Document {key} changed concurrently", details={"key": key})
            for key, doc in writes.items():
                if doc is None:
                    self._docs.pop(key, None)
                else:
                    self._docs[key] = (copy.deepcopy(doc), expected.get(key, 0) + 1)

    def _scan(self, prefix: str) -> list[tuple[str, dict]]:
        with self._lock:
            return [
                (key, copy.deepcopy(doc))
                for key, (doc, _) in sorted(self._docs.items())
                if key.startswith(prefix)
            ]


class MongoDocumentStore(DocumentStore):
    """Documents as ``{_id: key, version, body}``. Multi-key commits use a session transaction."""

    def __init__(self, mongodb_url: str, db_name: str):
        super().__init__()
        from pymongo import MongoClient

        self._client = MongoClient(mongodb_url, serverSelectionTimeoutMS=3000)
        self._documents = self._client[db_name]["documents"]

    def _call(self, op_name: str, func: Callable[[], T]) -> T:
        from pymongo.errors import PyMongoError

        try:
            return func()
        except (ConflictError, StoreUnavailableError):
            raise
        except PyMongoError as exc:
            if exc.has_error_label("TransientTransactionError"):
                raise ConflictError(f"Transaction aborted during {op_name}: {exc}") from exc
            raise StoreUnavailableError(f"MongoDB {op_name} failed: {exc}") from exc

    def _read_versioned(self, keys: list[str]) -> dict[str, tuple[dict | None, int]]:
        def _read():
            found = {row["_id"]: row for row in self._documents.find({"_id": {"$in": keys}})}
            return {
                key: (found[key].get("body"), int(found[key].get("version", 0))) if key in found else (None, 0)
                for key in keys
            }

        return self._call("read", _read)

    def _apply(self, key: str, version: int, doc: dict | None, session=None) -> None:
        from pymongo.errors import DuplicateKeyError

        if version == 0:
            if doc is None:
                return
            try:
                self._documents.insert_one({"_id": key, "version": 1, "body": doc}, session=session)
            except DuplicateKeyError as exc:
                raise ConflictError(f"Document {key} created concurrently", details={"key": key}) from exc
            return
        if doc is None:
            outcome = self._documents.delete_one({"_id": key, "version": version}, session=session)
            changed = outcome.deleted_count
        else:
            outcome = self._documents.replace_one(
                {"_id": key, "version": version},
                {"_id": key, "version": version + 1, "body": doc},
                session=session,
            )
            changed = outcome.matched_count
        if not changed:
            raise ConflictError(f"Document {key} changed concurrently", details={"key": key})

    def _confirm(self, key: str, version: int, session) -> None:
        """Write-touch a key that was read but not written so a concurrent writer conflicts with us."""
        if version == 0:
            if self._documents.find_one({"_id": key}, {"_id": 1}, session=session) is not None:
                raise ConflictError(f"Document {key} created concurrently", details={"key": key})
            return
        outcome = self._documents.update_one(
            {"_id": key, "version": version},
            {"$currentDate": {"confirmed_at": True}},
            session=session,
        )
        if not outcome.matched_count:
            raise ConflictError(f"Document {key} changed concurrently", details={"key": key})

    def _commit(self, expected: dict[str, int], writes: dict[str, dict | None]) -> None:
        unchanged = _unchanged_keys(expected, writes)
        changed = {key: doc for key, doc in writes.items() if key not in unchanged}

        def _single():
            (key, doc), = changed.items()
            self._apply(key, expected.get(key, 0), doc)

        def _multi():
            with self._client.start_session() as session:
                with session.start_transaction():
                    for key, version in sorted(unchanged.items()):
                        self._confirm(key, version, session)
                    for key, doc in changed.items():
                        self._apply(key, expected.get(key, 0), doc, session=session)

        self._call("commit", _single if len(changed) == 1 and not unchanged else _multi)

    def _scan(self, prefix: str) -> list[tuple[str, dict]]:
        def _find():
            cursor = self._documents.find({"_id": {"$regex": "^" + re.escape(prefix)}}).sort("_id", 1)
            return [(row["_id"], row.get("body") or {}) for row in cursor]

        return self._call("scan", _find)


class SqlDocumentStore(DocumentStore):
    """Documents in one SQLAlchemy table; every commit runs in a single database transaction."""

    def __init__(self, database_url: str):
        super().__init__()
        from app.memory.database import build_engine, initialize_schema

        self._engine = build_engine(database_url)
        try:
            initialize_schema(self._engine)
        except Exception as exc:  # noqa: BLE001
            raise StoreUnavailableError(f"SQL store schema init failed: {exc}") from exc

    def _call(self, op_name: str, func: Callable[[], T]) -> T:
        from sqlalchemy.exc import DBAPIError, IntegrityError

        try:
            return func()
        except (ConflictError, StoreUnavailableError):
            raise
        except IntegrityError as exc:
            raise ConflictError(f"Concurrent create during {op_name}: {exc.orig}") from exc
        except DBAPIError as exc:
            raise StoreUnavailableError(f"SQL {op_name} failed: {exc.orig}") from exc

    def _read_versioned(self, keys: list[str]) -> dict[str, tuple[dict | None, int]]:
        from sqlalchemy import select

        from app.models.entities import DocumentRow

        def _read():
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(DocumentRow.key, DocumentRow.version, DocumentRow.body).where(DocumentRow.key.in_(keys))
                ).all()
            found = {row.key: (row.body, row.version) for row in rows}
            return {key: found.get(key, (None, 0)) for key in keys}

        return self._call("read", _read)

    def _commit(self, expected: dict[str, int], writes: dict[str, dict | None]) -> None:
        from sqlalchemy import delete, insert, select, update

        from app.models.entities import DocumentRow

        unchanged = _unchanged_keys(expected, writes)

        def _write():
            with self._engine.begin() as conn:
                # Keys read but not written must still hold the version the mutator saw.
                for key, version in sorted(unchanged.items()):
                    if version == 0:
                        present = conn.execute(select(DocumentRow.key).where(DocumentRow.key == key)).first()
                        if present is not None:
                            raise ConflictError(f"Document {key} created concurrently", details={"key": key})
                        continue
                    confirm = (
                        update(DocumentRow)
                        .where(DocumentRow.key == key, DocumentRow.version == version)
                        .values(version=DocumentRow.version)
                    )
                    if conn.execute(confirm).rowcount == 0:
                        raise ConflictError(f"Document {key} changed concurrently", details={"key": key})
                for key, doc in writes.items():
                    if key in unchanged:
                        continue
                    version = expected.get(key, 0)
                    if version == 0:
                        conn.execute(insert(DocumentRow).values(key=key, version=1, body=doc))
                        continue
                    if doc is None:
                        stmt = delete(DocumentRow).where(DocumentRow.key == key, DocumentRow.version == version)
                    else:
                        stmt = (
                            update(DocumentRow)
                            .where(DocumentRow.key == key, DocumentRow.version == version)
                            .values(version=version + 1, body=doc)
                        )
                    if conn.execute(stmt).rowcount == 0:
                        raise ConflictError(f"Document {key} changed concurrently", details={"key": key})

        self._call("commit", _write)

    def _scan(self, prefix: str) -> list[tuple[str, dict]]:
        from sqlalchemy import select

        from app.models.entities import DocumentRow

        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

        def _find():
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(DocumentRow.key, DocumentRow.body)
                    .where(DocumentRow.key.like(escaped + "%", escape="\\"))
                    .order_by(DocumentRow.key)
                ).all()
            return [(row.key, row.body or {}) for row in rows]

        return self._call("scan", _find)


def build_document_store() -> DocumentStore:
    backend = settings.store_backend.strip().lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "sql":
        return SqlDocumentStore(settings.database_url)
    if backend != "mongo":
        logger.warning("Unknown STORE_BACKEND=%s; falling back to mongo.", backend)
    return MongoDocumentStore(settings.mongodb_url, settings.mongodb_db_name)


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    store = build_document_store()
    logger.info("Document store ready backend=%s", type(store).__name__)
    return store
