import pytest

from app.core.errors import ConflictError
from app.memory.store import InMemoryDocumentStore, Query, SqlDocumentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore(f"sqlite:///{tmp_path / 'docs.db'}")


def test_get_put_full_replace(store):
    assert store.get("students/a") is None
    store.put("students/a", {"id": "a", "grade": "10"})
    store.put("students/a", {"id": "a"})
    assert store.get("students/a") == {"id": "a"}


def test_query_by_prefix_and_fields(store):
    store.put("content/1", {"topic": "variation", "n": 1})
    store.put("content/2", {"topic": "statistics", "n": 2})
    store.put("contents/3", {"topic": "variation", "n": 3})
    rows = store.query(Query(prefix="content/", where=(("topic", "variation"),)))
    assert rows == [("content/1", {"topic": "variation", "n": 1})]


def test_transact_commits_all_writes(store):
    def _move(tx):
        tx.put("a", {"v": 1})
        tx.put("b", {"v": 2})
        return "done"

    assert store.transact(["a", "b"], _move) == "done"
    assert store.get("a") == {"v": 1}
    assert store.get("b") == {"v": 2}


def test_transact_rejects_undeclared_keys(store):
    with pytest.raises(KeyError):
        store.transact(["a"], lambda tx: tx.put("other", {}))


def test_concurrent_change_raises_conflict(store):
    store.put("counter", {"n": 0})

    def _stale_increment(tx):
        current = tx.get("counter")
        store.put("counter", {"n": 100})
        tx.put("counter", {"n": current["n"] + 1})

    with pytest.raises(ConflictError):
        store.transact(["counter"], _stale_increment)
    assert store.get("counter") == {"n": 100}


def test_concurrent_create_raises_conflict(store):
    def _create(tx):
        store.put("fresh", {"by": "other"})
        tx.put("fresh", {"by": "me"})

    with pytest.raises(ConflictError):
        store.transact(["fresh"], _create)


def test_run_transaction_retries_with_fresh_state(store):
    store.put("counter", {"n": 0})
    calls = []

    def _increment(tx):
        calls.append(1)
        current = tx.get("counter")
        if len(calls) == 1:
            store.put("counter", {"n": 10})
        tx.put("counter", {"n": current["n"] + 1})

    store.run_transaction(["counter"], _increment)
    assert store.get("counter") == {"n": 11}
    assert len(calls) == 2


def test_subscription_delivers_full_snapshots_until_closed(store):
    seen = []
    with store.subscribe(Query(prefix="results/"), seen.append) as subscription:
        store.put("results/s1/a", {"pct": 50})
        store.put("students/s1", {"id": "s1"})
        store.put("results/s1/b", {"pct": 70})
        assert store.subscription_count() == 1
    store.put("results/s1/c", {"pct": 90})

    assert not subscription.active
    assert store.subscription_count() == 0
    assert [len(snapshot.documents) for snapshot in seen] == [0, 1, 2]
    assert [snapshot.sequence for snapshot in seen] == [1, 2, 3]


def test_snapshots_are_isolated_from_later_writes(store):
    seen = []
    subscription = store.subscribe(Query(prefix="p/"), seen.append)
    store.put("p/1", {"tags": ["a"]})
    seen[-1].documents[0][1]["tags"].append("mutated")
    assert store.get("p/1") == {"tags": ["a"]}
    subscription.close()
    subscription.close()


def test_failing_subscriber_does_not_fail_writer(store):
    def _boom(snapshot):
        if snapshot.sequence > 1:
            raise RuntimeError("listener exploded")

    with store.subscribe(Query(prefix="x/"), _boom):
        store.put("x/1", {"ok": True})
    assert store.get("x/1") == {"ok": True}


def test_delete_removes_document(store):
    store.put("attempts/1", {"status": "open"})
    store.delete("attempts/1")
    assert store.get("attempts/1") is None
    store.delete("attempts/1")


def test_change_to_key_read_but_not_written_raises_conflict(store):
    store.put("quarters/s1", {"q1": False})

    def _fold(tx):
        quarter = tx.get("quarters/s1")
        store.put("quarters/s1", {"q1": True})
        tx.put("progress/s1", {"counts": not quarter["q1"]})

    with pytest.raises(ConflictError):
        store.transact(["quarters/s1", "progress/s1"], _fold)
    assert store.get("progress/s1") is None


def test_creation_of_key_read_as_absent_raises_conflict(store):
    def _fold(tx):
        assert tx.get("quarters/s1") is None
        store.put("quarters/s1", {"q1": True})
        tx.put("progress/s1", {"counts": True})

    with pytest.raises(ConflictError):
        store.transact(["quarters/s1", "progress/s1"], _fold)
    assert store.get("progress/s1") is None


def test_unchanged_read_only_key_lets_commit_through(store):
    store.put("quarters/s1", {"q1": False})
    store.transact(["quarters/s1", "progress/s1"], lambda tx: tx.put("progress/s1", {"ok": True}))
    assert store.get("progress/s1") == {"ok": True}
    assert store.get("quarters/s1") == {"q1": False}


def test_run_transaction_re_lists_callable_read_keys(store):
    store.put("log/1", {"n": 1})
    listings = []

    def _keys():
        keys = [key for key, _ in store.query(Query(prefix="log/"))]
        listings.append(keys)
        return ["head", *keys]

    def _clear(tx):
        if len(listings) == 1:
            store.put("log/2", {"n": 2})
            store.put("head", {"moved": True})
        for key in [k for k in tx.reads if k.startswith("log/")]:
            tx.delete(key)
        tx.delete("head")

    store.run_transaction(_keys, _clear)
    assert listings == [["log/1"], ["log/1", "log/2"]]
    assert store.query(Query(prefix="log/")) == []
    assert store.get("head") is None
