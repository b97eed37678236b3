import pytest

from app.core.errors import QuarterKeyError
from app.engine.quarters import QuarterLifecycle, is_closed
from app.memory.store import InMemoryDocumentStore
from app.models.records import QuarterStatus


@pytest.fixture
def quarters():
    return QuarterLifecycle(InMemoryDocumentStore())


def test_new_student_has_all_quarters_open(quarters):
    assert quarters.get("s1") == QuarterStatus()


def test_toggle_flips_one_flag(quarters):
    status = quarters.toggle("s1", "2nd Quarter")
    assert status.q2 is True
    assert (status.q1, status.q3, status.q4) == (False, False, False)
    assert quarters.toggle("s1", "q2").q2 is False


def test_set_is_idempotent(quarters):
    quarters.set("s1", "q1", True)
    assert quarters.set("s1", "q1", True).q1 is True
    assert quarters.get("s1").q1 is True


def test_bulk_end_and_reopen(quarters):
    quarters.set("s2", "q4", True)
    ended = quarters.set_many(["s1", "s2", "s1"], "4th Quarter", True)
    assert sorted(ended) == ["s1", "s2"]
    assert all(status.q4 for status in ended.values())

    reopened = quarters.set_many(["s1", "s2"], "q4", False)
    assert not any(status.q4 for status in reopened.values())
    assert quarters.set_many([], "q4", True) == {}


def test_unknown_quarter_rejected(quarters):
    with pytest.raises(QuarterKeyError):
        quarters.toggle("s1", "Finals")


def test_is_closed_reads_grading_period_labels():
    status = QuarterStatus(q3=True)
    assert is_closed(status, "3rd Quarter")
    assert not is_closed(status, "q1")
    assert not is_closed(status, None)
