"""Percentage to GPA conversion and grading-period (quarter) averages."""
from __future__ import annotations

from app.core.errors import QuarterKeyError
from app.engine.evaluator import percent
from app.models.records import QuarterStatus, QuizResult

# (low, high, gpa); bounds inclusive.
GPA_SCALE: tuple[tuple[int, int, float], ...] = (
    (97, 100, 4.0),
    (93, 96, 3.7),
    (90, 92, 3.3),
    (87, 89, 3.0),
    (83, 86, 2.7),
    (80, 82, 2.3),
    (77, 79, 2.0),
    (73, 76, 1.7),
    (70, 72, 1.3),
    (67, 69, 1.0),
    (0, 66, 0.0),
)

QUARTER_KEYS = ("q1", "q2", "q3", "q4")
QUARTER_LABELS = {
    "q1": "1st Quarter",
    "q2": "2nd Quarter",
    "q3": "3rd Quarter",
    "q4": "4th Quarter",
}


def validate_gpa_scale(scale=GPA_SCALE) -> None:
    """Raise ``ValueError`` unless the bands cover 0..100 exactly once each."""
    covered = sorted((low, high) for low, high, _ in scale)
    expected_low = 0
    for low, high in covered:
        if low > high:
            raise ValueError(f"GPA band {low}-{high} is inverted")
        if low != expected_low:
            raise ValueError(f"GPA bands leave a gap or overlap at {expected_low}")
        expected_low = high + 1
    if expected_low != 101:
        raise ValueError("GPA bands must end at 100")


validate_gpa_scale()


def percentage_to_gpa(percentage: int | None) -> float:
    if percentage is None:
        return 0.0
    value = min(100, max(0, int(percentage)))
    for low, high, gpa in GPA_SCALE:
        if low <= value <= high:
            return gpa
    return 0.0


def quarter_key(label: str | None) -> str | None:
    """Normalize ``"2nd Quarter"``, ``"Q2"`` or ``"q2"`` to ``"q2"``; ``None`` for anything else."""
    if not label:
        return None
    text = str(label).strip().lower()
    if text in QUARTER_KEYS:
        return text
    for key, name in QUARTER_LABELS.items():
        if text == name.lower():
            return key
    return None


def require_quarter_key(label: str) -> str:
    key = quarter_key(label)
    if key is None:
        raise QuarterKeyError(
            f"Unknown grading period '{label}'",
            details={"accepted": list(QUARTER_KEYS) + list(QUARTER_LABELS.values())},
        )
    return key


def quarter_results(results: list[QuizResult], key: str) -> list[QuizResult]:
    """Results that count toward quarter ``key``; the latest result per quiz wins."""
    latest: dict[str, QuizResult] = {}
    for result in sorted(results, key=lambda r: (r.submitted_at, r.id)):
        if not result.counts_toward_quarter or quarter_key(result.grading_period) != key:
            continue
        latest[result.quiz_id] = result
    return list(latest.values())


def quarter_average(results: list[QuizResult], key: str) -> int | None:
    counted = quarter_results(results, key)
    possible = sum(r.total for r in counted)
    if possible == 0:
        return None
    return percent(sum(r.score for r in counted), possible)


def quarter_report(results: list[QuizResult], status: QuarterStatus) -> list[dict]:
    report = []
    for key in QUARTER_KEYS:
        counted = quarter_results(results, key)
        average = quarter_average(results, key)
        report.append(
            {
                "quarter": key,
                "label": QUARTER_LABELS[key],
                "ended": getattr(status, key),
                "quiz_count": len(counted),
                "average_percentage": average,
                "gpa": percentage_to_gpa(average),
                "results": [
                    {"quiz_id": r.quiz_id, "topic": r.topic, "score": r.score, "total": r.total, "percentage": r.percentage}
                    for r in counted
                ],
            }
        )
    return report
