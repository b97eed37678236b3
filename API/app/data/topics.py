"""Grade 10 math curriculum: topics in their strict unlock order."""

from __future__ import annotations

from app.models.records import Topic

MATH_TOPICS = [
    {"slug": "quadratic-equations-functions", "title": "Quadratic Equations & Functions", "order": 1},
    {"slug": "rational-algebraic-expressions", "title": "Rational Algebraic Expressions", "order": 2},
    {"slug": "variation", "title": "Variation", "order": 3},
    {"slug": "polynomial-functions", "title": "Polynomial Functions", "order": 4},
    {"slug": "exponential-logarithmic-functions", "title": "Exponential & Logarithmic Functions", "order": 5},
    {"slug": "sequences-series", "title": "Sequences and Series", "order": 6},
    {"slug": "probability", "title": "Probability", "order": 7},
    {"slug": "statistics", "title": "Statistics", "order": 8},
]


def topic_title(slug: str) -> str:
    for topic in MATH_TOPICS:
        if topic["slug"] == slug:
            return topic["title"]
    return " ".join(word.capitalize() for word in slug.split("-"))


def topic_catalog() -> list[Topic]:
    return [Topic(**topic) for topic in MATH_TOPICS]
