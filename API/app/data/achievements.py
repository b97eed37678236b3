"""Achievement definitions awarded by the progress service."""

from __future__ import annotations

FIRST_QUIZ = "first-quiz-completed"
TOPIC_STARTER = "topic-starter"
LESSON_EXPLORER = "lesson-explorer"

ACHIEVEMENTS = [
    {"id": "quadratic-champ", "name": "Quadratic Champion", "description": "Mastered Quadratic Equations & Functions.", "topic_slug": "quadratic-equations-functions"},
    {"id": "rational-ruler", "name": "Rational Ruler", "description": "Conquered Rational Algebraic Expressions.", "topic_slug": "rational-algebraic-expressions"},
    {"id": "variation-virtuoso", "name": "Variation Virtuoso", "description": "Excelled in Variation concepts.", "topic_slug": "variation"},
    {"id": "poly-pro", "name": "Polynomial Pro", "description": "Dominated Polynomial Functions.", "topic_slug": "polynomial-functions"},
    {"id": "expo-log-expert", "name": "Expo/Log Expert", "description": "Aced Exponential & Logarithmic Functions.", "topic_slug": "exponential-logarithmic-functions"},
    {"id": "sequence-star", "name": "Sequence Star", "description": "Shined in Sequences & Series.", "topic_slug": "sequences-series"},
    {"id": "proba-pioneer", "name": "Probability Pioneer", "description": "Navigated Probability concepts well.", "topic_slug": "probability"},
    {"id": "stats-savant", "name": "Statistics Savant", "description": "Interpreted Statistics like a true expert.", "topic_slug": "statistics"},
    {"id": LESSON_EXPLORER, "name": "Lesson Explorer", "description": "Viewed content for several different topics.", "topic_slug": None},
    {"id": TOPIC_STARTER, "name": "Topic Starter", "description": "Marked first lesson content as viewed.", "topic_slug": None},
    {"id": FIRST_QUIZ, "name": "Quiz Navigator", "description": "Completed your first quiz!", "topic_slug": None},
]


def topic_achievement_id(topic_slug: str) -> str | None:
    for achievement in ACHIEVEMENTS:
        if achievement["topic_slug"] == topic_slug:
            return achievement["id"]
    return None
