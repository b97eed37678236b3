from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from app.core.settings import settings
from app.data.topics import topic_catalog
from app.engine.attempts import AttemptService
from app.engine.content import ContentCatalog
from app.engine.leaderboard import LeaderboardService
from app.engine.progress import ProgressService
from app.engine.quarters import QuarterLifecycle
from app.engine.thresholds import Thresholds
from app.memory.store import DocumentStore, get_document_store
from app.models.records import Topic


@dataclass
class EngineServices:
    store: DocumentStore
    catalog: list[Topic]
    thresholds: Thresholds
    content: ContentCatalog
    progress: ProgressService
    attempts: AttemptService
    quarters: QuarterLifecycle
    leaderboard: LeaderboardService


def build_services(store: DocumentStore, thresholds: Thresholds | None = None) -> EngineServices:
    catalog = topic_catalog()
    thresholds = thresholds or Thresholds.from_settings(settings)
    content = ContentCatalog(store)
    progress = ProgressService(store, catalog, thresholds)
    return EngineServices(
        store=store,
        catalog=catalog,
        thresholds=thresholds,
        content=content,
        progress=progress,
        attempts=AttemptService(store, content, progress),
        quarters=QuarterLifecycle(store),
        leaderboard=LeaderboardService(store, len(catalog), thresholds),
    )


@lru_cache(maxsize=1)
def get_services() -> EngineServices:
    return build_services(get_document_store())
