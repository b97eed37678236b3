from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.deps import run_engine, services_dep
from app.core.auth import STAFF_ROLES, Identity, get_identity, require_roles
from app.core.logging import DOMAIN_RANKING, get_domain_logger
from app.engine.leaderboard import SOURCE_PREFIXES
from app.engine.ranking import RankingFilters
from app.engine.services import EngineServices
from app.memory.cache import get_cached_leaderboard, leaderboard_cache_key, set_cached_leaderboard
from app.memory.store import Query, Snapshot, Subscription
from app.models.records import Student

router = APIRouter(tags=["leaderboard"])
logger = get_domain_logger(__name__, DOMAIN_RANKING)


def _filters(identity: Identity, topic: str | None, grade: str | None, section: str | None) -> RankingFilters:
    # Section filtering is a staff view; teachers only ever see their own students.
    return RankingFilters(
        topic=topic or None,
        grade=grade or None,
        section=(section or None) if identity.is_staff else None,
        teacher_id=identity.user_id if identity.role == "teacher" else None,
    )


@router.post("/students", status_code=201, tags=["students"])
async def register_student(
    student: Student,
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    if identity.role == "teacher" and not student.teacher_id:
        student = student.model_copy(update={"teacher_id": identity.user_id})
    saved = await run_engine(services.leaderboard.register_student, student)
    return saved.model_dump()


@router.get("/students", tags=["students"])
async def list_students(
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    students = await run_engine(services.leaderboard.students)
    if identity.role == "teacher":
        students = [s for s in students if s.teacher_id == identity.user_id]
    return {"students": [s.model_dump() for s in students]}


@router.get("/leaderboard")
async def leaderboard(
    topic: str | None = None,
    grade: str | None = None,
    section: str | None = None,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    filters = _filters(identity, topic, grade, section)
    cache_key = leaderboard_cache_key(filters.as_dict())
    cached = await get_cached_leaderboard(cache_key)
    if cached is not None:
        return {"filters": filters.as_dict(), "entries": cached, "cached": True}
    entries = await run_engine(services.leaderboard.compute, filters)
    payload = [entry.model_dump(mode="json") for entry in entries]
    await set_cached_leaderboard(cache_key, payload)
    return {"filters": filters.as_dict(), "entries": payload, "cached": False}


@router.get("/leaderboard/stream")
async def leaderboard_stream(
    topic: str | None = None,
    grade: str | None = None,
    section: str | None = None,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    """Server-sent leaderboard, recomputed from every store snapshot until the client leaves."""
    filters = _filters(identity, topic, grade, section)
    loop = asyncio.get_running_loop()
    snapshots: asyncio.Queue[Snapshot] = asyncio.Queue()

    def _on_snapshot(snapshot: Snapshot) -> None:
        loop.call_soon_threadsafe(snapshots.put_nowait, snapshot)

    subscriptions: list[Subscription] = []
    try:
        for prefix in SOURCE_PREFIXES:
            subscriptions.append(await run_engine(services.store.subscribe, Query(prefix=prefix), _on_snapshot))
    except Exception:
        for subscription in subscriptions:
            subscription.close()
        raise

    async def generator():
        latest: dict[str, Snapshot] = {}
        frames = 0
        try:
            while True:
                pending = [await snapshots.get()]
                while not snapshots.empty():
                    pending.append(snapshots.get_nowait())
                # Per prefix, a later snapshot supersedes an earlier one.
                for snapshot in pending:
                    current = latest.get(snapshot.query.prefix)
                    if current is None or snapshot.sequence > current.sequence:
                        latest[snapshot.query.prefix] = snapshot
                if len(latest) < len(SOURCE_PREFIXES):
                    continue
                documents = [pair for prefix in SOURCE_PREFIXES for pair in latest[prefix].documents]
                entries = services.leaderboard.from_documents(documents, filters)
                frames += 1
                data = {"sequence": frames, "entries": [e.model_dump(mode="json") for e in entries]}
                yield f"data: {json.dumps(data)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            for subscription in subscriptions:
                subscription.close()
            logger.debug("Leaderboard stream closed, %d subscription(s) released", len(subscriptions))

    return StreamingResponse(generator(), media_type="text/event-stream")
