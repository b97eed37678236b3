"""Curriculum and course content: topic gates, published materials and quizzes, content views."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.api.deps import announce, run_engine, services_dep, topic_progress_view
from app.core.auth import STAFF_ROLES, Identity, ensure_self_or_staff, get_identity, require_roles
from app.core.errors import NotFoundError, TopicLockedError
from app.core.event_bus import CONTENT_VIEWED
from app.engine.content import describe, parse_content
from app.engine.gate import GateState
from app.engine.services import EngineServices

router = APIRouter(prefix="/content", tags=["content"])


def _known_topic(services: EngineServices, slug: str) -> None:
    if not any(topic.slug == slug for topic in services.catalog):
        raise NotFoundError(f"Unknown topic '{slug}'")


@router.get("/topics")
async def list_topics(
    student_id: str | None = None,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    student_id = student_id or identity.user_id
    ensure_self_or_staff(identity, student_id)
    gates = await run_engine(services.progress.gate_map, student_id)
    return {
        "student_id": student_id,
        "topics": [
            {"slug": t.slug, "title": t.title, "order": t.order, "state": gates[t.slug].value}
            for t in sorted(services.catalog, key=lambda t: t.order)
        ],
    }


@router.get("/topics/{slug}")
async def topic_content(
    slug: str,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    _known_topic(services, slug)
    if identity.is_staff:
        items = await run_engine(services.content.for_topic, slug, True)
        return {"topic": slug, "items": [describe(item) for item in items]}
    state = await run_engine(services.progress.topic_state, identity.user_id, slug)
    return await run_engine(services.content.visible_to_student, slug, state)


@router.post("/topics/{slug}/viewed")
async def mark_viewed(
    slug: str,
    identity: Identity = Depends(require_roles("student")),
    services: EngineServices = Depends(services_dep),
):
    _known_topic(services, slug)
    state = await run_engine(services.progress.topic_state, identity.user_id, slug)
    if state != GateState.UNLOCKED:
        raise TopicLockedError(f"Topic {slug} is locked", details={"topic": slug})
    update = await run_engine(services.progress.content_viewed, identity.user_id, slug)
    await announce(CONTENT_VIEWED, identity.user_id, {"topic": slug}, update)
    return topic_progress_view(update)


@router.post("", status_code=201)
async def publish_content(
    payload: dict = Body(...),
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    """Publish a quiz or a lesson material, discriminated by ``content_type``."""
    data = {**payload, "teacher_id": identity.user_id, "id": payload.get("id") or uuid.uuid4().hex}
    if data.get("content_type") == "quiz" and isinstance(data.get("quiz"), dict):
        data["quiz"] = {"id": data["id"], "topic": data.get("topic", ""), **data["quiz"]}
    try:
        item = parse_content(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc
    _known_topic(services, item.topic)
    item = await run_engine(services.content.publish, item)
    return describe(item)
