from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import announce, run_engine, services_dep
from app.core.auth import STAFF_ROLES, Identity, ensure_self_or_staff, get_identity, require_roles
from app.core.event_bus import PROGRESS_RESET
from app.data.achievements import ACHIEVEMENTS
from app.engine.services import EngineServices

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/{student_id}")
async def get_progress(
    student_id: str,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    ensure_self_or_staff(identity, student_id)
    progress = await run_engine(services.progress.load, student_id)
    summary = await run_engine(services.progress.summary, student_id)
    gates = await run_engine(services.progress.gate_map, student_id)
    unlocked = set(progress.unlocked_achievement_ids)
    return {
        "student_id": student_id,
        "topics": {slug: record.model_dump(mode="json") for slug, record in progress.topics.items()},
        "gates": {slug: state.value for slug, state in gates.items()},
        "summary": summary.as_dict(),
        "achievements": [{**a, "unlocked": a["id"] in unlocked} for a in ACHIEVEMENTS],
    }


@router.get("/{student_id}/results")
async def get_results(
    student_id: str,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    ensure_self_or_staff(identity, student_id)
    results = await run_engine(services.progress.results, student_id)
    return {"student_id": student_id, "results": [r.model_dump(mode="json") for r in results]}


@router.delete("/{student_id}")
async def reset_progress(
    student_id: str,
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    removed = await run_engine(services.progress.reset, student_id)
    await announce(PROGRESS_RESET, student_id, {"results_removed": removed, "by": identity.user_id})
    return {"student_id": student_id, "results_removed": removed}
