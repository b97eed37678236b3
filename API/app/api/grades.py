"""Grading periods: quarter reports with GPA, and the teacher's end/reopen controls."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import announce, run_engine, services_dep
from app.core.auth import STAFF_ROLES, Identity, ensure_self_or_staff, get_identity, require_roles
from app.core.errors import PermissionDeniedError
from app.core.event_bus import QUARTER_CHANGED
from app.engine.grading import GPA_SCALE, quarter_report, require_quarter_key
from app.engine.services import EngineServices

router = APIRouter(prefix="/grades", tags=["grades"])


class QuarterFlagRequest(BaseModel):
    ended: bool


class BulkQuarterRequest(BaseModel):
    action: Literal["end", "reopen"]
    student_ids: list[str] | None = None


async def _ensure_in_scope(identity: Identity, services: EngineServices, student_id: str) -> None:
    """Teachers may only change quarters of students on their own roster."""
    if identity.role != "teacher":
        return
    student = await run_engine(services.leaderboard.student, student_id)
    if student.teacher_id != identity.user_id:
        raise PermissionDeniedError(f"Student {student_id} is not on this teacher's roster")


@router.get("/scale")
async def gpa_scale():
    return {"bands": [{"min": low, "max": high, "gpa": gpa} for low, high, gpa in GPA_SCALE]}


@router.get("/{student_id}")
async def student_grades(
    student_id: str,
    identity: Identity = Depends(get_identity),
    services: EngineServices = Depends(services_dep),
):
    ensure_self_or_staff(identity, student_id)
    status = await run_engine(services.quarters.get, student_id)
    results = await run_engine(services.progress.results, student_id)
    return {
        "student_id": student_id,
        "quarter_status": status.model_dump(),
        "quarters": quarter_report(results, status),
    }


@router.put("/{student_id}/quarters/{quarter}")
async def set_quarter(
    student_id: str,
    quarter: str,
    payload: QuarterFlagRequest,
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    key = require_quarter_key(quarter)
    await _ensure_in_scope(identity, services, student_id)
    status = await run_engine(services.quarters.set, student_id, key, payload.ended)
    await announce(QUARTER_CHANGED, student_id, {"quarter": key, "ended": payload.ended})
    return status.model_dump()


@router.post("/{student_id}/quarters/{quarter}/toggle")
async def toggle_quarter(
    student_id: str,
    quarter: str,
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    key = require_quarter_key(quarter)
    await _ensure_in_scope(identity, services, student_id)
    status = await run_engine(services.quarters.toggle, student_id, key)
    await announce(QUARTER_CHANGED, student_id, {"quarter": key, "ended": getattr(status, key)})
    return status.model_dump()


@router.post("/quarters/{quarter}/bulk")
async def bulk_quarter(
    quarter: str,
    payload: BulkQuarterRequest,
    identity: Identity = Depends(require_roles(*STAFF_ROLES)),
    services: EngineServices = Depends(services_dep),
):
    """End or reopen a quarter for listed students, or for the caller's whole roster."""
    key = require_quarter_key(quarter)
    roster = await run_engine(services.leaderboard.students)
    if identity.role == "teacher":
        roster = [s for s in roster if s.teacher_id == identity.user_id]
    roster_ids = [s.id for s in roster]
    if payload.student_ids is None:
        student_ids = roster_ids
    elif identity.role == "teacher":
        allowed = set(roster_ids)
        student_ids = [sid for sid in payload.student_ids if sid in allowed]
    else:
        student_ids = payload.student_ids
    ended = payload.action == "end"
    updated = await run_engine(services.quarters.set_many, student_ids, key, ended)
    for student_id in updated:
        await announce(QUARTER_CHANGED, student_id, {"quarter": key, "ended": ended})
    return {"quarter": key, "ended": ended, "students": sorted(updated)}
