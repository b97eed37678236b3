from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.core.auth import Identity, ensure_self_or_staff, get_identity
from app.core.event_bus import event_bus

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/stream")
async def stream_events(student_id: str | None = None, identity: Identity = Depends(get_identity)):
    if not identity.is_staff:
        student_id = student_id or identity.user_id
    if student_id:
        ensure_self_or_staff(identity, student_id)
    queue = await event_bus.subscribe(student_id=student_id, replay_last=20)

    async def generator():
        try:
            while True:
                event = await queue.get()
                yield f"data: {json.dumps(event)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            await event_bus.unsubscribe(queue)

    return StreamingResponse(generator(), media_type="text/event-stream")


@router.get("/recent")
async def recent_events(limit: int = 50, identity: Identity = Depends(get_identity)):
    events = event_bus.history()
    if not identity.is_staff:
        events = [event for event in events if event.get("student_id") == identity.user_id]
    return {"events": events[-max(1, min(limit, 200)):]}
