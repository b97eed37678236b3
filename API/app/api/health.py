from fastapi import APIRouter

from app.autonomy.countdown import countdown_registry
from app.core.event_bus import event_bus
from app.core.resilience import get_breakers_status
from app.core.settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "mathtrack-api",
        "store_backend": settings.store_backend,
        "unlock_threshold": settings.unlock_threshold,
        "active_countdowns": len(countdown_registry.active()),
        "event_subscribers": event_bus.subscriber_count(),
        "breakers": get_breakers_status(),
    }
