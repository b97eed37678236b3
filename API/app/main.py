import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.content import router as content_router
from app.api.deps import run_engine
from app.api.events import router as events_router
from app.api.grades import router as grades_router
from app.api.health import router as health_router
from app.api.leaderboard import router as leaderboard_router
from app.api.progress import router as progress_router
from app.api.quizzes import auto_submit, router as quizzes_router
from app.autonomy.countdown import countdown_registry
from app.core.errors import (
    EngineError,
    engine_exception_handler,
    http_exception_handler,
    request_id_middleware,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.core.logging import configure_logging
from app.core.settings import settings
from app.engine.services import get_services
from app.memory.cache import invalidate_leaderboards

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="MathTrack Progression API", version="0.1.0")
app.include_router(health_router)
app.include_router(events_router)
app.include_router(content_router)
app.include_router(quizzes_router)
app.include_router(progress_router)
app.include_router(grades_router)
app.include_router(leaderboard_router)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(EngineError, engine_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
async def on_startup():
    services = get_services()
    # Deadlines outlive the process; overdue attempts are scored now, the rest get a fresh countdown.
    expired = await run_engine(services.attempts.expire_overdue)
    if expired:
        await invalidate_leaderboards()
    for attempt in await run_engine(services.attempts.open_timed_attempts):
        countdown_registry.arm(attempt.id, attempt.deadline, auto_submit)
    logger.info(
        "Startup complete: %d overdue attempt(s) auto-submitted, %d countdown(s) re-armed",
        len(expired),
        len(countdown_registry.active()),
    )


@app.on_event("shutdown")
async def on_shutdown():
    cancelled = countdown_registry.cancel_all()
    logger.info("Shutdown: %d countdown(s) cancelled", cancelled)
