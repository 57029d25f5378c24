import asyncio
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, Request
from loguru import logger

from workout_engine.config.settings import settings
from workout_engine.core.logger import setup_logger
from workout_engine.db.session import init_db
from workout_engine.scheduling.api import get_schedule_engine
from workout_engine.scheduling.api import router as schedule_router

setup_logger()


def generation_tick() -> None:
    """Extend every active plan's materialized window up to its horizon."""
    outcomes = get_schedule_engine().generate_for_active_plans()
    failed = [outcome.plan_id for outcome in outcomes if not outcome.success]
    if failed:
        logger.warning("[SCHEDULER] Generation failed for some plans", failed_plans=failed)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create tables and start the periodic generation job.

    Note: FastAPI requires async for lifespan context manager,
    even if no await operations are used.
    """
    logger.info("Ensuring database tables exist")
    init_db()

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            generation_tick,
            trigger=IntervalTrigger(minutes=settings.generation_interval_minutes),
            id="instance_generation",
            name="Workout Instance Generation",
            replace_existing=True,
        )
        scheduler.start()
        logger.info(
            "[SCHEDULER] Started generation scheduler",
            interval_minutes=settings.generation_interval_minutes,
        )

    await asyncio.sleep(0)
    yield

    if scheduler is not None:
        scheduler.shutdown()
        logger.info("[SCHEDULER] Stopped generation scheduler")


app = FastAPI(title="Workout Schedule Engine", lifespan=lifespan)

app.include_router(schedule_router)

logger.info("FastAPI application initialized")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.debug(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
    return response
