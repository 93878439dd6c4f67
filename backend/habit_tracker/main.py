from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from habit_tracker.core.config import settings
from habit_tracker.core.errors import HabitTrackerError
from habit_tracker.db.base import SessionLocal
from habit_tracker.db.session import create_tables
from habit_tracker.routes import achievements, habits, progress
from habit_tracker.services.achievements import AchievementService
from habit_tracker.services.scheduler import scheduler_service


# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.app_name} API")
    logger.info(f"CORS allow_origins: {settings.cors_origins}")
    await create_tables()
    db = SessionLocal()
    try:
        AchievementService.initialize_achievements(db)
    finally:
        db.close()
    if settings.enable_scheduler:
        scheduler_service.start()
    yield
    # Shutdown
    scheduler_service.shutdown()
    logger.info("Shutting down API")


app = FastAPI(
    title=f"{settings.app_name} API",
    description="Habit scheduling, completion tracking and streak analytics",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HabitTrackerError)
async def habit_tracker_error_handler(request: Request, exc: HabitTrackerError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include routers
app.include_router(habits.router, prefix="/habits", tags=["habits"])
app.include_router(progress.router, prefix="/progress", tags=["progress"])
app.include_router(achievements.router, prefix="/achievements", tags=["achievements"])


@app.get("/health")
async def health():
    return {"status": "healthy", "app": settings.app_name}
