from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import assignments, health, reviews, scopes, teams, venues
from app.core.config import get_settings
from app.core.exceptions import AppError
from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.services.reassignment_job import create_scheduler

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema_compatibility()
    scheduler = None
    if settings.enable_nightly_scheduler:
        scheduler = create_scheduler(SessionLocal, settings)
        scheduler.start()
        logger.info("Nightly scheduler started")
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Nightly scheduler stopped")


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(assignments.router, prefix=f"{settings.api_prefix}/assignments", tags=["assignments"])
app.include_router(teams.router, prefix=f"{settings.api_prefix}/teams", tags=["teams"])
app.include_router(venues.router, prefix=f"{settings.api_prefix}/venues", tags=["venues"])
app.include_router(scopes.router, prefix=f"{settings.api_prefix}/scopes", tags=["scopes"])
app.include_router(reviews.router, prefix=f"{settings.api_prefix}/reviews", tags=["reviews"])
