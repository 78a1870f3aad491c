"""FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database, check_database_health, get_db
from .domain_errors import DomainError
from .problem_details import build_problem_details_response
from .routers import (
    directory,
    discussions,
    lookup_lists,
    mcl_reports,
    notifications,
    problem_reports,
    system,
    users,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = Database.from_settings(settings)
    await db.create_schema()
    app.state.db = db
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)
    try:
        yield
    finally:
        await db.dispose()


# Create app
app = FastAPI(
    title="WorkflowPro",
    version="1.0.0",
    description="Backend API for workload reporting: MCL and problem reports, discussions, notifications",
    lifespan=lifespan,
)

# Production safety checks
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return build_problem_details_response(exc)


# Include routers
app.include_router(directory.router, prefix="/api/v1")
app.include_router(mcl_reports.router, prefix="/api/v1")
app.include_router(problem_reports.router, prefix="/api/v1")
app.include_router(discussions.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(lookup_lists.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(system.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
async def health_check(db: Database = Depends(get_db)):
    """Database health; 503 while unhealthy so load balancers back off."""
    health = await check_database_health(db)
    status_code = 503 if health.status == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=health.model_dump(mode="json"))
