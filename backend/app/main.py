import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import (
    activity,
    assignations,
    automation,
    courses,
    departments,
    health,
    professors,
    programs,
    rooms,
    schedules,
)
from app.core.config import get_settings
from app.core.exceptions import AppError
from app.core.middleware import RequestSizeLimitMiddleware, RequestTimingMiddleware
from app.db.bootstrap import ensure_schema

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_schema()
    yield


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("APP ERROR | path=%s | status=%s | message=%s", request.url.path, exc.status_code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"successful": False, "message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(RequestTimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(departments.router, prefix=settings.api_prefix, tags=["departments"])
app.include_router(rooms.router, prefix=settings.api_prefix, tags=["rooms"])
app.include_router(programs.router, prefix=settings.api_prefix, tags=["programs"])
app.include_router(courses.router, prefix=settings.api_prefix, tags=["courses"])
app.include_router(professors.router, prefix=settings.api_prefix, tags=["professors"])
app.include_router(assignations.router, prefix=settings.api_prefix, tags=["assignations"])
app.include_router(automation.router, prefix=settings.api_prefix, tags=["automation"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(activity.router, prefix=settings.api_prefix, tags=["activity"])
