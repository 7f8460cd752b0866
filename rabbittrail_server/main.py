# Copyright (C) 2024 RabbitTrail Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""RabbitTrail Server - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rabbittrail_server.config import settings
from rabbittrail_server.database import init_db
from rabbittrail_server.errors import RabbitTrailError
from rabbittrail_server.routers import auth, collaborators, entries, invitations, projects

logger = logging.getLogger(__name__)
logging.getLogger("rabbittrail_server").setLevel(settings.log_level.upper())

VERSION = "0.1.0"


INVITATION_PREFIX = "/api/v1/invitations/"


def mask_invitation_token(path: str) -> str:
    """Replace the token in an invitation path so it never reaches a log."""
    if not path.startswith(INVITATION_PREFIX):
        return path
    rest = path[len(INVITATION_PREFIX):]
    tail = rest[rest.index("/"):] if "/" in rest else ""
    return f"{INVITATION_PREFIX}<token>{tail}"


class InvitationTokenFilter(logging.Filter):
    """Mask invitation tokens in uvicorn access log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access args: (client, method, path, http_version, status)
        if isinstance(record.args, tuple) and len(record.args) >= 3 and isinstance(record.args[2], str):
            args = list(record.args)
            args[2] = mask_invitation_token(args[2])
            record.args = tuple(args)
        return True


logging.getLogger("uvicorn.access").addFilter(InvitationTokenFilter())


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    logger.info("RabbitTrail Server %s started", VERSION)
    yield
    # shutdown


async def rabbittrail_error_handler(request: Request, exc: RabbitTrailError) -> JSONResponse:
    """Map a service failure to its status code with a stable ``code``."""
    if exc.status_code == status.HTTP_403_FORBIDDEN:
        logger.debug("%s %s denied: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters are a 400 like any other invalid data."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Request validation failed",
            "code": "validation_error",
            "errors": errors,
        },
    )


app = FastAPI(
    title="RabbitTrail Server",
    description="Collaborative research-project API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RabbitTrailError, rabbittrail_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body or auth headers)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    path = mask_invitation_token(request.url.path)
    logger.info("%s %s %s %.1fms", request.method, path, response.status_code, duration_ms)
    return response

# API v1
app.include_router(auth.router, prefix="/api/v1")
app.include_router(projects.router, prefix="/api/v1")
app.include_router(entries.router, prefix="/api/v1")
app.include_router(collaborators.router, prefix="/api/v1")
app.include_router(invitations.router, prefix="/api/v1")


@app.get("/")
async def root():
    """API info."""
    return {
        "name": "RabbitTrail Server",
        "version": VERSION,
        "api": "/api/v1",
        "docs": "/api/docs",
    }


@app.get("/api/v1/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}
