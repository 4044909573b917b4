import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.activity.router import router as activity_router
from app.config import Settings
from app.database import init_db
from app.progress.router import router as progress_router
from shared.database.redis_client import get_redis_client
from shared.middleware.error_handler import install_error_handlers
from shared.middleware.request_id import request_id_middleware


def get_settings() -> Settings:
    return Settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(settings.progress_database_url)

    # Redis pool (resume cache only; the service runs without it)
    app.state.redis = get_redis_client(settings.redis_url)

    yield

    # Shutdown
    await app.state.redis.aclose()


SWAGGER_DESCRIPTION = """\
## Progress & Completion Service

Owns learner progress: activity tracking, lesson completion requirements,
quiz gating, the per-module completion ledger, and prerequisite gating.

### Domain Tags

| Tag | Description |
|-----|-------------|
| **Activity** | Time on lesson, video ticks, asset downloads |
| **Progress** | Lesson completion, summaries, module access, course completion |

### Authentication

All endpoints (except health check) require a valid JWT Bearer token in the
`Authorization` header. Token structure: `{"sub": "<user_uuid>", ...}`.

### Completion requirements

A lesson completes when, in order, its video is watched, its required assets
are downloaded, the minimum time is reached, and its required quiz is passed
(latest finalized attempt). A failed completion returns 422 naming the first
unmet requirement. 409 and 503 responses are retryable; completion is idempotent.
"""


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="LMS Progress Service",
        version="0.1.0",
        description=SWAGGER_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    app.middleware("http")(request_id_middleware)
    install_error_handlers(app)

    app.include_router(activity_router, prefix="/api/v1")
    app.include_router(progress_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        return {"status": "ok", "service": "progress"}

    return app


app = create_app()
