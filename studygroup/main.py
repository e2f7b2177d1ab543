import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studygroup.core import config
from studygroup.core.errors import ServiceError
from studygroup.core.logging import configure_logging
from studygroup.database import AsyncSessionLocal, Base, engine
from studygroup.realtime import events  # noqa: F401  registers the socket handlers
from studygroup.realtime.sio import socket_app  # mounts /socket.io
from studygroup.routes.auth import router as auth_router
from studygroup.routes.chat import router as chat_router
from studygroup.routes.courses import router as courses_router
from studygroup.routes.groups import router as groups_router
from studygroup.routes.health import router as health_router
from studygroup.routes.users import router as users_router
from studygroup.services.courses import EnrollmentService
from studygroup.services.users import UserService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if config.SEED_COURSES:
        async with AsyncSessionLocal() as db:
            await EnrollmentService(db).seed_default_courses()

    if config.ADMIN_EMAILS:
        async with AsyncSessionLocal() as db:
            await UserService(db).promote_admins(config.ADMIN_EMAILS)

    logger.info("app_started")
    yield
    logger.info("app_stopped")


async def service_error_handler(request: Request, exc: ServiceError):
    logger.info("service_error", path=request.url.path, code=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Study Group Platform", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response

    app.add_exception_handler(ServiceError, service_error_handler)

    # realtime
    app.mount("/socket.io", socket_app)

    # http routes
    app.include_router(health_router)
    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
    app.include_router(users_router, prefix="/api/user", tags=["user"])
    app.include_router(courses_router, prefix="/api/courses", tags=["courses"])
    app.include_router(groups_router, prefix="/api/groups", tags=["groups"])
    app.include_router(chat_router, prefix="/api/chat", tags=["chat"])

    return app


app = create_app()
