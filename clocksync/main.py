import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.timeclock import router as timeclock_router
from .services.errors import SyncError, TransientStoreError

logger = structlog.get_logger(__name__)


def _init_db() -> None:
    if not settings.auto_create_db:
        return
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs(os.path.dirname(settings.database_url.replace("sqlite:///", "")) or ".", exist_ok=True)
    Base.metadata.create_all(bind=engine)
    logger.info("database_ready", url=engine.url.render_as_string(hide_password=True))


@asynccontextmanager
async def lifespan(app: FastAPI):
    _init_db()
    logger.info("app_started", environment=settings.environment, append_mode=settings.change_append_mode)
    yield
    engine.dispose()


async def sync_error_handler(request: Request, exc: SyncError):
    if isinstance(exc, TransientStoreError):
        logger.error("request_failed_store", path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(SyncError, sync_error_handler)

    # Routers
    app.include_router(timeclock_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        db_ok = True
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
        except SQLAlchemyError:
            db_ok = False
        return {"status": "ok" if db_ok else "degraded", "db": db_ok}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clocksync.main:app", host=settings.host, port=settings.port)
