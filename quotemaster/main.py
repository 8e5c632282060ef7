import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from quotemaster.api.router import api_router
from quotemaster.config import settings
from quotemaster.core.errors import ProcurementError
from quotemaster.core.observability import (
    global_exception_handler,
    procurement_error_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from quotemaster.database import SessionLocal
from quotemaster.scripts.seed_users import seed_dev_users

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("quotemaster")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return
    if (settings.environment or "").lower() == "test":
        return

    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    try:
        command.upgrade(alembic_cfg, "head")
        logger.info("migrations_applied")
    except SQLAlchemyError as exc:
        # Endpoints that need the DB will fail on their own; keep the API up.
        logger.error("migrations_failed", extra={"error": str(exc)})


def _seed_dev_users() -> None:
    env = str(settings.environment or "dev").lower()
    if env in {"prod", "production", "test"}:
        return

    db = SessionLocal()
    try:
        created = seed_dev_users(db)
        if created:
            logger.info("dev_users_seeded", extra={"created_users": created})
    except SQLAlchemyError as exc:
        # Tables may not exist yet; don't block startup.
        logger.warning("dev_user_seed_failed", extra={"error": str(exc)})
        db.rollback()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _run_migrations_if_configured()
    _seed_dev_users()
    yield


app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
    lifespan=lifespan,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

app.add_exception_handler(ProcurementError, procurement_error_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=api_prefix)


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness check; keep the payload stable for monitoring."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
