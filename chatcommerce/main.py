import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from chatcommerce.core.config import DATABASE_URL, IS_DEV
from chatcommerce.core.database import Base, engine
from chatcommerce.core.logging_setup import configure_logging
from chatcommerce.core.startup_checks import ensure_migrations_applied, validate_database_environment
from chatcommerce.middleware.observability import ObservabilityMiddleware
import chatcommerce.models  # garante que os models são importados antes do create_all

from chatcommerce.routers.internal_metrics import router as internal_metrics_router
from chatcommerce.routers.simulator import router as simulator_router
from chatcommerce.routers.webhook import router as webhook_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Chat Commerce API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(ObservabilityMiddleware)


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if IS_DEV and DATABASE_URL.startswith("sqlite"):
            # Cria tabelas (dev). Em produção, use migrations.
            Base.metadata.create_all(bind=engine)
            logger.info("%s sqlite dev database ready, migration check skipped", STARTUP_PREFIX)
            return
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


# Routers
app.include_router(webhook_router)
app.include_router(simulator_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
