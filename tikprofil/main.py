import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tikprofil.core.config import CORS_ALLOW_ORIGIN_REGEX, CORS_ORIGINS, DATABASE_URL, ENV
from tikprofil.core.database import Base, engine
from tikprofil.core.logging_setup import configure_logging
from tikprofil.core.startup_checks import ensure_migrations_applied, validate_database_environment
from tikprofil.middleware.observability import ObservabilityMiddleware
import tikprofil.models  # models must be imported before create_all
import tikprofil.services.event_handlers  # registers event bus handlers

from tikprofil.routers.checkout import router as checkout_router
from tikprofil.routers.coupons import router as coupons_router
from tikprofil.routers.orders import router as orders_router
from tikprofil.routers.whatsapp import router as whatsapp_router
from tikprofil.routers.internal_metrics import router as internal_metrics_router

configure_logging()

logger = logging.getLogger(__name__)
ENVIRONMENT = os.getenv("ENVIRONMENT", ENV).strip().lower()
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="TikProfil Checkout API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


def _startup_tasks() -> None:
    validate_database_environment()
    if DATABASE_URL.startswith("sqlite"):
        # local development bootstrap; real databases go through alembic
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ensured env=%s", ENVIRONMENT)
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)


app.include_router(checkout_router)
app.include_router(coupons_router)
app.include_router(orders_router)
app.include_router(whatsapp_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok", "service": "tikprofil-checkout"}


@app.get("/health")
def health():
    return {"status": "ok"}
