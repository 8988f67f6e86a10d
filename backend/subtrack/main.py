from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

from subtrack.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from subtrack.database import engine, Base
from subtrack.routes import api_router
import subtrack.models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _get_cors_origins() -> list[str]:
    """
    Determine allowed CORS origins.

    If CORS_ALLOW_ORIGINS is not set, FRONTEND_URL is used.
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw:
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        if origins:
            return origins

    frontend_url = os.getenv("FRONTEND_URL")
    if frontend_url:
        return [frontend_url]

    return ["http://localhost:3000"]


# Guarded dev helper; prefer running migrations against a real database
if _env_bool("AUTO_CREATE_TABLES", default=False):
    logger.warning("AUTO_CREATE_TABLES is enabled; creating tables via SQLAlchemy metadata.")
    Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Subtrack API",
    description="Smart subscription import from bank statements",
    version="0.1.0",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/")
def root():
    return {"message": "Subtrack API", "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "healthy"}
