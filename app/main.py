"""
Entitlement & Access Backend API
Trial activation, payment webhook reconciliation and self-service account deletion.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    if not os.getenv("DATABASE_URL"):
        logger.error("DATABASE_URL is not set. Alembic migrations will not run.")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise


from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.api.routes import auth, trial, webhooks, account
from app.core.config import settings
from app.core.errors import EntitlementError
from app.db.session import engine
from app.db.base import Base
# Import all models to ensure they're registered with Base
from app.models import User, Profile, UserRole, Notification, ProcessedWebhookEvent  # noqa: F401

app = FastAPI(title="Entitlement & Access API")


@app.on_event("startup")
async def startup_event():
    """Create tables, then run Alembic migrations on every server restart.
    If migrations fail the server refuses to start."""
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Error creating tables")
        raise

    run_migrations()


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.detail, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(trial.router, prefix="/trial", tags=["Trial"])
app.include_router(account.router, prefix="/account", tags=["Account"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/health")
def health():
    return {"status": "ok"}
