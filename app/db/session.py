from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Local runs only; Postgres is the deployed store
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": 30,
        "pool_pre_ping": True,  # Handles stale connections
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, echo=False, **_engine_kwargs(settings.database_url))

# Request handlers borrow a session via get_db; background work and
# Celery tasks open their own SessionLocal()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
