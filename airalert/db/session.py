"""Engine and session factory shared by the API, Celery tasks and the feed listener."""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from airalert.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        # The dispatcher fans out over worker threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "poolclass": QueuePool,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
    }


engine = create_engine(str(settings.DATABASE_URL), **_engine_options(str(settings.DATABASE_URL)))

SessionLocal = sessionmaker(
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Dispatcher hands detached rows across sessions
)
