from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from projectsync.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # single-file dev database shared with the request threadpool
        return {"connect_args": {"check_same_thread": False}}

    connect_args = {}
    # hosted Postgres (Supabase and the like) requires SSL
    if settings.DATABASE_SSL_REQUIRED or "supabase" in url.lower():
        connect_args["sslmode"] = "require"
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "connect_args": connect_args,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
