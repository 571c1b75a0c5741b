from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from signup_service.core.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite is used for local runs; sessions are shared with the scheduler
    # thread and writers must wait on the database lock instead of failing.
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"pool_pre_ping": True}


# The engine is the entry point to the database. It's configured with the
# database URL and handles the connection pooling.
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

# SessionLocal is a factory for creating new Session objects.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
