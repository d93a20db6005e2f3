from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import settings

def _engine_kwargs(url: str) -> dict:
    """SQLite needs thread sharing for the threadpool; in-memory also needs one shared connection"""
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    return kwargs

engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_session_factory():
    """Session factory for work that must not share the request session, such as threadpool jobs"""
    return SessionLocal

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """Create all tables (no migrations are managed by this service)"""
    # Import models so they register on Base.metadata
    from src import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
