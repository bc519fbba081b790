from functools import lru_cache
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config import settings

# Create a Base class for declarative models (EHI mirror tables)
Base = declarative_base()


def _engine_kwargs(url: str, statement_timeout: bool = True) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {}
    kwargs: Dict[str, Any] = {
        "pool_size": 5,  # The number of connections to keep open in the pool.
        "max_overflow": 10,  # Extra connections allowed beyond pool_size.
        "pool_recycle": 3600,  # Recycle connections after 1 hour to prevent timeout issues.
        "pool_pre_ping": True,  # Check if the connection is alive before using it.
    }
    # Request-time reads only; sync writes run without a statement timeout.
    if statement_timeout and url.startswith("postgres"):
        timeout_ms = int(settings.source_query_timeout_seconds * 1000)
        kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
    return kwargs


def normalize_url(url: str) -> str:
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


@lru_cache(maxsize=None)
def get_live_engine() -> Optional[Engine]:
    """Engine for the EMPL production database, or None when not configured."""
    if not settings.empl_database_url:
        return None
    url = normalize_url(settings.empl_database_url)
    return create_engine(url, **_engine_kwargs(url))


@lru_cache(maxsize=None)
def get_mirror_engine() -> Optional[Engine]:
    """Engine for the EHI mirror database, or None when not configured."""
    if not settings.ehi_database_url:
        return None
    url = normalize_url(settings.ehi_database_url)
    engine = create_engine(url, **_engine_kwargs(url))
    return engine


@lru_cache(maxsize=None)
def get_mirror_sync_engine() -> Optional[Engine]:
    """Mirror engine for the sync job: same pool, no statement_timeout."""
    if not settings.ehi_database_url:
        return None
    url = normalize_url(settings.ehi_database_url)
    return create_engine(url, **_engine_kwargs(url, statement_timeout=False))


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache(maxsize=None)
def get_mirror_session_factory() -> Optional[sessionmaker]:
    engine = get_mirror_engine()
    if engine is None:
        return None
    return make_session_factory(engine)


@lru_cache(maxsize=None)
def get_mirror_sync_session_factory() -> Optional[sessionmaker]:
    engine = get_mirror_sync_engine()
    if engine is None:
        return None
    return make_session_factory(engine)


def init_mirror_schema(engine: Engine) -> None:
    import models  # noqa: F401  (registers the tables on Base.metadata)

    Base.metadata.create_all(bind=engine)


# --- Dependency for FastAPI ---
def get_mirror_db() -> Iterator[Optional[Session]]:
    """
    FastAPI dependency that provides a mirror database session per request,
    or None when the mirror is not configured.
    """
    factory = get_mirror_session_factory()
    if factory is None:
        yield None
        return
    db = factory()
    try:
        yield db
    finally:
        db.close()
