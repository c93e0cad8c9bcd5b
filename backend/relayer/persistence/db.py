from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from relayer.configuration.config import settings
from relayer.logging.logger import get_logger

log = get_logger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _sqlite_path(raw: str) -> Path:
    """Resolve a SQLite file path (creating parent dirs)."""
    db_file = Path(raw).expanduser().resolve()
    db_file.parent.mkdir(parents=True, exist_ok=True)
    return db_file


def _resolve_db_url(raw: str) -> str:
    """Accept either a SQLAlchemy URL or a plain SQLite file path."""
    if "://" in raw:
        return raw
    return str(URL.create("sqlite", database=_sqlite_path(raw).as_posix()))


def _build_engine(db_url: str) -> Engine:
    url = make_url(db_url)
    connect_args: dict = {}
    engine_kwargs: dict = dict(pool_pre_ping=True)

    is_sqlite = url.drivername.startswith("sqlite")
    in_memory = is_sqlite and (url.database or "") in ("", ":memory:")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    if in_memory:
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(url, connect_args=connect_args, **engine_kwargs)

    if is_sqlite and not in_memory:

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.close()

    return engine


def configure_database(db_url: Optional[str] = None) -> Engine:
    """(Re)bind the engine and session factory; defaults to settings.DATABASE_URL."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(_resolve_db_url(db_url or settings.DATABASE_URL))
    _session_factory = sessionmaker(bind=_engine, autocommit=False, autoflush=False, class_=Session)
    log.debug("[DB][CONFIGURE] url=%s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure_database()
    return _engine


@contextmanager
def _session() -> Generator[Session, None, None]:
    """Yield a DB session, committing on success and rolling back on error."""
    get_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create tables if they do not exist yet."""
    from relayer.persistence import models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(bind=get_engine())
