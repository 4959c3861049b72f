"""
Database access for billing state (``users`` and ``billings``).

DATABASE_URL picks the backend; without it the service keeps a SQLite file
under ``settings.data_directory``. The schema is owned by Alembic and is
upgraded to head when the app starts.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, create_engine

from app.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]

_engine: Optional[Engine] = None


def database_url() -> str:
    return os.environ.get("DATABASE_URL") or f"sqlite:///{Path(settings.data_directory) / 'billing.db'}"


def _enable_sqlite_wal(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def _build_engine(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, echo=settings.debug, pool_size=5, max_overflow=10, pool_pre_ping=True)

    if parsed.database:
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, echo=settings.debug, connect_args={"check_same_thread": False})
    _enable_sqlite_wal(engine)
    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = database_url()
        _engine = _build_engine(url)
        logger.info("Database engine created for %s", make_url(url).render_as_string(hide_password=True))
    return _engine


@contextmanager
def get_session_context() -> Iterator[Session]:
    """``with get_session_context() as session:`` for service code."""
    with Session(get_engine()) as session:
        yield session


def init_db() -> None:
    """Run ``alembic upgrade head`` against the configured database."""
    from alembic import command
    from alembic.config import Config

    ini_path = PROJECT_ROOT / "alembic.ini"
    if not ini_path.exists():
        logger.warning("No alembic.ini at %s, schema left as is", ini_path)
        return

    cfg = Config(str(ini_path))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    # keep the structlog handlers installed by setup_logging()
    cfg.attributes["configure_logger"] = False
    try:
        command.upgrade(cfg, "head")
    except Exception:
        logger.exception("Alembic upgrade failed")
        raise
    logger.info("Billing schema at head")


def close_db() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database connections closed")
