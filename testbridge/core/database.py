import tempfile
from pathlib import Path
from typing import Generator

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker

from testbridge.config.settings import settings

logger = structlog.get_logger()

FALLBACK_DB_NAME = "testbridge_templates.db"


def build_engine(db_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, connect_args=connect_args)


def resolve_database_url(configured_url: str) -> str:
    """Make sure a file-based sqlite database can be created.

    Creates the parent directory; when it is not writable the template store
    moves to a file in the system temp directory.
    """
    try:
        url = make_url(configured_url)
    except ArgumentError as e:
        logger.debug("Could not parse database url", error=str(e), url=configured_url)
        return configured_url

    if not url.drivername.startswith("sqlite") or not url.database or url.database == ":memory:":
        return configured_url

    db_path = Path(url.database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()

    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        probe = db_path.parent / ".write_probe"
        probe.write_text("ok")
        probe.unlink()
    except OSError as e:
        fallback = f"sqlite:///{(Path(tempfile.gettempdir()) / FALLBACK_DB_NAME).as_posix()}"
        logger.error("Template database path not writable; using temp file",
                     path=str(db_path), fallback=fallback, error=str(e))
        return fallback

    logger.info("Template database resolved", path=str(db_path))
    return configured_url


engine = build_engine(resolve_database_url(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_database() -> Generator[Session, None, None]:
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine = engine) -> None:
    """Create the template tables"""
    from testbridge.models.database import Base

    Base.metadata.create_all(bind=bind)
    logger.info("Database tables created successfully")
