"""SQLModel database engine and table creation."""

import logging
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlmodel import SQLModel, create_engine

from treasury.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _ensure_sqlite_dir(url: str):
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or not parsed.database or parsed.database == ":memory:":
        return
    Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


def create_db_and_tables(db_engine=None):
    """Create all tables. Called on startup."""
    # Register table metadata
    import treasury.models  # noqa: F401

    db_engine = db_engine or engine
    _ensure_sqlite_dir(str(db_engine.url))
    SQLModel.metadata.create_all(db_engine)
    logger.debug(f"Database ready at {db_engine.url}")
