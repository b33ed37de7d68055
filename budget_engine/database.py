import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA busy_timeout=60000;")
    finally:
        cursor.close()


if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,  # avoid multiple pooled connections holding write locks
    )
    # Pragmas go on every new connection so importing this module never opens the file
    event.listen(engine, "connect", _set_sqlite_pragmas)
else:
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
    )


def get_session():
    with Session(engine) as session:
        yield session


def write_with_retry(session: Session, write: Callable[[], T], attempts: int = 3, backoff: float = 0.12) -> T:
    """Run ``write`` and commit, retrying transient SQLite locks.

    A rollback expires every pending change, so ``write`` is called again on
    each attempt rather than re-committing the same session state.
    """
    for attempt in range(attempts):
        try:
            result = write()
            session.commit()
            return result
        except OperationalError:
            session.rollback()
            if attempt == attempts - 1:
                raise
            logger.warning("commit_retry attempt=%d", attempt + 1)
            time.sleep(backoff * (attempt + 1))


_LATE_COLUMNS = {
    "rollover": "ALTER TABLE budget_categories ADD COLUMN rollover BOOLEAN NOT NULL DEFAULT 1",
    "note": "ALTER TABLE budget_categories ADD COLUMN note TEXT",
}


def init_db(bind: Engine = None):
    from .models import allocation, category, goal, transaction  # noqa: F401

    bind = bind if bind is not None else engine

    # Lightweight migration for SQLite: add budget_categories columns older databases lack.
    try:
        if bind.url.get_backend_name() == "sqlite":
            with bind.begin() as conn:
                cols = conn.exec_driver_sql("PRAGMA table_info('budget_categories');").fetchall()
                col_names = {row[1] for row in cols}  # row[1] is the column name
                if col_names:
                    for name, ddl in _LATE_COLUMNS.items():
                        if name not in col_names:
                            conn.exec_driver_sql(ddl)
                            logger.info("migrated_column table=budget_categories column=%s", name)
    except OperationalError as exc:
        # Best-effort migration; do not block startup if the DB is locked.
        logger.warning("migration_skipped reason=%s", exc)

    SQLModel.metadata.create_all(bind)
