import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .config import settings
from .errors import ConflictError, PersistenceError
from .logging import get_logger

logger = get_logger(__name__)

# Lazily create engine so that test environment variables are available
engine: Optional[Engine] = None
_initialized = False


def _compute_db_url() -> str:
    # Use a separate database for tests to avoid polluting local data
    if os.getenv("PYTEST_CURRENT_TEST") or os.getenv("PYTEST") or os.getenv("TESTING") == "1":
        return "sqlite:///./app_test.db"
    return settings.database_url


def init_db():
    global _initialized
    global engine
    if engine is None:
        url = _compute_db_url()
        connect_args: Dict[str, Any] = {}
        if url.startswith("sqlite"):
            # FastAPI hands the session between threadpool and event loop
            connect_args["check_same_thread"] = False
        engine = create_engine(url, echo=False, connect_args=connect_args)
    if not _initialized:
        # Import for side effect: registers the tables on SQLModel.metadata
        from . import models  # noqa: F401

        SQLModel.metadata.create_all(engine)
        _initialized = True


def get_session():
    # lazy init in case app lifespan wasn't run (e.g., tests creating TestClient without context)
    init_db()
    assert engine is not None
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session, action: str, conflict_message: Optional[str] = None) -> Iterator[None]:
    """Commit the work done inside the block as one transaction.

    A unique-key collision with a concurrent writer surfaces as
    ``ConflictError``; other storage failures as ``PersistenceError``. Any
    other exception rolls back and propagates unchanged.
    """
    try:
        yield
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("write_conflict", action=action, error=str(exc.orig))
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("persistence_failed", action=action, error=str(exc))
        raise PersistenceError() from exc
    except Exception:
        session.rollback()
        raise
