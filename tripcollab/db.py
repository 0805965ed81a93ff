from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Annotated

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from tripcollab.core.config import settings
from tripcollab.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def _build_engine():
    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(settings.DATABASE_URL, connect_args=connect_args)


engine = _build_engine()


def init_db(bind=None) -> None:
    """Create database tables in environments without migrations."""
    import tripcollab.models  # noqa: F401  registers tables on the metadata

    SQLModel.metadata.create_all(bind=bind or engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_session)]


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or nothing.

    Database failures surface as ``StoreUnavailableError`` so callers can retry.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"Database write failed, rolled back: {exc}", exc_info=True)
        raise StoreUnavailableError() from exc
    except Exception:
        session.rollback()
        raise
