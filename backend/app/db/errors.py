from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def persistence_errors(db: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise store failures inside the block as ``PersistenceError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Could not %s", action)
        raise PersistenceError(f"Could not {action}", details={"error": exc.__class__.__name__}) from exc
