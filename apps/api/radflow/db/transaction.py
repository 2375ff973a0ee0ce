"""Transaction helpers: statement timeouts and all-or-nothing units of work."""

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from radflow.core.exceptions import Conflict, Internal, RadflowError
from radflow.db.session import is_postgres

logger = logging.getLogger(__name__)


def apply_statement_timeout(db: Session, seconds: float) -> None:
    """Bound every remaining statement in the current transaction (PostgreSQL only)."""
    if seconds and is_postgres(db):
        db.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))


@contextmanager
def atomic(db: Session, *, operation: str, timeout_seconds: float | None = None) -> Iterator[Session]:
    """
    Run the block as one unit of work: commit on success, roll back everything on error.

    Domain errors propagate unchanged; IntegrityError becomes Conflict and any
    other database error becomes Internal. Overrunning the time budget is
    logged; the database enforces the hard limit.
    """
    started = time.monotonic()
    try:
        if timeout_seconds:
            apply_statement_timeout(db, timeout_seconds)
        yield db
        db.flush()
        db.commit()
    except RadflowError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("%s aborted on constraint violation", operation)
        raise Conflict("Record changed or identifier collision, retry the operation") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s aborted, transaction rolled back", operation)
        raise Internal(f"Failed to save {operation}") from exc
    except Exception:
        db.rollback()
        raise

    elapsed = time.monotonic() - started
    if timeout_seconds and elapsed > timeout_seconds:
        logger.warning("%s took %.2fs (budget %.2fs)", operation, elapsed, timeout_seconds)
