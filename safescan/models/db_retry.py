import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

SQLITE_LOCK_MESSAGES = ("database is locked", "database is busy")


def is_lock_contention(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(text in message for text in SQLITE_LOCK_MESSAGES)


def commit_with_retry(session: Session, retries: int = 3, delay: float = 0.1) -> None:
    """Commit, retrying only while SQLite reports the database as locked.

    The pending state is kept between attempts, so a retry re-sends the same
    transaction. Any other error, or running out of attempts, rolls back and
    re-raises.
    """
    for attempt in range(1, retries + 1):
        try:
            session.commit()
            return
        except OperationalError as exc:
            if not is_lock_contention(exc) or attempt == retries:
                logger.error(f"Commit failed after {attempt} attempt(s): {exc.orig}")
                session.rollback()
                raise
            wait = delay * attempt
            logger.warning(f"Database locked on commit attempt {attempt}/{retries}, retrying in {wait:.2f}s")
            time.sleep(wait)
