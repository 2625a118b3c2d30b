import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from calendar_api.core import config
from calendar_api.core.errors import BookingTimeout, ConcurrentUpdateConflict

logger = logging.getLogger(__name__)

T = TypeVar('T')

POSTGRES_LOCK_NOT_AVAILABLE = '55P03'
SQLITE_LOCK_MESSAGES = ('database is locked', 'database table is locked', 'database is busy')


def _apply_lock_timeout(db: Session, remaining_seconds: float) -> None:
    if db.get_bind().dialect.name != 'postgresql':
        return
    timeout_ms = max(1, int(remaining_seconds * 1000))
    db.execute(text(f'SET LOCAL lock_timeout = {timeout_ms}'))


def _is_lock_timeout(exc: OperationalError) -> bool:
    if getattr(exc.orig, 'pgcode', None) == POSTGRES_LOCK_NOT_AVAILABLE:
        return True
    # SQLite gives up on its busy timeout with a plain OperationalError.
    message = str(exc.orig).lower()
    return any(marker in message for marker in SQLITE_LOCK_MESSAGES)


def run_in_transaction(db: Session, operation: Callable[[], T], *, description: str) -> T:
    """Run ``operation`` and commit it as one unit of work.

    Any exception rolls back everything the operation wrote. Lost optimistic
    races are retried from scratch against fresh rows, so the business checks
    inside ``operation`` always see committed state.
    """
    deadline = time.monotonic() + config.BOOKING_LOCK_TIMEOUT_SECONDS
    attempt = 0

    while True:
        attempt += 1
        try:
            _apply_lock_timeout(db, deadline - time.monotonic())
            result = operation()
            db.commit()
            return result
        except (StaleDataError, IntegrityError) as exc:
            db.rollback()
            if attempt >= config.BOOKING_MAX_RETRIES:
                logger.warning('%s gave up after %d conflicting attempts', description, attempt)
                raise ConcurrentUpdateConflict(
                    'The calendar was modified concurrently. Please retry.',
                    details={'attempts': attempt},
                ) from exc
            if time.monotonic() >= deadline:
                raise BookingTimeout(
                    'Timed out waiting for the calendar to settle. Please retry.',
                    details={'attempts': attempt},
                ) from exc
            logger.warning('%s hit a concurrent update (attempt %d), retrying', description, attempt)
            time.sleep(config.BOOKING_RETRY_BACKOFF_SECONDS * attempt)
        except OperationalError as exc:
            db.rollback()
            if _is_lock_timeout(exc):
                raise BookingTimeout(
                    'Timed out waiting for a calendar lock. Please retry.',
                ) from exc
            raise
        except Exception:
            db.rollback()
            raise
