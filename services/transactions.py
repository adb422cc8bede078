import logging
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from models import db
from services.errors import TransactionConflict
from utils.sqlite import IMMEDIATE_OPTION

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """
    One unit of work on the request session.

    Commits on success. Any exception rolls the whole unit back; database
    contention surfaces as TransactionConflict so callers can retry it.
    """
    try:
        _begin_write()
        _apply_lock_timeout()
        yield db.session
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        logger.warning("transaction aborted by the database: %s", exc.orig)
        raise TransactionConflict("Database is busy, please retry") from exc
    except Exception:
        db.session.rollback()
        raise


@contextmanager
def consistent_read(release=True):
    """
    A plain read without row locks; contention surfaces as TransactionConflict.

    With ``release`` a transaction opened here is closed on exit, so the read
    holds nothing once its results are built. Callers returning ORM rows pass
    False to keep them loaded; the request teardown closes the transaction.
    """
    started = release and not db.session().in_transaction()
    try:
        yield db.session
    except OperationalError as exc:
        db.session.rollback()
        logger.warning("read aborted by the database: %s", exc.orig)
        raise TransactionConflict("Database is busy, please retry") from exc
    finally:
        if started and db.session().in_transaction():
            db.session.rollback()


def _begin_write():
    # an already open transaction keeps its mode; SQLite then takes the
    # write lock on the first write and reports a stale snapshot as busy
    if db.session().in_transaction():
        return
    db.session.connection(execution_options={IMMEDIATE_OPTION: True})


def _apply_lock_timeout():
    # SQLite waits on its busy timeout instead; see utils.sqlite
    if db.session.get_bind().dialect.name != "postgresql":
        return
    timeout_ms = int(current_app.config.get("LOCK_WAIT_TIMEOUT_MS", 5000))
    db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def run_with_retry(fn, *args, **kwargs):
    """
    Calls fn, retrying only TransactionConflict with exponential backoff.
    Every other BookingError needs a fresh decision from the user.
    """
    attempts = max(1, int(current_app.config.get("TX_RETRY_ATTEMPTS", 3)))
    backoff = float(current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.05))

    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except TransactionConflict:
            if attempt == attempts:
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.info("retrying %s after conflict (attempt %d/%d)", fn.__name__, attempt, attempts)
            time.sleep(delay)
