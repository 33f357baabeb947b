from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, SessionTransaction

from shopcart.utils.logs import get_logger

log = get_logger("tx")


@contextmanager
def smart_transaction(session: Session) -> Iterator[SessionTransaction]:
    """
    Open a unit of work on `session`: a SAVEPOINT (begin_nested) when the
    session is already inside a transaction, a top-level begin otherwise.

    An exception raised in the block rolls back only that unit and is
    re-raised, so a caller can catch the IntegrityError of a lost
    unique-constraint race and keep using the session.

    Usage:
        with smart_transaction(db):
            repo.add_usage(...)
    """
    nested = session.in_transaction()
    tx = session.begin_nested() if nested else session.begin()
    try:
        with tx:
            yield tx
    except Exception as e:
        log.debug(f"{'savepoint' if nested else 'transaction'} rolled back: {type(e).__name__}")
        raise
