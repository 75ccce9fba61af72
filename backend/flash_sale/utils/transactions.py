from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

from sqlalchemy.orm import Session


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in the schema stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def smart_transaction(session: Session) -> Iterator:
    """
    Context manager that begins a transaction on the given Session.
    If a transaction is already active, start a nested SAVEPOINT (begin_nested).
    Otherwise start a normal transaction (begin).
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    if session.in_transaction():
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield


@contextmanager
def unit_of_work(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """
    One atomic unit on a fresh session: commits on clean exit, rolls back on
    any exception, always closes. Objects loaded inside stay usable after
    exit only if the factory was built with expire_on_commit=False.
    """
    db = session_factory()
    try:
        with smart_transaction(db):
            yield db
    finally:
        db.close()
