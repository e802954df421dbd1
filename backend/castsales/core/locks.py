"""Advisory locks backed by the ``recalculation_locks`` table.

A lock is a row with a unique key; inserting it acquires the lock and a
unique-key conflict means somebody else holds it. Expired rows are swept
before every attempt so a crashed holder cannot block forever.
"""

import logging
import os
import socket
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from castsales.core.config import settings
from castsales.models.sales import RecalculationLock

logger = logging.getLogger(__name__)


def default_owner() -> str:
    return settings.scheduler_job_owner or f"{socket.gethostname()}:{os.getpid()}"


def new_lock_owner() -> str:
    """Owner tag for a single acquisition: process identity plus a random suffix."""
    return f"{default_owner()}:{uuid.uuid4().hex[:8]}"


def recalculation_lock_key(store_id: int, business_date: date) -> str:
    return f"recalculate:{store_id}:{business_date.isoformat()}"


def acquire_lock(
    db: Session,
    lock_key: str,
    ttl_seconds: Optional[int] = None,
    owner: Optional[str] = None,
) -> bool:
    """Try to take ``lock_key``; returns False when it is already held."""
    ttl = ttl_seconds if ttl_seconds is not None else settings.recalc_lock_ttl_seconds
    now = datetime.now(timezone.utc)

    db.execute(
        delete(RecalculationLock).where(
            RecalculationLock.lock_key == lock_key,
            RecalculationLock.expires_at < now,
        )
    )
    db.add(RecalculationLock(
        lock_key=lock_key,
        locked_by=owner or default_owner(),
        locked_at=now,
        expires_at=now + timedelta(seconds=ttl),
    ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Lock '{lock_key}' is held by another process")
        return False
    return True


def release_lock(db: Session, lock_key: str, owner: Optional[str] = None) -> bool:
    """Delete ``lock_key`` if ``owner`` still holds it.

    A lock that expired and was taken over belongs to its new holder and is
    left in place. Returns whether a row was deleted.
    """
    db.rollback()
    result = db.execute(
        delete(RecalculationLock).where(
            RecalculationLock.lock_key == lock_key,
            RecalculationLock.locked_by == (owner or default_owner()),
        )
    )
    db.commit()
    if not result.rowcount:
        logger.warning(f"Lock '{lock_key}' was not held by this owner; nothing released")
        return False
    return True


@contextmanager
def recalculation_lock(
    db: Session,
    lock_key: str,
    ttl_seconds: Optional[int] = None,
    owner: Optional[str] = None,
) -> Iterator[bool]:
    """Yield whether the lock was acquired; release it on exit if it was."""
    owner = owner or new_lock_owner()
    acquired = acquire_lock(db, lock_key, ttl_seconds=ttl_seconds, owner=owner)
    try:
        yield acquired
    finally:
        if acquired:
            release_lock(db, lock_key, owner=owner)
