"""
Per-resource write serialization.

Conflict checks are only meaningful if nobody else writes to the same
member between the check and the commit. ``resource_lock`` is held across
check, write and commit:

- PostgreSQL: ``pg_advisory_xact_lock`` on a stable 64-bit key, released
  when the surrounding transaction commits or rolls back.
- Every dialect: one of a fixed set of process-local locks, picked by
  hashing the key, which also covers SQLite and single-process deployments.
  Locks are not re-entrant: never nest two resource_lock blocks.
"""

import hashlib
import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Fixed pool of process-local locks; members sharing a stripe just queue together
LOCK_STRIPES = 256
_local_locks = tuple(Lock() for _ in range(LOCK_STRIPES))


def lock_name(family: str, tenant_id: str, resource_id: int) -> str:
    return f"{family}:{tenant_id}:{resource_id}"


def advisory_key(name: str) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock"""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def lock_stripe(name: str) -> int:
    return advisory_key(name) % LOCK_STRIPES


def _local_lock(name: str) -> Lock:
    return _local_locks[lock_stripe(name)]


@contextmanager
def resource_lock(db: Session, tenant_id: str, resource_id: int, family: str) -> Iterator[None]:
    """Serialize writers for one member's intervals of one family.

    The caller commits inside the ``with`` block; an exception escaping
    the block rolls the session back.
    """
    name = lock_name(family, tenant_id, resource_id)
    local = _local_lock(name)
    local.acquire()
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(select(func.pg_advisory_xact_lock(advisory_key(name))))
            logger.debug(f"🔒 Advisory lock acquired: {name}")
        yield
    except Exception:
        # Ends the transaction, which also releases the advisory lock
        db.rollback()
        raise
    finally:
        local.release()
