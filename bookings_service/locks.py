# bookings_service/locks.py
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

# First key of the two-int advisory lock, reserved for hoarding admissions
ADVISORY_LOCK_NAMESPACE = 48_151

_registry_lock = threading.Lock()
_local_locks: Dict[int, threading.Lock] = {}


def _local_lock(hoarding_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _local_locks.get(hoarding_id)
        if lock is None:
            lock = threading.Lock()
            _local_locks[hoarding_id] = lock
        return lock


@contextmanager
def hoarding_lock(db: Session, hoarding_id: int) -> Iterator[None]:
    """
    Serialize admissions for one hoarding.

    Holds a per-process lock for the hoarding and, on PostgreSQL, a
    transaction-scoped advisory lock so that workers in other processes
    wait too. The advisory lock is released when the session's transaction
    ends, so the caller must commit or roll back inside the block.
    """
    with _local_lock(hoarding_id):
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
                {"namespace": ADVISORY_LOCK_NAMESPACE, "key": hoarding_id},
            )
        yield
