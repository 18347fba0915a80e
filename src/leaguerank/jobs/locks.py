"""
Cross-process lock around the rebuild trigger.

The trigger checks for an in-flight job and creates a new one. Two API
processes doing that at the same moment could both see "nothing in flight",
so on PostgreSQL the check-and-create runs under a session advisory lock.
The lock is only ever tried, never waited for: a trigger that loses the race
is rejected like any other concurrent trigger.
"""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Engine


def advisory_lock_key(name: str) -> int:
    """Signed 64-bit advisory lock key for a lock name (stable across processes)."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


@contextmanager
def database_trigger_lock(engine: Engine | None, name: str) -> Generator[bool, None, None]:
    """
    Hold the trigger lock for the life of this context.

    Yields True while holding a PostgreSQL advisory lock. Other dialects
    (SQLite in tests and local runs) have a single writer process, so the
    in-process lock held by the caller is enough and this yields False.

    Raises:
        TimeoutError: if another process holds the lock.
    """
    if engine is None or engine.dialect.name != "postgresql":
        yield False
        return

    key = advisory_lock_key(name)
    with engine.connect() as connection:
        acquired = connection.execute(
            text("SELECT pg_try_advisory_lock(:key)"), {"key": key}
        ).scalar()
        if not acquired:
            raise TimeoutError(f"Rebuild trigger lock '{name}' is held by another process")
        try:
            yield True
        finally:
            connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
