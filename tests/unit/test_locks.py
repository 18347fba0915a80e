"""Unit tests for the rebuild trigger lock helpers."""

import pytest

from leaguerank.jobs.locks import advisory_lock_key, database_trigger_lock


class _Result:
    def __init__(self, value):
        self._value = value

    def scalar(self):
        return self._value


class _Connection:
    """Records the advisory lock statements a PostgreSQL connection would run."""

    def __init__(self, lock_free):
        self.lock_free = lock_free
        self.statements = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params):
        sql = str(statement)
        self.statements.append((sql, params["key"]))
        if "pg_try_advisory_lock" in sql:
            return _Result(self.lock_free)
        return _Result(True)


class _Dialect:
    name = "postgresql"


class _PostgresEngine:
    dialect = _Dialect()

    def __init__(self, lock_free=True):
        self.connection = _Connection(lock_free)

    def connect(self):
        return self.connection


def test_advisory_lock_key_is_stable_and_signed_64_bit():
    key = advisory_lock_key("leaguerank:full_rebuild")

    assert key == advisory_lock_key("leaguerank:full_rebuild")
    assert key != advisory_lock_key("leaguerank:other")
    assert -(2 ** 63) <= key < 2 ** 63


def test_trigger_lock_is_noop_without_postgres(test_engine):
    with database_trigger_lock(test_engine, "leaguerank:full_rebuild") as acquired:
        assert acquired is False


def test_trigger_lock_is_noop_without_engine():
    with database_trigger_lock(None, "leaguerank:full_rebuild") as acquired:
        assert acquired is False


def test_postgres_lock_is_released_after_use():
    engine = _PostgresEngine()
    key = advisory_lock_key("leaguerank:full_rebuild")

    with database_trigger_lock(engine, "leaguerank:full_rebuild") as acquired:
        assert acquired is True
        assert len(engine.connection.statements) == 1

    calls = engine.connection.statements
    assert "pg_try_advisory_lock" in calls[0][0]
    assert "pg_advisory_unlock" in calls[1][0]
    assert [k for _, k in calls] == [key, key]


def test_postgres_lock_is_released_when_body_raises():
    engine = _PostgresEngine()

    with pytest.raises(RuntimeError):
        with database_trigger_lock(engine, "leaguerank:full_rebuild"):
            raise RuntimeError("trigger failed")

    assert "pg_advisory_unlock" in engine.connection.statements[-1][0]


def test_postgres_lock_held_elsewhere_raises_timeout():
    engine = _PostgresEngine(lock_free=False)

    with pytest.raises(TimeoutError):
        with database_trigger_lock(engine, "leaguerank:full_rebuild"):
            pytest.fail("body must not run without the lock")

    # Never acquired, so nothing to unlock
    assert len(engine.connection.statements) == 1
