"""
db.py – PostgreSQL implementation of the ``SensorStore`` contract.

Architecture
------------
Rather than holding a single connection per process, this module exposes a
``get_pool()`` singleton that manages a psycopg ``ConnectionPool``.  Every
store call borrows a connection for the duration of one unit of work and
returns it when the ``with pool.connection()`` block exits.  The context
manager commits on success and rolls back on error, so an event batch is
either fully inserted or not at all.

Error handling
--------------
There is no local retry.  Any psycopg failure (pool timeout, dropped
connection, server error) is translated into ``StoreUnavailable`` and left to
the caller; the Kafka consumer rewinds the delivery so the broker redelivers it.

Usage
-----
>>> from flockwatch.common.db import PostgresStore
>>> store = PostgresStore()
>>> store.insert_event_batch(events)
"""

import logging
from functools import wraps
from typing import Callable, Sequence, TypeVar
from uuid import UUID

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from flockwatch.common.config import settings
from flockwatch.common.errors import StoreUnavailable
from flockwatch.common.models import Alert, House, SensorEvent, ThresholdPolicy

logger = logging.getLogger(__name__)

# Connection pool singleton
# Lazily initialised on first call to get_pool() so unit tests that never touch
# the DB don't require a live PostgreSQL instance.
_pool: ConnectionPool | None = None


def _build_conninfo() -> str:
    """
    Construct a libpq connection-info string from settings.

    Returns
    -------
    str
        PostgreSQL DSN string, e.g.
        ``"host=localhost port=55432 dbname=flockwatch user=... password=..."``
    """
    return (
        f"host={settings.postgres_host} "
        f"port={settings.postgres_port} "
        f"dbname={settings.postgres_db} "
        f"user={settings.postgres_user} "
        f"password={settings.postgres_password}"
    )


def get_pool() -> ConnectionPool:
    """
    Return the module-level connection-pool singleton, creating it on first call.

    The pool is only published once it holds ``db_pool_min`` live connections;
    if that does not happen within ``db_pool_timeout_s`` the half-built pool is
    closed and ``StoreUnavailable`` is raised, so the next caller tries again.

    Returns
    -------
    ConnectionPool
        A ready-to-use psycopg v3 connection pool.
    """
    global _pool
    if _pool is None:
        logger.info(
            "Initialising PostgreSQL connection pool",
            extra={
                "min_size": settings.db_pool_min,
                "max_size": settings.db_pool_max,
                "host": settings.postgres_host,
                "port": settings.postgres_port,
                "db": settings.postgres_db,
            },
        )
        pool = ConnectionPool(
            conninfo=_build_conninfo(),
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
            timeout=settings.db_pool_timeout_s,
            reconnect_failed=lambda pool: logger.error("Pool reconnect failed!"),
            open=True,
        )
        try:
            pool.wait(timeout=settings.db_pool_timeout_s)
        except PoolTimeout as exc:
            pool.close()
            raise StoreUnavailable(
                f"could not connect to PostgreSQL at "
                f"{settings.postgres_host}:{settings.postgres_port}"
            ) from exc
        _pool = pool
    return _pool


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.close()
        _pool = None


# Error translation decorator
# =======================================================================

_F = TypeVar("_F", bound=Callable)


def _store_call(fn: _F) -> _F:
    """
    Decorator: re-raise any ``psycopg.Error`` from ``fn`` as ``StoreUnavailable``.

    ``PoolTimeout`` (no connection available) is a ``psycopg.Error`` too, so
    an exhausted or unreachable pool surfaces the same way as a failed query.
    """

    @wraps(fn)
    def _wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except psycopg.Error as exc:
            logger.error("DB operation %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable(f"{fn.__name__} failed: {exc}") from exc

    return _wrapper  # type: ignore[return-value]


# SQL
# =======================================================================

_HOUSE_COLUMNS = """
    id, device_id, COALESCE(name, '') AS name, bird_count,
    bird_age_days, flock_id, status
"""

# Resolves the device-facing key to a house inside the INSERT itself, so an
# event for an unknown house inserts zero rows instead of failing the batch.
# A device-id match wins over a UUID match.
_INSERT_EVENT_SQL = """
    INSERT INTO sensor_events (
        house_id, house_key, event_type, event_time, value, string_value,
        bool_value, device_id, quality, payload
    )
    SELECT h.id, %(house_key)s, %(event_type)s, %(event_time)s, %(value)s,
           %(string_value)s, %(bool_value)s, %(device_id)s, %(quality)s,
           %(payload)s::jsonb
    FROM houses h
    WHERE h.device_id = %(house_key)s OR h.id::text = %(house_key)s
    ORDER BY (h.device_id IS NOT DISTINCT FROM %(house_key)s) DESC
    LIMIT 1;
"""


# Write helpers
# =======================================================================

def insert_events(conn: psycopg.Connection, events: Sequence[SensorEvent]) -> int:
    """
    Insert sensor events on ``conn``, skipping events for unknown houses.

    Parameters
    ----------
    conn:   Active psycopg connection (the caller owns the transaction).
    events: Validated events from one ingress message.

    Returns
    -------
    int
        Number of rows inserted.  Events whose ``house_id`` matches no house
        contribute zero.
    """
    inserted = 0
    with conn.cursor() as cur:
        for event in events:
            cur.execute(
                _INSERT_EVENT_SQL,
                {
                    "house_key": event.house_id,
                    "event_type": event.event_type,
                    "event_time": event.timestamp,
                    "value": event.value,
                    "string_value": event.string_value,
                    "bool_value": event.bool_value,
                    "device_id": event.device_id,
                    "quality": event.quality,
                    # Stored verbatim for auditing
                    "payload": event.model_dump_json(by_alias=True),
                },
            )
            inserted += max(cur.rowcount, 0)
    return inserted


def update_house_state(
    conn: psycopg.Connection,
    house_key: str,
    bird_count: int | None,
    bird_age_days: int | None,
    flock_id: str | None,
) -> bool:
    """
    Overwrite a house's live flock figures (last write wins).

    Figures missing from the message (``None``) leave the stored value alone.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE houses
            SET bird_count    = COALESCE(%(bird_count)s, bird_count),
                bird_age_days = COALESCE(%(bird_age_days)s, bird_age_days),
                flock_id      = COALESCE(%(flock_id)s, flock_id),
                updated_at    = NOW()
            WHERE device_id = %(house_key)s OR id::text = %(house_key)s;
            """,
            {
                "house_key": house_key,
                "bird_count": bird_count,
                "bird_age_days": bird_age_days,
                "flock_id": flock_id,
            },
        )
        return cur.rowcount > 0


def insert_alert(conn: psycopg.Connection, alert: Alert) -> None:
    """
    Persist a threshold alert to the ``alerts`` table as a new active row.

    No lookup of an existing open alert for the same (house, metric) happens
    here: every violating reading is its own row.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO alerts (
                house_id, type, severity, metric, value, threshold,
                message, is_active, event_time
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s);
            """,
            (
                alert.house_id,
                alert.type,
                alert.severity,
                alert.metric,
                alert.value,
                alert.threshold,
                alert.message,
                alert.is_active,
                alert.event_time,
            ),
        )

    logger.info(
        "Inserted alert",
        extra={
            "house_id": str(alert.house_id),
            "metric": alert.metric,
            "severity": alert.severity,
            "value": alert.value,
        },
    )


# Read helpers
# =======================================================================

def fetch_house(conn: psycopg.Connection, column: str, key: str | UUID) -> House | None:
    if column not in ("device_id", "id"):
        raise ValueError(f"cannot look houses up by {column!r}")
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            f"SELECT {_HOUSE_COLUMNS} FROM houses WHERE {column} = %s LIMIT 1;",
            (key,),
        )
        row = cur.fetchone()
    return None if row is None else House.model_validate(row)


def fetch_threshold_policy(
    conn: psycopg.Connection, event_type: str, bird_age_days: int
) -> ThresholdPolicy | None:
    """
    Return the policy whose age band contains ``bird_age_days``.

    Bands are assumed not to overlap; if they do, the band starting latest wins.
    """
    with conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            """
            SELECT event_type, age_min_days, age_max_days,
                   warning_min, warning_max, critical_min, critical_max,
                   display_name, COALESCE(unit, '') AS unit
            FROM threshold_policies
            WHERE event_type = %(event_type)s
              AND age_min_days <= %(age)s
              AND (age_max_days IS NULL OR age_max_days >= %(age)s)
            ORDER BY age_min_days DESC
            LIMIT 1;
            """,
            {"event_type": event_type, "age": bird_age_days},
        )
        row = cur.fetchone()
    return None if row is None else ThresholdPolicy.model_validate(row)


# Store facade
# =======================================================================

class PostgresStore:
    """
    ``SensorStore`` backed by the shared psycopg connection pool.

    Each method is one unit of work on one borrowed connection.
    """

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        self._pool = pool if pool is not None else get_pool()

    @_store_call
    def insert_event_batch(self, events: Sequence[SensorEvent]) -> int:
        with self._pool.connection() as conn:
            inserted = insert_events(conn, events)
            # conn.commit() is called automatically by the context manager
        logger.debug(
            "Inserted sensor events",
            extra={"received": len(events), "inserted": inserted},
        )
        return inserted

    @_store_call
    def find_house_by_device_id(self, device_id: str) -> House | None:
        with self._pool.connection() as conn:
            return fetch_house(conn, "device_id", device_id)

    @_store_call
    def find_house_by_id(self, house_id: UUID) -> House | None:
        with self._pool.connection() as conn:
            return fetch_house(conn, "id", house_id)

    @_store_call
    def find_threshold_policy(
        self, event_type: str, bird_age_days: int
    ) -> ThresholdPolicy | None:
        with self._pool.connection() as conn:
            return fetch_threshold_policy(conn, event_type, bird_age_days)

    @_store_call
    def update_house_live_state(
        self,
        house_key: str,
        bird_count: int | None,
        bird_age_days: int | None,
        flock_id: str | None,
    ) -> bool:
        with self._pool.connection() as conn:
            return update_house_state(conn, house_key, bird_count, bird_age_days, flock_id)

    @_store_call
    def insert_alert(self, alert: Alert) -> None:
        with self._pool.connection() as conn:
            insert_alert(conn, alert)

    def close(self) -> None:
        if self._pool is _pool:
            close_pool()
        else:
            self._pool.close()
