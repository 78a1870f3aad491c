"""Async connection pool, the Database service object, and health checks."""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, TypeVar

import asyncpg
from fastapi import Request
from sqlalchemy import event, func, inspect, select, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from .services.retry import RetryPolicy, with_retry
from .services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")

PoolListener = Callable[[str, "BaseException | None"], None]


class PoolExhausted(Exception):
    """No pooled connection became free within the connect timeout."""


class ConnectionUnavailable(Exception):
    """The database server refused or dropped a new connection."""


# Raised unwrapped by the driver while a new connection is being opened.
_CONNECT_ERRORS = (
    OSError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.TooManyConnectionsError,
)


class ConnectionPool:
    """Bounded pool of async connections with lifecycle signals.

    Signals are ``connect`` (new DBAPI connection), ``error`` (a connection
    was invalidated or a statement failed) and ``remove`` (a connection left
    the pool for good). Listeners run inline and must be cheap; a listener
    that raises is logged and skipped.
    """

    EVENTS = ("connect", "error", "remove")

    def __init__(self, engine: AsyncEngine, *, connect_timeout: float):
        self.engine = engine
        self.connect_timeout = connect_timeout
        self._listeners: dict[str, list[PoolListener]] = {name: [] for name in self.EVENTS}
        self._install_event_hooks()

    @classmethod
    def create(
        cls,
        url: str,
        *,
        min_size: int = 2,
        max_size: int = 30,
        idle_timeout: int = 30,
        connect_timeout: float = 10.0,
        echo: bool = False,
    ) -> "ConnectionPool":
        if min_size < 1:
            raise ValueError("min_size must be at least 1")
        if max_size < min_size:
            raise ValueError("max_size must not be smaller than min_size")

        engine = create_async_engine(
            url,
            pool_size=min_size,
            max_overflow=max_size - min_size,
            pool_timeout=connect_timeout,
            pool_recycle=idle_timeout,
            pool_pre_ping=True,
            echo=echo,
        )
        if engine.dialect.name == "sqlite":
            _configure_sqlite(engine)
        logger.info("Created connection pool (min=%d, max=%d)", min_size, max_size)
        return cls(engine, connect_timeout=connect_timeout)

    @classmethod
    def from_settings(cls, settings) -> "ConnectionPool":
        return cls.create(
            settings.DATABASE_URL,
            min_size=settings.DATABASE_POOL_MIN,
            max_size=settings.DATABASE_POOL_MAX,
            idle_timeout=settings.DATABASE_IDLE_TIMEOUT_SECONDS,
            connect_timeout=settings.DATABASE_CONNECT_TIMEOUT_SECONDS,
            echo=settings.DATABASE_ECHO,
        )

    def on(self, event_name: str, listener: PoolListener) -> None:
        if event_name not in self._listeners:
            raise ValueError(f"Unknown pool event: {event_name}")
        self._listeners[event_name].append(listener)

    async def acquire(self) -> AsyncConnection:
        try:
            return await self.engine.connect()
        except sa_exc.TimeoutError as exc:
            raise PoolExhausted(
                f"No database connection available within {self.connect_timeout}s"
            ) from exc
        except _CONNECT_ERRORS as exc:
            logger.error("Could not connect to database: %s", exc.__class__.__name__)
            raise ConnectionUnavailable(f"Database connection failed: {exc.__class__.__name__}") from exc

    async def release(self, conn: AsyncConnection) -> None:
        """Return a connection to the pool. Never raises."""
        try:
            await conn.close()
        except Exception:
            logger.exception("Error releasing database connection")

    def stats(self) -> dict[str, int]:
        pool = self.engine.pool
        return {
            "size": _pool_counter(pool, "size"),
            "checked_out": _pool_counter(pool, "checkedout"),
            "idle": _pool_counter(pool, "checkedin"),
            "overflow": max(_pool_counter(pool, "overflow"), 0),
        }

    async def dispose(self) -> None:
        logger.info("Closing connection pool")
        await self.engine.dispose()

    def _emit(self, event_name: str, error: BaseException | None = None) -> None:
        for listener in list(self._listeners[event_name]):
            try:
                listener(event_name, error)
            except Exception:
                logger.exception("Pool %s listener failed", event_name)

    def _install_event_hooks(self) -> None:
        sync_engine = self.engine.sync_engine

        def _on_connect(dbapi_connection, connection_record):
            logger.info("New database connection established")
            self._emit("connect")

        def _on_close(dbapi_connection, connection_record):
            logger.info("Database connection removed from pool")
            self._emit("remove")

        def _on_close_detached(dbapi_connection):
            logger.info("Detached database connection closed")
            self._emit("remove")

        def _on_invalidate(dbapi_connection, connection_record, exception):
            logger.error("Database connection invalidated: %s", exception)
            self._emit("error", exception)

        def _on_handle_error(context):
            logger.error("Database error: %s", context.original_exception.__class__.__name__)
            self._emit("error", context.original_exception)

        event.listen(sync_engine, "connect", _on_connect)
        event.listen(sync_engine, "close", _on_close)
        event.listen(sync_engine, "close_detached", _on_close_detached)
        event.listen(sync_engine, "invalidate", _on_invalidate)
        event.listen(sync_engine, "handle_error", _on_handle_error)


def is_unique_violation(exc: sa_exc.IntegrityError) -> bool:
    """True for duplicate-key errors (asyncpg sqlstate 23505, SQLite UNIQUE)."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig)


def _pool_counter(pool, name: str) -> int:
    counter = getattr(pool, name, None)
    if counter is None:
        return 0
    return int(counter())


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Emit BEGIN ourselves so writers take the lock up front.

    pysqlite's implicit BEGIN lets two writers both read, then deadlock on
    upgrade; BEGIN IMMEDIATE makes the second one wait instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Explicitly constructed data-access service shared by all use cases.

    Reads run on a pooled connection and are retried freely. Writes run inside
    the transaction coordinator, and only the whole transaction is retried.
    """

    def __init__(self, pool: ConnectionPool, retry_policy: RetryPolicy | None = None):
        self.pool = pool
        self.retry_policy = retry_policy or RetryPolicy()
        self._health_cache = None
        self._health_cache_expiry = 0.0

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(ConnectionPool.from_settings(settings), RetryPolicy.from_settings(settings))

    async def read(self, label: str, work: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        async def _attempt() -> T:
            conn = await self.pool.acquire()
            try:
                return await work(conn)
            finally:
                await self.pool.release(conn)

        return await with_retry(_attempt, policy=self.retry_policy, label=label)

    async def write(self, label: str, work: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        return await with_retry(
            lambda: run_in_transaction(self.pool, work, label=label),
            policy=self.retry_policy,
            label=label,
        )

    async def create_schema(self) -> None:
        from . import models  # noqa: F401  (registers tables on Base.metadata)

        async def _create(conn: AsyncConnection) -> None:
            await conn.run_sync(Base.metadata.create_all)

        await self.write("Schema creation", _create)
        logger.info("Database schema created")

    async def dispose(self) -> None:
        await self.pool.dispose()


def get_db(request: Request) -> Database:
    """FastAPI dependency: the Database owned by the application lifespan."""
    return request.app.state.db


async def check_database_health(db: Database, *, use_cache: bool = True, settings=None):
    """Connectivity, schema and latency check with a short-lived cache."""
    from . import models
    from .config import settings as default_settings
    from .schemas import DatabaseHealth

    settings = settings or default_settings
    now = time.monotonic()
    if use_cache and db._health_cache is not None and now < db._health_cache_expiry:
        return db._health_cache

    errors: list[str] = []
    status = "healthy"
    started = time.perf_counter()
    conn = None
    try:
        conn = await db.pool.acquire()
        await conn.execute(text("SELECT 1"))
        response_ms = (time.perf_counter() - started) * 1000

        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = sorted(set(Base.metadata.tables) - existing)
        if missing:
            errors.append(f"Missing tables: {', '.join(missing)}")
            status = "degraded"
        else:
            user_count = (await conn.execute(select(func.count()).select_from(models.User.__table__))).scalar_one()
            if user_count == 0:
                errors.append("No users found in database")
                status = "degraded"

        if response_ms > settings.HEALTH_SLOW_RESPONSE_MS:
            errors.append(f"Slow response time: {response_ms:.0f}ms")
            status = "degraded"
        ttl = settings.HEALTH_CACHE_SECONDS
    except Exception as exc:
        logger.exception("Database health check failed")
        response_ms = -1.0
        status = "unhealthy"
        errors.append(exc.__class__.__name__)
        ttl = settings.HEALTH_ERROR_CACHE_SECONDS
    finally:
        if conn is not None:
            await db.pool.release(conn)

    health = DatabaseHealth(
        status=status,
        response_time_ms=response_ms,
        pool=db.pool.stats(),
        errors=errors or None,
    )
    db._health_cache = health
    db._health_cache_expiry = now + ttl
    return health
