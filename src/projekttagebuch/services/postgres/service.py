"""
PostgresService - connection pool and transaction management.

Provides:
- Connection pooling (asyncpg)
- Store reachability check (ping)
- Staged transactions: a connection with an open transaction that the caller
  commits only once the room service agreed

Staged transaction lifecycle:
    tx = await db.begin()          # connection acquired, BEGIN sent
    async with tx:
        await conn work via tx.connection
        await tx.commit()          # COMMIT, connection released
    # leaving the block without commit() rolls back and releases

A staged transaction belongs to the single action that opened it. It is
never shared between concurrent actions or handed to callers. If the task is
cancelled while a transaction is open, the exit handler rolls back; if that
fails the pool drops the connection, which the server treats as a rollback.
"""

from typing import Any, Optional

import asyncpg
from loguru import logger

from .errors import (
    DRIVER_ERRORS,
    CommitFailed,
    QueryFailed,
    StoreUnavailable,
)


class StagedTransaction:
    """An open, uncommitted transaction on one pooled connection."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        connection: asyncpg.Connection,
        transaction: Any,
    ):
        self._pool = pool
        self.connection = connection
        self._transaction = transaction
        self._closed = False
        self.committed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def commit(self) -> None:
        """Commit and release the connection."""
        if self._closed:
            raise RuntimeError("Transaction already finished")
        try:
            await self._transaction.commit()
            self.committed = True
        except DRIVER_ERRORS as e:
            raise CommitFailed(f"Unable to commit transaction: {e}") from e
        finally:
            await self._release()

    async def rollback(self) -> None:
        """Discard the staged writes and release the connection."""
        if self._closed:
            return
        try:
            await self._transaction.rollback()
        except DRIVER_ERRORS as e:
            # The pool terminates the connection on release, which discards the transaction
            logger.warning(f"Rollback failed, connection will be dropped: {e}")
        finally:
            await self._release()

    async def _release(self) -> None:
        self._closed = True
        await self._pool.release(self.connection)

    async def __aenter__(self) -> "StagedTransaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            await self.rollback()


class PostgresService:
    """
    PostgreSQL database service.

    Owns the asyncpg pool. Each action acquires its own connection through
    begin(); plain reads go through the pool.
    """

    def __init__(
        self,
        connection_string: str,
        pool_min_size: int = 1,
        pool_max_size: int = 10,
        pool_timeout: float = 10.0,
        statement_timeout: int = 30000,
    ):
        """
        Initialize PostgreSQL service.

        Args:
            connection_string: PostgreSQL connection string
            pool_min_size: Minimum pool size
            pool_max_size: Maximum pool size
            pool_timeout: Seconds to wait for a connection
            statement_timeout: Server side statement timeout in milliseconds
        """
        self.connection_string = connection_string
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self.pool_timeout = pool_timeout
        self.statement_timeout = statement_timeout
        self.pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_settings(cls) -> "PostgresService":
        from ...settings import settings

        return cls(
            connection_string=settings.postgres.connection_string,
            pool_min_size=settings.postgres.pool_min_size,
            pool_max_size=settings.postgres.pool_max_size,
            pool_timeout=settings.postgres.pool_timeout,
            statement_timeout=settings.postgres.statement_timeout,
        )

    async def connect(self) -> None:
        """Establish database connection pool."""
        logger.info(
            f"Connecting to PostgreSQL with pool size {self.pool_min_size}-{self.pool_max_size}"
        )
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                timeout=self.pool_timeout,
                server_settings={"statement_timeout": str(self.statement_timeout)},
            )
        except DRIVER_ERRORS as e:
            logger.error(f"Could not connect to PostgreSQL: {e}")
            raise StoreUnavailable(f"Unable to create connection pool: {e}") from e
        logger.info("PostgreSQL connection pool established")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            logger.info("Closing PostgreSQL connection pool")
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    def require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise StoreUnavailable("PostgreSQL pool not connected. Call connect() first.")
        return self.pool

    async def ping(self) -> None:
        """Check that a connection can be acquired and used. Writes nothing."""
        pool = self.require_pool()
        try:
            async with pool.acquire(timeout=self.pool_timeout) as conn:
                await conn.fetchval("SELECT 1")
        except DRIVER_ERRORS as e:
            raise StoreUnavailable(f"Unable to reach the database: {e}") from e

    async def begin(self) -> StagedTransaction:
        """Acquire a connection and start a transaction on it."""
        pool = self.require_pool()
        try:
            conn = await pool.acquire(timeout=self.pool_timeout)
        except DRIVER_ERRORS as e:
            raise StoreUnavailable(f"Unable to acquire a connection: {e}") from e

        transaction = conn.transaction()
        try:
            await transaction.start()
        except DRIVER_ERRORS as e:
            await pool.release(conn)
            raise StoreUnavailable(f"Unable to start transaction: {e}") from e
        return StagedTransaction(pool, conn, transaction)

    async def execute(self, query: str, *params: Any) -> str:
        """Execute a statement on a pooled connection; returns the status tag."""
        pool = self.require_pool()
        try:
            return await pool.execute(query, *params)
        except DRIVER_ERRORS as e:
            raise QueryFailed(f"Unable to execute statement: {e}") from e
