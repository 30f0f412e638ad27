"""
Database connection and query module.

Provides the notification store: customer webhook configuration and the
notification record lifecycle, with support for both PostgreSQL and
SQLite backends.
"""

import asyncio
import logging
import os
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import asyncpg
import aiosqlite

from ..config import config
from ..errors import DuplicateIdempotencyKey, NotFound, StorageError
from ..models.customer import Customer
from ..models.payment import NotificationRecord, PaymentDetails

logger = logging.getLogger(__name__)

# Driver errors that are reported to callers as StorageError
DB_ERRORS = (
    asyncpg.PostgresError, asyncpg.InterfaceError, aiosqlite.Error, OSError, OverflowError
)


class Database:
    """
    Async notification store.

    Supports PostgreSQL (production) and SQLite (development).
    Every write runs as a single-statement transaction: begin, one
    statement, commit, with a rollback when the statement fails.
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. Uses config if not provided.
        """
        self.database_url = database_url or config.database.url
        self._pool = None
        self._sqlite_conn = None
        self._is_postgres = self.database_url.startswith(('postgresql', 'postgres://'))
        # One SQLite connection is shared, so its transactions must not interleave
        self._sqlite_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row
            await self._sqlite_conn.execute("PRAGMA foreign_keys = ON")

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        logger.info("Database connection closed")

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a read-only query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results

        Raises:
            StorageError: If the query fails
        """
        try:
            if self._is_postgres:
                async with self._pool.acquire() as conn:
                    row = await conn.fetchrow(query, *args)
                    return dict(row) if row else None
            else:
                # Convert $1, $2 style params to ? for SQLite
                sqlite_query = self._convert_params(query)
                async with self._sqlite_conn.execute(sqlite_query, args) as cursor:
                    row = await cursor.fetchone()
                    if row:
                        columns = [d[0] for d in cursor.description]
                        return dict(zip(columns, row))
                    return None
        except DB_ERRORS as e:
            raise StorageError(f"query failed: {e}") from e

    async def _execute_in_transaction(self, query: str, *args) -> int:
        """
        Run one statement inside its own transaction.

        Returns:
            Number of rows affected

        Raises:
            StorageError: The statement failed and was rolled back, or the
                rollback itself failed (that failure is raised instead)
        """
        if self._is_postgres:
            try:
                async with self._pool.acquire() as conn:
                    tx = conn.transaction()
                    await tx.start()
                    try:
                        status = await conn.execute(query, *args)
                    except DB_ERRORS as e:
                        await self._rollback(tx.rollback)
                        raise StorageError(str(e)) from e
                    await tx.commit()
            except DB_ERRORS as e:
                raise StorageError(f"transaction failed: {e}") from e
            return _affected_rows(status)

        async with self._sqlite_lock:
            try:
                cursor = await self._sqlite_conn.execute(self._convert_params(query), args)
            except DB_ERRORS as e:
                await self._rollback(self._sqlite_conn.rollback)
                raise StorageError(str(e)) from e
            try:
                await self._sqlite_conn.commit()
            except DB_ERRORS as e:
                raise StorageError(f"commit failed: {e}") from e
            return cursor.rowcount

    async def _rollback(self, rollback: Callable[[], Awaitable[None]]) -> None:
        """Roll back a failed transaction, surfacing a failed rollback."""
        try:
            await rollback()
        except DB_ERRORS as e:
            logger.error(f"Rollback failed: {e}")
            raise StorageError(f"rollback failed: {e}") from e

    def _convert_params(self, query: str) -> str:
        """Convert PostgreSQL $1, $2 style params to SQLite ? style."""
        return re.sub(r'\$\d+', '?', query)

    async def init_schema(self) -> None:
        """Initialize database schema from schema.sql file."""
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            schema = f.read()

        # Split by semicolons and execute each statement
        statements = [s.strip() for s in schema.split(';') if s.strip()]

        for statement in statements:
            if self._is_postgres:
                async with self._pool.acquire() as conn:
                    await conn.execute(statement)
            else:
                statement = statement.replace('SERIAL', 'INTEGER')
                statement = statement.replace('JSONB', 'TEXT')
                await self._sqlite_conn.execute(statement)

        if not self._is_postgres:
            await self._sqlite_conn.commit()

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Customer Operations
    # -------------------------------------------------------------------------

    async def get_customer(self, customer_id: int) -> Customer:
        """Get customer by ID."""
        row = await self.fetch_one(
            "SELECT * FROM customers WHERE id = $1",
            customer_id
        )
        if row is None:
            raise NotFound(f"Customer {customer_id} not found")
        return Customer.from_dict(row)

    async def create_customers(self, names: List[str]) -> List[int]:
        """
        Create customers in a single transaction.

        Returns:
            IDs of the new customers, in order
        """
        ids = []
        if self._is_postgres:
            try:
                async with self._pool.acquire() as conn:
                    async with conn.transaction():
                        for name in names:
                            ids.append(await conn.fetchval(
                                "INSERT INTO customers (name) VALUES ($1) RETURNING id",
                                name
                            ))
            except DB_ERRORS as e:
                raise StorageError(f"fail to create customers: {e}") from e
            return ids

        async with self._sqlite_lock:
            try:
                for name in names:
                    cursor = await self._sqlite_conn.execute(
                        "INSERT INTO customers (name) VALUES (?)", (name,)
                    )
                    ids.append(cursor.lastrowid)
            except DB_ERRORS as e:
                await self._rollback(self._sqlite_conn.rollback)
                raise StorageError(f"fail to create customers: {e}") from e
            try:
                await self._sqlite_conn.commit()
            except DB_ERRORS as e:
                raise StorageError(f"commit failed: {e}") from e
        return ids

    async def create_customer(self, name: str) -> int:
        """Create one customer and return its ID."""
        ids = await self.create_customers([name])
        return ids[0]

    async def configure_webhook(self, customer_id: int, token: str, url: str) -> None:
        """
        Set a customer's webhook token and URL (last write wins).

        Raises:
            NotFound: If no customer has this ID
            StorageError: If the update or its rollback fails
        """
        affected = await self._execute_in_transaction(
            """
            UPDATE customers
            SET token = $1, notification_url = $2, updated_at = CURRENT_TIMESTAMP
            WHERE id = $3
            """,
            token, url, customer_id
        )
        if affected == 0:
            raise NotFound(f"Customer {customer_id} not found")

        logger.info(f"Configured webhook for customer {customer_id}")

    async def lookup_webhook(self, customer_id: int) -> Tuple[str, str]:
        """
        Get a customer's webhook URL and token.

        Returns:
            (url, token); both are empty strings if never configured

        Raises:
            NotFound: If no customer has this ID
        """
        row = await self.fetch_one(
            "SELECT notification_url, token FROM customers WHERE id = $1",
            customer_id
        )
        if row is None:
            raise NotFound(f"Customer {customer_id} not found")
        return row['notification_url'] or '', row['token'] or ''

    # -------------------------------------------------------------------------
    # Notification Operations
    # -------------------------------------------------------------------------

    async def create_notification(
        self,
        idempotency_key: str,
        customer_id: int,
        details: PaymentDetails
    ) -> None:
        """
        Record a notification as not yet delivered.

        Raises:
            DuplicateIdempotencyKey: If the key was already used
            StorageError: If the insert or its rollback fails
        """
        try:
            await self._execute_in_transaction(
                """
                INSERT INTO notifications (customer_id, idempotency_key, details)
                VALUES ($1, $2, $3)
                """,
                customer_id, idempotency_key, details.to_json()
            )
        except StorageError as e:
            if _is_unique_violation(e.__cause__):
                raise DuplicateIdempotencyKey(idempotency_key) from e.__cause__
            raise

        logger.debug(f"Saved notification {idempotency_key} for customer {customer_id}")

    async def get_notification(self, idempotency_key: str) -> NotificationRecord:
        """Get the full notification record for an idempotency key."""
        row = await self.fetch_one(
            """
            SELECT idempotency_key, customer_id, details, delivered, created_at, updated_at
            FROM notifications WHERE idempotency_key = $1
            """,
            idempotency_key
        )
        if row is None:
            raise NotFound(f"Notification {idempotency_key} not found")
        return NotificationRecord.from_dict(row)

    async def lookup_notification(self, idempotency_key: str) -> PaymentDetails:
        """Get the stored payment details for an idempotency key."""
        record = await self.get_notification(idempotency_key)
        return record.details

    async def mark_delivered(self, idempotency_key: str, delivered: bool = True) -> None:
        """
        Flag a notification as delivered.

        The flag only moves from false to true, so repeated calls are harmless.
        """
        affected = await self._execute_in_transaction(
            """
            UPDATE notifications
            SET delivered = (delivered OR $1), updated_at = CURRENT_TIMESTAMP
            WHERE idempotency_key = $2
            """,
            delivered, idempotency_key
        )
        if affected == 0:
            logger.warning(f"No notification {idempotency_key} to mark delivered")


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg status such as 'UPDATE 1'."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


def _is_unique_violation(error: Optional[BaseException]) -> bool:
    if isinstance(error, asyncpg.UniqueViolationError):
        return True
    return isinstance(error, aiosqlite.IntegrityError) and 'UNIQUE' in str(error)
