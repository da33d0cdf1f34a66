import asyncio
import asyncpg
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional
from ..config import Config
from ..errors import Conflict, Timeout

# SQLSTATEs that mean "try again later"
_CONFLICT_ERRORS = (
    asyncpg.exceptions.LockNotAvailableError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
)

class Database:
    """Connection pool and transaction boundary for the store"""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn
        self.pool: Optional[asyncpg.Pool] = None
        self.logger = logging.getLogger(__name__)

    async def connect(self):
        """Open the pool and apply pending migrations"""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn or Config.require_database_url(),
                min_size=Config.DB_POOL_MIN_SIZE,
                max_size=Config.DB_POOL_MAX_SIZE
            )

            await self._run_migrations()

            self.logger.info("Database connection established")
        except Exception as e:
            self.logger.error(f"Failed to connect to database: {e}")
            raise

    async def close(self):
        """Close the pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Database connection closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run the body inside one read-committed transaction.

        Every statement is bounded by the configured lock and statement
        timeouts. Lock contention surfaces as ``Conflict`` and an exhausted
        time budget as ``Timeout``; anything else propagates unchanged.
        The transaction rolls back on any exception, including task
        cancellation.
        """
        try:
            async with self.pool.acquire(timeout=Config.DB_ACQUIRE_TIMEOUT) as conn:
                async with conn.transaction(isolation="read_committed"):
                    await conn.execute(
                        f"SET LOCAL lock_timeout = {int(Config.DB_LOCK_TIMEOUT_MS)}"
                    )
                    await conn.execute(
                        f"SET LOCAL statement_timeout = {int(Config.DB_STATEMENT_TIMEOUT_MS)}"
                    )
                    await conn.execute(
                        "SET LOCAL idle_in_transaction_session_timeout = "
                        f"{int(Config.DB_STATEMENT_TIMEOUT_MS)}"
                    )
                    yield conn
        except _CONFLICT_ERRORS as e:
            self.logger.warning(f"Transaction aborted by lock conflict: {e}")
            raise Conflict(str(e)) from e
        except asyncpg.exceptions.QueryCanceledError as e:
            self.logger.warning(f"Transaction aborted by statement timeout: {e}")
            raise Timeout(str(e)) from e
        except asyncio.TimeoutError as e:
            self.logger.warning("Timed out waiting for a database connection")
            raise Timeout("timed out waiting for a database connection") from e

    async def _run_migrations(self):
        """Apply SQL migrations that have not run yet"""
        try:
            migrations_path = Path(__file__).parent / "migrations"

            async with self.pool.acquire() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS migrations (
                        id SERIAL PRIMARY KEY,
                        name VARCHAR(255) NOT NULL,
                        applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                for migration_file in sorted(migrations_path.glob("*.sql")):
                    migration_name = migration_file.name

                    is_applied = await conn.fetchval(
                        "SELECT COUNT(*) FROM migrations WHERE name = $1",
                        migration_name
                    )

                    if not is_applied:
                        async with conn.transaction():
                            await conn.execute(migration_file.read_text())
                            await conn.execute(
                                "INSERT INTO migrations (name) VALUES ($1)",
                                migration_name
                            )

                        self.logger.info(f"Migration {migration_name} applied")

        except Exception as e:
            self.logger.error(f"Failed to run migrations: {e}")
            raise
