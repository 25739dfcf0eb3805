"""Single scoped Postgres connection for one bootstrap run. No secrets in logs."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator

import asyncpg

from sync_schema.config import mask_url
from sync_schema.errors import DatabaseConnectionError
from sync_schema.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ConnectResult:
    """Outcome of the connecting phase: a live connection or the reason there is none."""

    conn: asyncpg.Connection | None = None
    error: DatabaseConnectionError | None = None

    @property
    def ok(self) -> bool:
        return self.conn is not None


async def connect(url: str, timeout: float = 10.0) -> ConnectResult:
    """Open one connection. Failures are returned, not raised, and never retried."""
    safe_url = mask_url(url)
    try:
        conn = await asyncpg.connect(url, timeout=timeout)
    except Exception as e:
        # asyncpg surfaces OSError, TimeoutError, PostgresError or InterfaceError here
        logger.warning("db_connect_failed", url=safe_url, error=str(e))
        return ConnectResult(
            error=DatabaseConnectionError(f"Failed to connect to {safe_url}: {e}")
        )
    logger.info("db_connected", url=safe_url)
    return ConnectResult(conn=conn)


async def close(conn: asyncpg.Connection) -> None:
    """Close gracefully; fall back to terminate so the socket is always released."""
    try:
        await conn.close()
    except Exception as e:
        logger.warning("db_close_failed", error=str(e))
        conn.terminate()
        return
    logger.info("db_connection_closed")


@asynccontextmanager
async def scoped(conn: asyncpg.Connection) -> AsyncGenerator[asyncpg.Connection, None]:
    """Own conn for the duration of the block and release it on every exit path."""
    try:
        yield conn
    finally:
        await close(conn)
