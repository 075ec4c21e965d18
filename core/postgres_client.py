"""
PostgreSQL Client Wrapper

Centralized asyncpg pool wrapper. Provides service discovery integration and
a consistent database access pattern for service repositories.

Usage:
    from core.postgres_client import get_postgres_client

    # Get client instance
    db = await get_postgres_client("fulfilment_service")

    # Execute queries
    async with db:
        rows = await db.query("SELECT * FROM fulfilment.orders WHERE id = $1", [order_id])
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

logger = logging.getLogger(__name__)


def _affected_rows(status: str) -> int:
    """Parse asyncpg command status ('UPDATE 1', 'INSERT 0 1') into a row count"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper with service discovery integration.

    Wraps an asyncpg pool and provides:
    - Service discovery for host/port configuration
    - Lazy pool creation on first use
    - Rows returned as plain dicts
    """

    def __init__(
        self,
        service_name: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
    ):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            host: PostgreSQL host (defaults to env/service discovery)
            port: PostgreSQL port (defaults to 5432)
            database: Database name (defaults to 'postgres')
            username: Database username
            password: Database password
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        # Use ConfigManager for service discovery
        config = ConfigManager(service_name)
        infra = config.settings.infra
        discovered_host, discovered_port = config.discover_service(
            service_name="postgres_service",
            default_host=infra.postgres_host,
            default_port=infra.postgres_port,
            env_host_key="POSTGRES_HOST",
            env_port_key="POSTGRES_PORT",
        )

        # Apply overrides
        self.host = host or discovered_host
        self.port = port or discovered_port
        self.database = database or infra.postgres_db
        self.username = username or infra.postgres_user
        self.password = password or infra.postgres_password
        self.min_size = min_size or infra.postgres_min_pool
        self.max_size = max_size or infra.postgres_max_pool

        self._pool: Optional[asyncpg.Pool] = None

        logger.info(f"PostgreSQL client initialized for {service_name}: {self.host}:{self.port}/{self.database}")

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool if it does not exist yet"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                min_size=self.min_size,
                max_size=self.max_size,
            )
        return self._pool

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        """Get underlying asyncpg pool"""
        return self._pool

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Pool is shared across requests; closed explicitly on shutdown"""
        return None

    async def health_check(self) -> Optional[Dict]:
        """Check database health"""
        try:
            pool = await self.connect()
            async with pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
            return {"healthy": True, "version": version}
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return None

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(sql, *(params or []))
        return dict(row) if row else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """Execute SQL statement, returning the number of affected rows"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            status = await conn.execute(sql, *(params or []))
        return _affected_rows(status)

    async def execute_many(self, sql: str, params_list: List[List[Any]]) -> bool:
        """Execute SQL statement with multiple parameter sets"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            await conn.executemany(sql, params_list)
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run statements on one connection inside a transaction"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def close(self):
        """Close connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


# Singleton instances per service
_postgres_clients: Dict[str, PostgresClientWrapper] = {}


async def get_postgres_client(
    service_name: str,
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    **kwargs,
) -> PostgresClientWrapper:
    """
    Get or create PostgreSQL client for a service.

    Args:
        service_name: Service name
        host: Optional host override
        port: Optional port override
        database: Optional database override
        **kwargs: Additional client options

    Returns:
        PostgresClientWrapper instance
    """
    global _postgres_clients

    if service_name not in _postgres_clients:
        client = PostgresClientWrapper(
            service_name=service_name,
            host=host,
            port=port,
            database=database,
            **kwargs,
        )
        _postgres_clients[service_name] = client

    return _postgres_clients[service_name]
