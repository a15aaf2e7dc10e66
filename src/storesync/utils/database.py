import json
import asyncio
from enum import Enum
from pathlib import Path
from typing import Optional, Any, Dict, List, Set
from contextlib import asynccontextmanager
import asyncpg # type: ignore
from storesync.utils.exceptions import DatabaseError

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / 'migrations'

SCHEMA_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    name VARCHAR(255) PRIMARY KEY,
    applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
)
"""

def _bind(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value

async def _register_json_codecs(conn: asyncpg.Connection):
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema='pg_catalog')

class Database:
    """
    asyncpg pool for the sync service's own state (connections, mappings, runs, schedules).

    Rows come back as plain dicts, json/jsonb columns as Python objects and enum
    arguments are bound by value.
    """
    POOL_ATTEMPTS = 3

    def __init__(self, config: 'Config', logger: 'CustomLogger'): # type: ignore
        self.config = config
        self.logger = logger
        self.pool: Optional[asyncpg.Pool] = None

    def _connect_kwargs(self, database: str) -> Dict[str, Any]:
        return {
            'user': self.config.POSTGRES_USER,
            'password': self.config.POSTGRES_PASSWORD,
            'host': self.config.POSTGRES_HOST,
            'port': self.config.POSTGRES_PORT,
            'database': database,
        }

    async def ensure_database(self):
        """Create the service database through the maintenance database when it is missing"""
        name = self.config.POSTGRES_DB
        conn = await asyncpg.connect(**self._connect_kwargs('postgres'))
        try:
            if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", name):
                return
            await conn.execute(f'CREATE DATABASE "{name}"')
            self.logger.info(f"Created database {name}")
        except asyncpg.exceptions.DuplicateDatabaseError:
            # Another worker created it first
            pass
        finally:
            await conn.close()

    async def _open_pool(self) -> asyncpg.Pool:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncpg.create_pool(
                    **self._connect_kwargs(self.config.POSTGRES_DB),
                    min_size=self.config.DB_POOL_MIN,
                    max_size=self.config.DB_POOL_MAX,
                    init=_register_json_codecs
                )
            except asyncpg.InvalidCatalogNameError:
                # A freshly created database can take a moment to accept connections
                if attempt >= self.POOL_ATTEMPTS:
                    raise
                self.logger.warning(f"Database {self.config.POSTGRES_DB} not ready, retrying ({attempt}/{self.POOL_ATTEMPTS})")
                await asyncio.sleep(attempt)

    async def applied_migrations(self) -> Set[str]:
        async with self.transaction() as conn:
            await conn.execute(SCHEMA_MIGRATIONS_DDL)
            rows = await conn.fetch("SELECT name FROM schema_migrations")
        return {row['name'] for row in rows}

    async def migrate(self) -> List[str]:
        """Apply pending migrations/*.sql files in name order, one transaction per file"""
        done = await self.applied_migrations()
        applied = []
        for path in sorted(MIGRATIONS_DIR.glob('*.sql')):
            if path.name in done:
                continue
            async with self.transaction() as conn:
                await conn.execute(path.read_text(encoding='utf-8'))
                await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", path.name)
            self.logger.info(f"Applied migration {path.name}")
            applied.append(path.name)

        if not applied:
            self.logger.debug("Database schema is up to date")
        return applied

    async def initialize(self):
        try:
            await self.ensure_database()
            self.pool = await self._open_pool()
            await self.migrate()
        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise DatabaseError(f"Database initialization failed: {str(e)}") from e
        self.logger.info(
            f"Database ready at {self.config.POSTGRES_HOST}:{self.config.POSTGRES_PORT}/{self.config.POSTGRES_DB}"
        )

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Database connection pool closed")

    @asynccontextmanager
    async def connection(self):
        if not self.pool:
            raise DatabaseError("Database pool not initialized")
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def fetchrow(self, query: str, *args) -> Optional[Dict[str, Any]]:
        async with self.connection() as conn:
            record = await conn.fetchrow(query, *map(_bind, args))
        return dict(record) if record else None

    async def fetch(self, query: str, *args) -> List[Dict[str, Any]]:
        async with self.connection() as conn:
            records = await conn.fetch(query, *map(_bind, args))
        return [dict(record) for record in records]

    async def fetchval(self, query: str, *args) -> Any:
        async with self.connection() as conn:
            return await conn.fetchval(query, *map(_bind, args))

    async def execute(self, query: str, *args) -> str:
        """Run a statement and return its status tag, e.g. 'DELETE 3'"""
        async with self.connection() as conn:
            return await conn.execute(query, *map(_bind, args))

    async def health_check(self) -> bool:
        try:
            return await self.fetchval('SELECT 1') == 1
        except Exception as e:
            self.logger.error(f"Database health check failed: {str(e)}")
            return False
