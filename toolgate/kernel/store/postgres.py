"""PostgreSQL implementation of ToolConfigStore.

Reads the tool_auth, tools and tool_routes tables created by the
001_tool_config_tables migration. Every query is parameterized and
read-only.
"""

import json
from typing import Any

import asyncpg

from toolgate.config.settings import Settings
from toolgate.kernel.executor.tool_contract import AuthDescriptor, ToolRouteRecord
from toolgate.kernel.store.interface import StoreError, ToolConfigStore
from toolgate.observability.logging import get_logger

logger = get_logger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

ROUTE_QUERY = """
    SELECT
        r.name AS route_name,
        t.id AS tool_id,
        t.name AS tool_name,
        t.base_url,
        r.path,
        r.method,
        r.request_body_schema_json,
        t.auth_id,
        a.kind AS auth_kind,
        t.is_active AS tool_active,
        r.is_active AS route_active
    FROM tool_routes r
    JOIN tools t ON r.tool_id = t.id
    LEFT JOIN tool_auth a ON t.auth_id = a.id
    WHERE r.name = $1 AND t.is_active AND r.is_active
    LIMIT 1
"""

AUTH_QUERY = """
    SELECT id, kind, config_json
    FROM tool_auth
    WHERE id = $1
"""

TOOL_KIND_QUERY = """
    SELECT kind
    FROM tools
    WHERE name = $1 AND is_active
    LIMIT 1
"""


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Create the asyncpg pool used by PostgresToolConfigStore."""
    return await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )


class PostgresToolConfigStore(ToolConfigStore):
    """PostgreSQL implementation of ToolConfigStore."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        """Initialize PostgreSQL tool configuration store.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except _DB_ERRORS as e:
            logger.error("tool_store_query_failed", error=str(e), error_type=type(e).__name__)
            raise StoreError(f"Configuration store query failed: {e}", cause=e) from e

    async def get_route(self, route_name: str) -> ToolRouteRecord | None:
        """Get an active route of an active tool, joined with its auth kind."""
        row = await self._fetchrow(ROUTE_QUERY, route_name)
        if not row:
            logger.debug("tool_route_not_found", route_name=route_name)
            return None
        return ToolRouteRecord.model_validate(dict(row))

    async def get_auth_descriptor(self, auth_id: int) -> AuthDescriptor | None:
        """Get an auth descriptor by ID.

        Raises:
            StoreError: If the stored config_json is not a JSON object
        """
        row = await self._fetchrow(AUTH_QUERY, auth_id)
        if not row:
            return None

        config = row["config_json"]
        # asyncpg returns JSONB as text unless a codec is registered
        if isinstance(config, str):
            try:
                config = json.loads(config)
            except ValueError as e:
                raise StoreError(f"Auth descriptor {auth_id} has malformed config_json: {e}", cause=e) from e
        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise StoreError(f"Auth descriptor {auth_id} config_json must be an object")

        return AuthDescriptor(id=row["id"], kind=row["kind"], config=config)

    async def get_tool_kind(self, tool_name: str) -> str | None:
        """Get the kind of an active tool by name."""
        row = await self._fetchrow(TOOL_KIND_QUERY, tool_name)
        return row["kind"] if row else None
