"""RouteResolver: named tool routes to HTTP contracts.

Resolved contracts are cached by route name for a fixed time-to-live
(5 minutes by default) and then re-read from the configuration store.
"""

from pydantic import ValidationError

from toolgate.kernel.executor.cache import TTLCache
from toolgate.kernel.executor.schema_validator import SchemaError, SchemaValidator
from toolgate.kernel.executor.tool_contract import (
    DEFAULT_METHOD,
    AuthKind,
    ToolConfigurationError,
    ToolRouteContract,
    ToolRouteRecord,
)
from toolgate.kernel.store.interface import ToolConfigStore
from toolgate.observability.logging import get_logger

logger = get_logger(__name__)

ROUTE_CACHE_TTL_SECONDS = 5 * 60


class RouteNotFoundError(ToolConfigurationError):
    """Raised when a route is unknown, inactive, or belongs to an inactive tool.

    Attributes:
        route_name: Name of the route that was not found
    """

    def __init__(self, route_name: str) -> None:
        super().__init__(f"Tool route '{route_name}' not found or inactive")
        self.route_name = route_name


class RouteConfigurationError(ToolConfigurationError):
    """Raised when a stored route cannot be turned into a contract."""

    def __init__(self, route_name: str, reason: str) -> None:
        super().__init__(f"Tool route '{route_name}' is misconfigured: {reason}")
        self.route_name = route_name
        self.reason = reason


class ToolNotFoundError(ToolConfigurationError):
    """Raised when a tool is unknown or inactive.

    Attributes:
        tool_name: Name of the tool that was not found
    """

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' not found or inactive")
        self.tool_name = tool_name


class RouteResolver:
    """Resolves route names to ToolRouteContract objects.

    Provides:
    - Cached lookup by route name (route names are global, not per tenant)
    - Request schema parsing through the shared SchemaValidator
    - Tool kind lookup
    """

    def __init__(
        self,
        store: ToolConfigStore,
        validator: SchemaValidator,
        cache: TTLCache[str, ToolRouteContract] | None = None,
    ) -> None:
        """Initialize route resolver.

        Args:
            store: Configuration store of record
            validator: Validator used to load request schemas
            cache: Contract cache; a 5 minute cache is created when omitted
        """
        self._store = store
        self._validator = validator
        self._cache = cache if cache is not None else TTLCache(ROUTE_CACHE_TTL_SECONDS)

    async def resolve(self, route_name: str) -> ToolRouteContract:
        """Resolve a route by name.

        Args:
            route_name: Route name as exposed to agents

        Returns:
            ToolRouteContract for the requested route

        Raises:
            RouteNotFoundError: If no active route matches
            RouteConfigurationError: If the stored route is malformed
            StoreError: If the configuration store cannot be queried
        """
        cached = self._cache.get(route_name)
        if cached is not None:
            logger.debug("tool_route_cache_hit", route_name=route_name)
            return cached

        record = await self._store.get_route(route_name)
        if record is None or not (record.tool_active and record.route_active):
            raise RouteNotFoundError(route_name)

        contract = self._build_contract(record)
        self._cache.set(route_name, contract)
        logger.info(
            "tool_route_resolved",
            route_name=route_name,
            tool_name=contract.tool_name,
            method=contract.method,
            auth_kind=contract.auth_kind.value if contract.auth_kind else None,
        )
        return contract

    def _build_contract(self, record: ToolRouteRecord) -> ToolRouteContract:
        if record.auth_id is not None and record.auth_kind is None:
            raise RouteConfigurationError(
                record.route_name,
                f"auth descriptor {record.auth_id} does not exist",
            )

        schema = None
        schema_error = None
        if record.request_body_schema_json:
            loaded = self._validator.load(record.request_body_schema_json)
            if isinstance(loaded, SchemaError):
                schema_error = loaded.message
                logger.warning(
                    "tool_route_schema_invalid",
                    route_name=record.route_name,
                    error=schema_error,
                )
            else:
                schema = loaded.schema

        try:
            return ToolRouteContract(
                route_name=record.route_name,
                tool_id=record.tool_id,
                tool_name=record.tool_name,
                base_url=record.base_url,
                path=record.path or "",
                method=(record.method or DEFAULT_METHOD).upper(),
                request_body_schema=schema,
                request_body_schema_error=schema_error,
                auth_id=record.auth_id,
                auth_kind=AuthKind(record.auth_kind) if record.auth_kind else None,
                active=True,
            )
        except ValueError as e:
            # Unknown method or auth kind
            reason = e.errors()[0]["msg"] if isinstance(e, ValidationError) else str(e)
            raise RouteConfigurationError(record.route_name, reason) from e

    async def tool_kind(self, tool_name: str) -> str:
        """Look up the kind of an active tool.

        Raises:
            ToolNotFoundError: If the tool is unknown or inactive
        """
        kind = await self._store.get_tool_kind(tool_name)
        if kind is None:
            raise ToolNotFoundError(tool_name)
        return kind

    def invalidate(self, route_name: str | None = None) -> None:
        """Evict one cached contract, or all of them."""
        if route_name is None:
            self._cache.clear()
        else:
            self._cache.invalidate(route_name)
