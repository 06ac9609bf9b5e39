"""In-memory implementation of ToolConfigStore."""

from typing import Any

from toolgate.kernel.executor.tool_contract import AuthDescriptor, ToolRouteRecord
from toolgate.kernel.store.interface import ToolConfigStore


class InMemoryToolConfigStore(ToolConfigStore):
    """In-memory implementation of ToolConfigStore for testing and development.

    Mirrors the relational layout: tools reference an auth descriptor,
    routes reference a tool. Lookups apply the same active filters as the
    PostgreSQL store.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._auth: dict[int, AuthDescriptor] = {}
        self._tools: dict[int, dict[str, Any]] = {}
        self._routes: dict[str, dict[str, Any]] = {}

    def add_auth_descriptor(self, auth_id: int, kind: str, config: dict[str, Any] | None = None) -> None:
        self._auth[auth_id] = AuthDescriptor(id=auth_id, kind=kind, config=config or {})

    def add_tool(
        self,
        tool_id: int,
        name: str,
        base_url: str,
        *,
        kind: str = "api",
        auth_id: int | None = None,
        active: bool = True,
    ) -> None:
        self._tools[tool_id] = {
            "name": name,
            "kind": kind,
            "base_url": base_url,
            "auth_id": auth_id,
            "active": active,
        }

    def add_route(
        self,
        name: str,
        tool_id: int,
        *,
        path: str = "",
        method: str | None = "POST",
        request_body_schema_json: str | None = None,
        active: bool = True,
    ) -> None:
        if tool_id not in self._tools:
            raise KeyError(f"Tool {tool_id} must be added before its routes")
        self._routes[name] = {
            "tool_id": tool_id,
            "path": path,
            "method": method,
            "request_body_schema_json": request_body_schema_json,
            "active": active,
        }

    async def get_route(self, route_name: str) -> ToolRouteRecord | None:
        """Get an active route of an active tool, joined with its auth kind."""
        route = self._routes.get(route_name)
        if route is None or not route["active"]:
            return None

        tool = self._tools.get(route["tool_id"])
        if tool is None or not tool["active"]:
            return None

        auth = self._auth.get(tool["auth_id"]) if tool["auth_id"] is not None else None
        return ToolRouteRecord(
            route_name=route_name,
            tool_id=route["tool_id"],
            tool_name=tool["name"],
            base_url=tool["base_url"],
            path=route["path"],
            method=route["method"],
            request_body_schema_json=route["request_body_schema_json"],
            auth_id=tool["auth_id"],
            auth_kind=auth.kind if auth else None,
            tool_active=tool["active"],
            route_active=route["active"],
        )

    async def get_auth_descriptor(self, auth_id: int) -> AuthDescriptor | None:
        """Get an auth descriptor by ID."""
        return self._auth.get(auth_id)

    async def get_tool_kind(self, tool_name: str) -> str | None:
        """Get the kind of an active tool by name."""
        for tool in self._tools.values():
            if tool["name"] == tool_name and tool["active"]:
                return tool["kind"]
        return None
