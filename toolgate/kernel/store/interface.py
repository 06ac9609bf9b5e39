"""ToolConfigStore abstract interface.

Read-only access to tool routes, tools and auth descriptors. Writes belong
to configuration tooling outside this package.
"""

from abc import ABC, abstractmethod

from toolgate.kernel.executor.tool_contract import AuthDescriptor, ToolRouteRecord


class StoreError(Exception):
    """Raised when the configuration store cannot be queried."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ToolConfigStore(ABC):
    """Abstract interface for tool configuration lookups."""

    @abstractmethod
    async def get_route(self, route_name: str) -> ToolRouteRecord | None:
        """Get an active route of an active tool, joined with its auth kind."""
        pass

    @abstractmethod
    async def get_auth_descriptor(self, auth_id: int) -> AuthDescriptor | None:
        """Get an auth descriptor by ID."""
        pass

    @abstractmethod
    async def get_tool_kind(self, tool_name: str) -> str | None:
        """Get the kind of an active tool by name."""
        pass
