"""Executor module: tool route resolution, credentials, validation and invocation."""

from toolgate.kernel.executor.cache import NO_EXPIRY, TTLCache
from toolgate.kernel.executor.credential_resolver import (
    ApiKeyPlacement,
    AuthMaterial,
    CredentialError,
    CredentialResolver,
)
from toolgate.kernel.executor.route_resolver import (
    RouteConfigurationError,
    RouteNotFoundError,
    RouteResolver,
    ToolNotFoundError,
)
from toolgate.kernel.executor.schema_validator import (
    LocatedValidationResult,
    SchemaValidationError,
    SchemaValidator,
    ValidationErrorCode,
    ValidationIssue,
    ValidationResult,
    format_errors,
)
from toolgate.kernel.executor.tool_contract import (
    AuthDescriptor,
    AuthKind,
    ToolConfigurationError,
    ToolRouteContract,
)
from toolgate.kernel.executor.tool_invoker import (
    ErrorKind,
    InvocationResult,
    InvocationState,
    ToolInvoker,
    build_invoker,
)

__all__ = [
    "TTLCache",
    "NO_EXPIRY",
    "ToolRouteContract",
    "AuthDescriptor",
    "AuthKind",
    "ToolConfigurationError",
    "RouteResolver",
    "RouteNotFoundError",
    "RouteConfigurationError",
    "ToolNotFoundError",
    "CredentialResolver",
    "CredentialError",
    "ApiKeyPlacement",
    "AuthMaterial",
    "SchemaValidator",
    "SchemaValidationError",
    "ValidationErrorCode",
    "ValidationIssue",
    "ValidationResult",
    "LocatedValidationResult",
    "format_errors",
    "ToolInvoker",
    "InvocationResult",
    "InvocationState",
    "ErrorKind",
    "build_invoker",
]
