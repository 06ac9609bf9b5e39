"""Argument handling for tool calls.

Caller arguments are consumed in two steps: values whose key matches a
{key} placeholder in the URL template are substituted and removed, then
the remainder goes out as query parameters (GET) or as a validated JSON
body (every other method).
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from toolgate.kernel.executor.route_resolver import RouteConfigurationError
from toolgate.kernel.executor.schema_validator import (
    POSITIONAL_LIMIT,
    SchemaValidator,
    ValidationIssue,
    format_errors,
)
from toolgate.kernel.executor.tool_contract import ToolRouteContract

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}/]+)\}")


def stringify(value: Any) -> str:
    """Render an argument the way it appears in a URL or query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer() and abs(value) < POSITIONAL_LIMIT:
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def unfilled_placeholders(url: str) -> list[str]:
    return PLACEHOLDER_PATTERN.findall(url)


class ArgumentBag:
    """Ordered caller arguments with an explicit consumption contract.

    consume_placeholders removes every key it substitutes; remaining()
    returns what is left, in the caller's order. The caller's mapping is
    never modified.
    """

    def __init__(self, args: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(args or {})

    def consume_placeholders(self, template: str) -> str:
        """Substitute {key} placeholders and drop the substituted keys.

        Values are string-coerced and percent-encoded. Every occurrence of a
        placeholder is replaced.
        """
        url = template
        for key in list(self._values):
            placeholder = "{" + key + "}"
            if placeholder in url:
                value = self._values.pop(key)
                url = url.replace(placeholder, quote(stringify(value), safe=""))
        return url

    def remaining(self) -> dict[str, Any]:
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)


@dataclass
class PreparedArguments:
    """Arguments ready to be sent."""

    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    has_body: bool = False


@dataclass
class Rejection:
    """Arguments refused before any network call."""

    message: str
    issues: list[ValidationIssue]


def _query_value(value: Any) -> Any:
    if isinstance(value, dict):
        return stringify(value)
    if isinstance(value, list):
        return [stringify(item) if isinstance(item, (dict, list)) else item for item in value]
    return value


class ArgumentStrategy(ABC):
    """Places the remaining arguments of a call."""

    @abstractmethod
    def prepare(self, contract: ToolRouteContract, arguments: dict[str, Any]) -> PreparedArguments | Rejection:
        pass


class QueryArgumentStrategy(ArgumentStrategy):
    """GET: every remaining argument becomes a query parameter. No body validation."""

    def prepare(self, contract: ToolRouteContract, arguments: dict[str, Any]) -> PreparedArguments | Rejection:
        return PreparedArguments(params={key: _query_value(value) for key, value in arguments.items()})


class BodyArgumentStrategy(ArgumentStrategy):
    """Non-GET: remaining arguments form the JSON body, validated when a schema is declared."""

    def __init__(self, validator: SchemaValidator) -> None:
        self._validator = validator

    def prepare(self, contract: ToolRouteContract, arguments: dict[str, Any]) -> PreparedArguments | Rejection:
        """Validate and coerce the body.

        Raises:
            RouteConfigurationError: If the route's stored schema is unusable
        """
        if contract.request_body_schema_error:
            raise RouteConfigurationError(
                contract.route_name,
                f"request body schema is invalid: {contract.request_body_schema_error}",
            )

        if contract.request_body_schema is None:
            return PreparedArguments(body=arguments, has_body=True)

        result = self._validator.validate(contract.request_body_schema, arguments)
        if not result.valid:
            details = "; ".join(f"{e['field']}: {e['message']}" for e in format_errors(result.errors))
            return Rejection(
                message=f"Request body validation for '{contract.route_name}' failed: {details}",
                issues=result.errors,
            )

        return PreparedArguments(body=result.data, has_body=True)


def select_strategy(method: str, validator: SchemaValidator) -> ArgumentStrategy:
    """Pick the argument strategy for an HTTP method."""
    if method.upper() == "GET":
        return QueryArgumentStrategy()
    return BodyArgumentStrategy(validator)


def missing_path_parameters(url: str) -> Rejection | None:
    """Reject a URL whose template still has unfilled placeholders."""
    missing = unfilled_placeholders(url)
    if not missing:
        return None
    issues = [
        ValidationIssue(
            keyword="required",
            message=f"'{name}' is a required path parameter",
            params={"missing_property": name, "location": "path"},
        )
        for name in missing
    ]
    names = ", ".join(missing)
    return Rejection(message=f"Missing path parameters: {names}", issues=issues)
