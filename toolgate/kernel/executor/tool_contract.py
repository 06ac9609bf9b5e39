"""Tool contracts: route, tool and auth descriptor models.

Records are read from the configuration store; contracts are what the
invoker works with once a record has been resolved.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

DEFAULT_METHOD: HttpMethod = "POST"


class ToolConfigurationError(Exception):
    """Base class for configuration problems detected before any tool call.

    Configuration will not fix itself mid-call, so these are never retried.
    """


class AuthKind(str, Enum):
    """How outbound calls to a tool authenticate."""

    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api-key"


class BearerLoginConfig(BaseModel):
    """Login handshake that yields a bearer token."""

    model_config = ConfigDict(extra="ignore")

    token_url: str
    method: str = "POST"
    headers: dict[str, str] | None = None
    body: Any = None
    token_path: str  # Key, or dotted path, of the token in the JSON login response

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        # HTTP header names and values are sent as ASCII
        for name, value in (v or {}).items():
            if not (name.isascii() and value.isascii()):
                raise ValueError(f"login header '{name}' must be ASCII")
        return v


class ApiKeyConfig(BaseModel):
    """Static key injected into each call."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    key_name: str
    key_value: str
    location: Literal["query", "header"] = Field(alias="in")

    @model_validator(mode="after")
    def check_header_placement(self) -> "ApiKeyConfig":
        if self.location == "header" and not (self.key_name.isascii() and self.key_value.isascii()):
            raise ValueError(f"header key '{self.key_name}' and its value must be ASCII")
        return self


class AuthDescriptor(BaseModel):
    """Auth descriptor as stored; config is validated per kind on use."""

    model_config = ConfigDict(frozen=True)

    id: int
    kind: str
    config: dict[str, Any] = Field(default_factory=dict)


class ToolRouteRecord(BaseModel):
    """Route row joined with its tool and auth descriptor kind."""

    route_name: str
    tool_id: int
    tool_name: str
    base_url: str
    path: str = ""
    method: str | None = None
    request_body_schema_json: str | None = None  # Persisted textual form
    auth_id: int | None = None
    auth_kind: str | None = None
    tool_active: bool = True
    route_active: bool = True


class ToolRouteContract(BaseModel):
    """One invocable HTTP operation.

    request_body_schema_error is set instead of request_body_schema when the
    persisted schema could not be parsed or compiled.
    """

    model_config = ConfigDict(frozen=True)

    route_name: str
    tool_id: int
    tool_name: str
    base_url: str
    path: str = ""
    method: HttpMethod = DEFAULT_METHOD
    request_body_schema: dict[str, Any] | bool | None = None
    request_body_schema_error: str | None = None
    auth_id: int | None = None
    auth_kind: AuthKind | None = None
    active: bool = True

    @property
    def url_template(self) -> str:
        """Base URL joined with the path template."""
        if not self.path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{self.path.lstrip('/')}"

    @property
    def requires_auth(self) -> bool:
        return self.auth_id is not None and self.auth_kind not in (None, AuthKind.NONE)
