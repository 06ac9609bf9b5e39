"""CredentialResolver: auth material for outbound tool calls.

Bearer descriptors are exchanged for a token through a login request and
the token is cached by descriptor id. The token cache defaults to
NO_EXPIRY: tokens are reused until evicted with invalidate_token or the
process exits, so an upstream that expires tokens will start answering 401.
API-key descriptors are read from the store on every call.
"""

from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from toolgate.kernel.executor.cache import NO_EXPIRY, TTLCache
from toolgate.kernel.executor.tool_contract import (
    ApiKeyConfig,
    AuthDescriptor,
    AuthKind,
    BearerLoginConfig,
    ToolConfigurationError,
)
from toolgate.kernel.store.interface import ToolConfigStore
from toolgate.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOGIN_HEADERS = {"Content-Type": "application/json"}


class CredentialError(ToolConfigurationError):
    """Raised when auth material cannot be produced for a descriptor.

    Attributes:
        auth_id: Auth descriptor the failure relates to
    """

    def __init__(self, auth_id: int, message: str) -> None:
        super().__init__(message)
        self.auth_id = auth_id


class ApiKeyPlacement(BaseModel):
    """Where and what to inject for an API-key descriptor."""

    model_config = ConfigDict(frozen=True)

    location: Literal["query", "header"]
    name: str
    value: str


class AuthMaterial(BaseModel):
    """Headers and query parameters to merge into an outbound request."""

    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)


def extract_token(payload: Any, token_path: str) -> str | None:
    """Find the token in a login response.

    token_path is tried first as a literal key, then as a dotted path
    (list positions as integers, e.g. "data.tokens.0.value").
    """
    if isinstance(payload, dict) and token_path in payload:
        value = payload[token_path]
    else:
        value = payload
        for segment in token_path.split("."):
            if isinstance(value, dict):
                value = value.get(segment)
            elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
                value = value[int(segment)]
            else:
                return None

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


class CredentialResolver:
    """Produces auth material for tool auth descriptors."""

    def __init__(
        self,
        store: ToolConfigStore,
        http_client: httpx.AsyncClient,
        token_cache: TTLCache[int, str] | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize credential resolver.

        Args:
            store: Configuration store holding auth descriptors
            http_client: Client used for bearer login requests
            token_cache: Bearer token cache; NO_EXPIRY cache when omitted
            timeout_seconds: Timeout for each login request
        """
        self._store = store
        self._client = http_client
        self._tokens = token_cache if token_cache is not None else TTLCache(NO_EXPIRY)
        self._timeout = timeout_seconds

    async def _descriptor(self, auth_id: int, expected: AuthKind) -> AuthDescriptor:
        descriptor = await self._store.get_auth_descriptor(auth_id)
        if descriptor is None:
            raise CredentialError(auth_id, f"Auth configuration with ID {auth_id} not found")
        if descriptor.kind != expected.value:
            raise CredentialError(
                auth_id,
                f"Auth configuration {auth_id} is of kind '{descriptor.kind}', expected '{expected.value}'",
            )
        return descriptor

    async def resolve_bearer_token(self, auth_id: int) -> str:
        """Return a bearer token, logging in on a cache miss.

        Raises:
            CredentialError: If the descriptor is missing or malformed, the
                login request fails, or the response has no token
        """
        cached = self._tokens.get(auth_id)
        if cached is not None:
            return cached

        descriptor = await self._descriptor(auth_id, AuthKind.BEARER)
        try:
            login = BearerLoginConfig.model_validate(descriptor.config)
        except ValidationError as e:
            raise CredentialError(auth_id, f"Malformed bearer configuration for auth {auth_id}: {e}") from e

        payload = await self._login(auth_id, login)
        token = extract_token(payload, login.token_path)
        if token is None:
            raise CredentialError(
                auth_id,
                f"Token not found at '{login.token_path}' in the login response for auth {auth_id}",
            )

        self._tokens.set(auth_id, token)
        logger.info("tool_auth_token_cached", auth_id=auth_id)
        return token

    async def _login(self, auth_id: int, login: BearerLoginConfig) -> Any:
        request_kwargs: dict[str, Any] = {}
        if isinstance(login.body, str):
            request_kwargs["content"] = login.body
        elif login.body is not None:
            request_kwargs["json"] = login.body

        try:
            response = await self._client.request(
                login.method.upper(),
                login.token_url,
                headers=login.headers or DEFAULT_LOGIN_HEADERS,
                timeout=self._timeout,
                **request_kwargs,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("tool_auth_login_rejected", auth_id=auth_id, status_code=e.response.status_code)
            raise CredentialError(
                auth_id,
                f"Login for auth {auth_id} failed with status code {e.response.status_code}",
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("tool_auth_login_failed", auth_id=auth_id, error=str(e))
            raise CredentialError(auth_id, f"Login for auth {auth_id} failed: {e}") from e
        except (UnicodeEncodeError, TypeError) as e:
            raise CredentialError(auth_id, f"Login request for auth {auth_id} could not be built: {e}") from e
        except ValueError as e:
            raise CredentialError(auth_id, f"Login response for auth {auth_id} is not JSON") from e

    async def resolve_api_key_placement(self, auth_id: int) -> ApiKeyPlacement:
        """Read static key material. No network call, no caching.

        Raises:
            CredentialError: If the descriptor is missing or malformed
        """
        descriptor = await self._descriptor(auth_id, AuthKind.API_KEY)
        try:
            config = ApiKeyConfig.model_validate(descriptor.config)
        except ValidationError as e:
            raise CredentialError(auth_id, f"Malformed api-key configuration for auth {auth_id}: {e}") from e

        return ApiKeyPlacement(location=config.location, name=config.key_name, value=config.key_value)

    async def authenticate(self, auth_id: int | None, kind: AuthKind | None) -> AuthMaterial:
        """Produce the headers and query parameters for a descriptor.

        Raises:
            CredentialError: If material cannot be produced
        """
        if auth_id is None or kind in (None, AuthKind.NONE):
            return AuthMaterial()

        if kind == AuthKind.BEARER:
            token = await self.resolve_bearer_token(auth_id)
            return AuthMaterial(headers={"Authorization": f"Bearer {token}"})

        if kind == AuthKind.API_KEY:
            placement = await self.resolve_api_key_placement(auth_id)
            if placement.location == "query":
                return AuthMaterial(params={placement.name: placement.value})
            return AuthMaterial(headers={placement.name: placement.value})

        raise CredentialError(auth_id, f"Unsupported auth kind '{kind}' for auth {auth_id}")

    def invalidate_token(self, auth_id: int) -> bool:
        """Evict a cached bearer token.

        Returns:
            True if a token was evicted
        """
        return self._tokens.invalidate(auth_id)
