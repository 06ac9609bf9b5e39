"""ToolInvoker: executes named tool routes for agents.

An invocation is strictly sequential:

    Resolving -> Validating -> (Validated | Rejected)
              -> (AuthResolved | NoAuthNeeded) -> Calling -> (Succeeded | Failed)

Arguments are checked before credentials are fetched so that a rejected
call never touches the network, login requests included. Every outcome is
returned as an InvocationResult; configuration, upstream and transport
errors are never raised to the caller. There are no retries.
"""

import json
import time
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from toolgate.config.settings import Settings, get_settings
from toolgate.kernel.executor.arguments import (
    ArgumentBag,
    PreparedArguments,
    Rejection,
    missing_path_parameters,
    select_strategy,
)
from toolgate.kernel.executor.cache import Clock, TTLCache
from toolgate.kernel.executor.credential_resolver import AuthMaterial, CredentialResolver
from toolgate.kernel.executor.route_resolver import RouteResolver
from toolgate.kernel.executor.schema_validator import SchemaValidator, ValidationIssue
from toolgate.kernel.executor.tool_contract import ToolConfigurationError, ToolRouteContract
from toolgate.kernel.store.interface import StoreError, ToolConfigStore
from toolgate.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT_SECONDS = 30.0

DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class InvocationState(str, Enum):
    RESOLVING = "resolving"
    VALIDATING = "validating"
    VALIDATED = "validated"
    REJECTED = "rejected"
    AUTH_RESOLVED = "auth_resolved"
    NO_AUTH_NEEDED = "no_auth_needed"
    CALLING = "calling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    UPSTREAM_HTTP = "upstream_http"
    NETWORK = "network"


class InvocationResult(BaseModel):
    """Uniform outcome of one tool invocation.

    state is terminal: succeeded, rejected or failed. data carries the
    upstream payload on success; error and error_kind describe anything
    else.
    """

    route_name: str
    state: InvocationState
    data: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    validation_errors: list[ValidationIssue] = Field(default_factory=list)
    status_code: int | None = None
    response_body: Any = None
    latency_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.state == InvocationState.SUCCEEDED

    def to_payload(self) -> dict[str, Any]:
        """Caller-facing shape: {"data": ...} or {"error": ..., "validation_errors"?: [...]}."""
        if self.ok:
            return {"data": self.data}

        payload: dict[str, Any] = {"error": self.error}
        if self.validation_errors:
            payload["validation_errors"] = [issue.model_dump() for issue in self.validation_errors]
        return payload

    def summary(self) -> str:
        """One line to feed back into an agent conversation."""
        if not self.ok:
            return f"TOOL_ERROR: {self.error}"
        return f"TOOL_RESULT: {json.dumps(self.data, ensure_ascii=False, default=str)}"


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ToolInvoker:
    """Resolves, authenticates, validates and calls tool routes."""

    def __init__(
        self,
        routes: RouteResolver,
        credentials: CredentialResolver,
        validator: SchemaValidator,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
        owns_client: bool = False,
    ) -> None:
        """Initialize tool invoker.

        Args:
            routes: Route contract resolver
            credentials: Auth material resolver
            validator: Request body validator
            http_client: Client for outbound tool calls
            timeout_seconds: Timeout for each tool call
            owns_client: Close http_client in aclose()
        """
        self._routes = routes
        self._credentials = credentials
        self._validator = validator
        self._client = http_client
        self._timeout = timeout_seconds
        self._owns_client = owns_client

    async def invoke(self, route_name: str, args: Mapping[str, Any] | None = None) -> InvocationResult:
        """Invoke a tool route with caller arguments.

        Args:
            route_name: Route name as exposed to agents
            args: Named argument values; placeholder keys fill the path

        Returns:
            InvocationResult in state succeeded, rejected or failed
        """
        log = logger.bind(route_name=route_name)
        log.debug("tool_invocation_state", state=InvocationState.RESOLVING.value)

        try:
            contract = await self._routes.resolve(route_name)

            bag = ArgumentBag(args)
            url = bag.consume_placeholders(contract.url_template)

            log.debug("tool_invocation_state", state=InvocationState.VALIDATING.value)
            rejection = missing_path_parameters(url)
            if rejection is not None:
                return self._rejected(route_name, rejection, log)

            strategy = select_strategy(contract.method, self._validator)
            prepared = strategy.prepare(contract, bag.remaining())
            if isinstance(prepared, Rejection):
                return self._rejected(route_name, prepared, log)
            log.debug("tool_invocation_state", state=InvocationState.VALIDATED.value)

            auth = await self._credentials.authenticate(contract.auth_id, contract.auth_kind)
            auth_state = InvocationState.AUTH_RESOLVED if contract.requires_auth else InvocationState.NO_AUTH_NEEDED
            log.debug("tool_invocation_state", state=auth_state.value)

        except (ToolConfigurationError, StoreError) as e:
            log.warning("tool_invocation_misconfigured", error=str(e), error_type=type(e).__name__)
            return InvocationResult(
                route_name=route_name,
                state=InvocationState.FAILED,
                error=str(e),
                error_kind=ErrorKind.CONFIGURATION,
            )

        return await self._call(contract, url, auth, prepared, log)

    def _rejected(self, route_name: str, rejection: Rejection, log: Any) -> InvocationResult:
        log.warning(
            "tool_arguments_rejected",
            state=InvocationState.REJECTED.value,
            error_count=len(rejection.issues),
            keywords=[issue.keyword for issue in rejection.issues],
        )
        return InvocationResult(
            route_name=route_name,
            state=InvocationState.REJECTED,
            error=rejection.message,
            error_kind=ErrorKind.VALIDATION,
            validation_errors=rejection.issues,
        )

    async def _call(
        self,
        contract: ToolRouteContract,
        url: str,
        auth: AuthMaterial,
        prepared: PreparedArguments,
        log: Any,
    ) -> InvocationResult:
        headers = {**DEFAULT_HEADERS, **auth.headers}
        params = {**prepared.params, **auth.params}
        request_kwargs: dict[str, Any] = {
            "headers": headers,
            "params": params or None,
            "timeout": self._timeout,
        }
        if prepared.has_body:
            request_kwargs["json"] = prepared.body

        log.info("tool_call_started", state=InvocationState.CALLING.value, method=contract.method, url=url)
        start_time = time.perf_counter()

        def failed(kind: ErrorKind, error: str, **extra: Any) -> InvocationResult:
            return InvocationResult(
                route_name=contract.route_name,
                state=InvocationState.FAILED,
                error=error,
                error_kind=kind,
                latency_ms=int((time.perf_counter() - start_time) * 1000),
                **extra,
            )

        try:
            response = await self._client.request(contract.method, url, **request_kwargs)
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log.warning("tool_call_failed", error_kind=ErrorKind.UPSTREAM_HTTP.value, status_code=status_code)
            return failed(
                ErrorKind.UPSTREAM_HTTP,
                f"Request failed with status code {status_code}",
                status_code=status_code,
                response_body=_response_payload(e.response),
            )

        except httpx.TimeoutException as e:
            log.warning("tool_call_failed", error_kind=ErrorKind.NETWORK.value, timeout_seconds=self._timeout)
            detail = str(e) or type(e).__name__
            return failed(ErrorKind.NETWORK, f"Request timed out after {self._timeout:g}s: {detail}")

        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            log.warning("tool_call_failed", error_kind=ErrorKind.CONFIGURATION.value, error=str(e))
            return failed(ErrorKind.CONFIGURATION, f"Invalid tool URL '{url}': {e}")

        except (UnicodeEncodeError, TypeError) as e:
            # Non-ASCII header value or a body that is not JSON-serializable
            log.warning("tool_call_failed", error_kind=ErrorKind.CONFIGURATION.value, error=str(e))
            return failed(ErrorKind.CONFIGURATION, f"Request for '{contract.route_name}' could not be built: {e}")

        except httpx.HTTPError as e:
            log.warning("tool_call_failed", error_kind=ErrorKind.NETWORK.value, error=str(e))
            return failed(ErrorKind.NETWORK, str(e) or type(e).__name__)

        result = InvocationResult(
            route_name=contract.route_name,
            state=InvocationState.SUCCEEDED,
            data=_response_payload(response),
            status_code=response.status_code,
            latency_ms=int((time.perf_counter() - start_time) * 1000),
        )
        log.info("tool_call_succeeded", status_code=response.status_code, latency_ms=result.latency_ms)
        return result

    async def aclose(self) -> None:
        """Close the HTTP client if this invoker created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ToolInvoker":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def build_invoker(
    store: ToolConfigStore,
    settings: Settings | None = None,
    *,
    clock: Clock | None = None,
    http_client: httpx.AsyncClient | None = None,
    validator: SchemaValidator | None = None,
) -> ToolInvoker:
    """Wire a ToolInvoker with its own caches.

    Each call creates fresh route and token caches, so separate invokers
    (e.g. one per tenant) never share cached state.

    Args:
        store: Configuration store of record
        settings: Settings (process settings when omitted)
        clock: Time source for both caches
        http_client: Shared client; one is created and owned when omitted
        validator: Schema validator (and its compiled-schema cache)
    """
    settings = settings or get_settings()
    validator = validator or SchemaValidator()
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient()

    routes = RouteResolver(
        store,
        validator,
        cache=TTLCache(settings.route_cache_ttl_seconds, clock=clock),
    )
    credentials = CredentialResolver(
        store,
        client,
        token_cache=TTLCache(settings.token_cache_ttl_seconds, clock=clock),
        timeout_seconds=settings.request_timeout_seconds,
    )
    return ToolInvoker(
        routes,
        credentials,
        validator,
        client,
        timeout_seconds=settings.request_timeout_seconds,
        owns_client=owns_client,
    )
