"""Async HTTP plumbing for the resource registry API.

``BaseRegistryClient`` owns one pooled ``httpx.AsyncClient``, spaces
requests out to the configured rate, and turns error responses into the
Provider Migrator exception hierarchy so the executor can tell a provider
conflict from an outage.
"""

import asyncio
import time
from typing import Any

import httpx

from provider_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from provider_migration.utils.logging import (
    get_logger,
    log_api_request,
    sanitize_payload,
    should_log_payloads,
    truncate_payload,
)

logger = get_logger(__name__)

# status -> (exception, message prefix); 5xx and 429 are handled separately
STATUS_ERRORS: dict[int, tuple[type[APIError], str]] = {
    401: (AuthenticationError, "Registry rejected the token"),
    403: (AuthorizationError, "Token may not manage providers"),
    404: (NotFoundError, "Registry resource not found"),
    409: (ConflictError, "Provider or model already exists"),
}


class RequestRateLimiter:
    """Keeps at least ``1 / rate`` seconds between consecutive requests."""

    def __init__(self, rate: int):
        self.interval = 1.0 / rate if rate > 0 else 0.0
        self._lock = asyncio.Lock()
        self._last = 0.0

    async def wait(self) -> None:
        if not self.interval:
            return
        async with self._lock:
            delay = self.interval - (time.monotonic() - self._last)
            if delay > 0:
                await asyncio.sleep(delay)
            self._last = time.monotonic()


def _error_detail(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    """Best-effort human message and body of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase, {"detail": response.text}

    if isinstance(body, list):
        message = ", ".join(str(item) for item in body) or "Unknown error"
        return message, {"detail": message, "errors": body}
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or "Unknown error"), body
    return str(body), {"detail": body}


def raise_for_registry_status(response: httpx.Response) -> None:
    """Raise the exception matching an error response.

    Raises:
        AuthenticationError: 401
        AuthorizationError: 403
        NotFoundError: 404
        ConflictError: 409
        RateLimitError: 429
        ServerError: 5xx
        APIError: any other 4xx
    """
    status = response.status_code
    if status < 400:
        return

    message, body = _error_detail(response)

    if status in STATUS_ERRORS:
        error_cls, prefix = STATUS_ERRORS[status]
        raise error_cls(f"{prefix}: {message}", status_code=status, response=body)
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitError(
            f"Registry rate limit exceeded: {message}",
            status_code=status,
            response=body,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    if status >= 500:
        raise ServerError(f"Server error: {message}", status_code=status, response=body)
    raise APIError(f"Registry request failed: {message}", status_code=status, response=body)


class BaseRegistryClient:
    """Pooled, rate-limited JSON client for one registry base URL.

    Subclasses add the registry endpoints and decorate them with
    ``retry_api_call``; this class performs exactly one HTTP exchange per
    call.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        verify_ssl: bool = True,
        timeout: int = 30,
        rate_limit: int = 20,
        max_connections: int = 50,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Registry API root, e.g. ``https://registry.example.com/api``
            token: Bearer token
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second (0 disables limiting)
            max_connections: Connection pool size
            log_payloads: Log request/response bodies at DEBUG (secrets redacted)
            max_payload_size: Characters of a body kept in the log
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``
        """
        self.base_url = base_url.rstrip("/")
        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size
        self.limiter = RequestRateLimiter(rate_limit)

        self.client = httpx.AsyncClient(
            base_url=f"{self.base_url}/",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

        logger.info("registry_client_initialized", base_url=self.base_url, rate_limit=rate_limit)

    def _log_payload(self, direction: str, method: str, endpoint: str, payload: Any) -> None:
        if payload is None or not should_log_payloads(logger, self.log_payloads):
            return
        logger.debug(
            f"registry_{direction}_payload",
            method=method,
            endpoint=endpoint,
            payload=truncate_payload(sanitize_payload(payload), self.max_payload_size),
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL (``providers/``)
            params: Query parameters
            json_data: JSON request body

        Returns:
            Decoded body, or ``{}`` for an empty response

        Raises:
            NetworkError: Timeouts and transport failures
            APIError: Error responses (see ``raise_for_registry_status``)
        """
        endpoint = endpoint.lstrip("/")
        await self.limiter.wait()
        self._log_payload("request", method, endpoint, json_data)

        started = time.monotonic()
        try:
            response = await self.client.request(method, endpoint, params=params, json=json_data)
        except httpx.TimeoutException as e:
            logger.error("registry_timeout", method=method, endpoint=endpoint, error=str(e))
            raise NetworkError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            logger.error("registry_unreachable", method=method, endpoint=endpoint, error=str(e))
            raise NetworkError(f"Network error: {e}") from e

        log_api_request(
            logger,
            method=method,
            url=str(response.request.url),
            status_code=response.status_code,
            duration_ms=(time.monotonic() - started) * 1000,
        )

        raise_for_registry_status(response)

        if not response.content:
            return {}
        body = response.json()
        self._log_payload("response", method, endpoint, body)
        return body

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_data: dict[str, Any]) -> Any:
        return await self.request("POST", endpoint, json_data=json_data)

    async def put(self, endpoint: str, json_data: dict[str, Any]) -> Any:
        return await self.request("PUT", endpoint, json_data=json_data)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("registry_client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "BaseRegistryClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
