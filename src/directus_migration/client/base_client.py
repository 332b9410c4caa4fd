"""HTTP transport shared by every Directus client.

Wraps a pooled ``httpx.AsyncClient`` with a static bearer token, a minimum
interval between requests, optional payload logging, and translation of
Directus error responses into the exceptions of ``client.exceptions``.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from directus_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from directus_migration.utils.logging import (
    get_logger,
    log_api_request,
    sanitize_payload,
    should_log_payloads,
    truncate_payload,
)

logger = get_logger(__name__)

# Status codes with a dedicated exception; 5xx maps to ServerError, the rest to APIError
STATUS_ERRORS: dict[int, type[APIError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    429: RateLimitError,
}

DEFAULT_MAX_CONNECTIONS = 50
DEFAULT_MAX_KEEPALIVE = 20


def directus_error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    """Extract the first error message from a Directus error body.

    Directus answers with ``{"errors": [{"message": ..., "extensions": {...}}]}``.
    Bodies in any other shape are kept under ``detail``.

    Returns:
        The message and the decoded body
    """
    try:
        body = response.json()
    except ValueError:
        body = {"detail": response.text}
    if not isinstance(body, dict):
        body = {"detail": str(body)}

    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        message = first.get("message") if isinstance(first, dict) else str(first)
    else:
        message = body.get("detail") or body.get("message")

    return message or response.reason_phrase or "Unknown error", body


class BaseAPIClient:
    """Async client for a Directus REST API.

    A failed request raises at once; nothing is retried at this level.

    Args:
        base_url: Instance URL, without the trailing slash
        token: Static access token
        verify_ssl: Whether to verify TLS certificates
        timeout: Per-request timeout in seconds
        rate_limit: Requests per second, 0 for no limit
        max_connections: Connection pool size
        max_keepalive_connections: Idle connections kept open
        log_payloads: Log sanitized request and response bodies at DEBUG
        max_payload_size: Characters of a body logged before truncation
        transport: Replacement httpx transport, used by tests
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        verify_ssl: bool = True,
        timeout: int = 30,
        rate_limit: int = 20,
        max_connections: int | None = None,
        max_keepalive_connections: int | None = None,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.verify_ssl = verify_ssl
        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size

        self.rate_limit = rate_limit
        self._interval = 1.0 / rate_limit if rate_limit > 0 else 0.0
        self._throttle_lock = asyncio.Lock()
        self._last_sent = 0.0

        max_connections = max_connections or DEFAULT_MAX_CONNECTIONS
        self.client = httpx.AsyncClient(
            # No Content-Type here: httpx picks it per body (JSON or multipart)
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections or DEFAULT_MAX_KEEPALIVE,
            ),
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

        logger.info(
            "client_initialized",
            base_url=self.base_url,
            rate_limit=rate_limit,
            max_connections=max_connections,
        )

    def _url(self, endpoint: str) -> str:
        return urljoin(f"{self.base_url}/", endpoint.lstrip("/"))

    async def _throttle(self) -> None:
        """Space requests at least ``1 / rate_limit`` seconds apart."""
        if not self._interval:
            return
        async with self._throttle_lock:
            elapsed = time.monotonic() - self._last_sent
            if elapsed < self._interval:
                await asyncio.sleep(self._interval - elapsed)
            self._last_sent = time.monotonic()

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise the exception matching an error response.

        Raises:
            APIError: Or the subclass registered for the status code
        """
        status = response.status_code
        message, body = directus_error_message(response)

        if status in STATUS_ERRORS:
            error_type = STATUS_ERRORS[status]
        elif status >= 500:
            error_type = ServerError
        else:
            error_type = APIError

        raise error_type(message, status_code=status, response=body)

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        **kwargs: Any,
    ) -> httpx.Response:
        url = self._url(endpoint)
        await self._throttle()

        if json_data is not None and should_log_payloads(self.log_payloads):
            logger.debug(
                "api_request_payload",
                method=method,
                url=url,
                payload=truncate_payload(sanitize_payload(json_data), self.max_payload_size),
            )

        started = time.monotonic()
        try:
            response = await self.client.request(method, url, params=params, json=json_data, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("request_timeout", method=method, url=url, error=str(e))
            raise NetworkError(f"{method} {url} timed out: {e}") from e
        except httpx.TransportError as e:
            logger.error("request_transport_failed", method=method, url=url, error=str(e))
            raise NetworkError(f"{method} {url} failed: {e}") from e

        log_api_request(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - started) * 1000,
        )

        if response.is_error:
            self._raise_for_status(response)
        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request and decode its JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to the instance URL
            params: Query string parameters
            json_data: JSON body, an object or an array for batch endpoints
            **kwargs: Passed through to httpx (``data``/``files`` for uploads)

        Returns:
            The decoded body, or an empty dict when the response has none

        Raises:
            NetworkError: If the instance could not be reached
            APIError: If the instance answered with an error status
        """
        response = await self._send(method, endpoint, params=params, json_data=json_data, **kwargs)

        if response.content and should_log_payloads(self.log_payloads):
            logger.debug(
                "api_response_payload",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
                payload=response.text[: self.max_payload_size],
            )

        return response.json() if response.content else {}

    async def request_bytes(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> bytes:
        """Send a request and return the raw body, for asset downloads."""
        response = await self._send(method, endpoint, params=params)
        return response.content

    async def get(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def post(
        self, endpoint: str, json_data: Any = None, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> Any:
        return await self.request("POST", endpoint, params=params, json_data=json_data, **kwargs)

    async def patch(
        self, endpoint: str, json_data: Any = None, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> Any:
        return await self.request("PATCH", endpoint, params=params, json_data=json_data, **kwargs)

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("client_closed", base_url=self.base_url)
