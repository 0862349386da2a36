"""
dynpage Transport

HTTP client used by the engine for descriptor, list, option and action calls.
Auto-initializes from settings (environment variables or .env file).
"""

import logging
from typing import Any, Protocol

import httpx

from .config import Settings, get_settings
from .exceptions import TransportError

logger = logging.getLogger(__name__)

ERROR_PHRASES = (
    "cannot",
    "error",
    "failed",
    "invalid",
    "not allowed",
    "not found",
    "unauthorized",
    "forbidden",
    "please contact",
)


class Transport(Protocol):
    """Anything that can issue an authenticated JSON request."""

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any: ...


def _error_message(response: httpx.Response) -> str:
    """Build a readable message from an error response body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"Request failed ({response.status_code})"

    if not isinstance(payload, dict):
        return f"Request failed ({response.status_code})"

    message = payload.get("message") or "Request failed"
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        details = []
        for err in errors:
            if isinstance(err, dict):
                text = err.get("message") or err.get("defaultMessage") or ""
                details.append(f"{err['field']}: {text}" if err.get("field") else text)
            else:
                details.append(str(err))
        message = f"{message} - {', '.join(details)}"
    return message


class HttpTransport:
    """
    HTTP transport for the page engine.

    Singleton pattern - use get_transport() to get the shared instance.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        auth_header: str = "avToken",
        timeout: float | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        """
        Initialize transport.

        Args:
            base_url: API base URL for relative endpoints
            token: Auth token, sent in the auth header when present
            auth_header: Header name carrying the token
            timeout: Request timeout in seconds, None to wait indefinitely
            http: Pre-built client (tests inject one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if token:
            headers[auth_header] = token
        if http is None:
            http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        http.headers.update(headers)
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "HttpTransport":
        """Build a transport from engine settings."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.api_base_url,
            token=settings.api_token,
            auth_header=settings.auth_header_name,
            timeout=settings.request_timeout_seconds,
        )

    def _build_url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return url if url.startswith("/") else f"/{url}"

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Issue a request and decode the response.

        Args:
            url: Absolute URL or path relative to the base URL
            method: HTTP method
            body: JSON body, if any
            params: Query parameters, if any

        Returns:
            Decoded JSON body, or a success marker for 204 / plain-text replies

        Raises:
            TransportError: On network failure, non-2xx status, or an error reply
        """
        method = method.upper()
        target = self._build_url(url)
        logger.debug(f"{method} {target} params={params}")

        try:
            response = await self._http.request(
                method,
                target,
                json=body,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {target} failed: {e}")
            raise TransportError(str(e) or "Network error", url=target, method=method) from e

        if response.status_code == 204:
            return {"success": True, "status": 204}

        if not response.is_success:
            message = _error_message(response)
            logger.error(f"{method} {target} returned {response.status_code}: {message}")
            raise TransportError(
                message,
                status_code=response.status_code,
                url=target,
                method=method,
            )

        content_type = response.headers.get("content-type", "")

        if "text/plain" in content_type:
            text = response.text
            if any(phrase in text.lower() for phrase in ERROR_PHRASES):
                raise TransportError(
                    text,
                    status_code=response.status_code,
                    url=target,
                    method=method,
                )
            return {"success": True, "message": text}

        if "application/json" not in content_type:
            raise TransportError(
                f"Unexpected content type: {content_type or 'none'}",
                status_code=response.status_code,
                url=target,
                method=method,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} {target} returned invalid JSON: {e}")
            raise TransportError(
                f"Invalid JSON response: {e}",
                status_code=response.status_code,
                url=target,
                method=method,
            ) from e

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


_transport: HttpTransport | None = None


def get_transport() -> HttpTransport:
    """Get the shared transport, creating it from settings on first use."""
    global _transport
    if _transport is None:
        _transport = HttpTransport.from_settings()
    return _transport


def _clear_transport() -> None:
    """Drop the shared transport (used by tests)."""
    global _transport
    _transport = None
