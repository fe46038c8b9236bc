"""
Shopee fleet API proxy client.

The dashboard forwards a status query captured from the Shopee fleet
portal (URL, method, the portal's session headers and body). The session
headers are an opaque credential blob: they are passed through untouched,
except for browser-only headers that break server-side requests.
"""

import asyncio
from typing import Any
from urllib.parse import urlparse

import httpx

from parcelhub.config import settings
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

STRIPPED_HEADERS = frozenset({"host", "origin", "referer", "content-length"})
AUTH_ERROR_KEYWORDS = ("authentication", "unauthorized", "auth")


class ShopeeApiError(Exception):
    """Non-2xx response from the Shopee fleet API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: str | None = None,
        is_auth_error: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or ""
        self.is_auth_error = is_auth_error


class ShopeeProxyNotAllowedError(ValueError):
    """Target URL is not on the allowed host list."""


def is_auth_failure(status_code: int, body: str) -> bool:
    """401/403, or an error body that talks about authentication."""
    if status_code in (401, 403):
        return True
    lowered = (body or "").lower()
    return any(keyword in lowered for keyword in AUTH_ERROR_KEYWORDS)


def sanitize_headers(headers: dict[str, str] | None) -> dict[str, str]:
    return {
        name: value
        for name, value in (headers or {}).items()
        if value is not None and name.lower() not in STRIPPED_HEADERS
    }


class ShopeeFleetClient:
    """Thin async proxy to the Shopee fleet API with retry and error mapping."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        allowed_hosts: list[str] | None = None,
        timeout: float | None = None,
    ):
        self.allowed_hosts = [
            host.lower() for host in (allowed_hosts if allowed_hosts is not None else settings.SHOPEE_ALLOWED_HOSTS)
        ]
        self._client = client or self._create_client(timeout or settings.SHOPEE_API_TIMEOUT)

    def _create_client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _check_target(self, url: str) -> None:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or host not in self.allowed_hosts:
            raise ShopeeProxyNotAllowedError(f"Proxy target not allowed: {host or url}")

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Shopee API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Shopee API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Shopee API retry loop exhausted")

    async def proxy(
        self,
        url: str,
        method: str | None = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
    ) -> dict[str, Any]:
        """
        Forward one request and return the decoded JSON body.

        Raises:
            ShopeeProxyNotAllowedError: URL host is not allowed
            ShopeeApiError: upstream answered with a non-2xx status
        """
        self._check_target(url)
        request_method = (method or "GET").upper()

        response = await self._request_with_retry(
            request_method,
            url,
            headers=sanitize_headers(headers),
            json=data,
        )

        if not response.is_success:
            body = response.text or ""
            auth_error = is_auth_failure(response.status_code, body)
            logger.error(
                "Shopee API request failed",
                status_code=response.status_code,
                is_auth_error=auth_error,
                response_text=body[:200],
            )
            raise ShopeeApiError(
                f"External API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                details=body,
                is_auth_error=auth_error,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("Shopee API returned non-JSON body", error=str(e))
            raise ShopeeApiError(
                "Invalid response format from external API",
                status_code=response.status_code,
                details=(response.text or "")[:500],
            ) from e
