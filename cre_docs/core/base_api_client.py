"""Shared HTTP client logic for the hosted model APIs."""

import asyncio
from typing import Any, Dict, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from cre_docs.core.exceptions import (
    APIClientError,
    APITimeoutError,
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    UpstreamServerError,
)
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseAPIClient:
    """Base client for remote API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    status-code mapping and error logging. Subclasses provide the
    authentication headers.
    """

    service_name = "API"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        """Initialize the client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Total number of attempts per call
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.logger = LOGGER

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError(f"{self.service_name} API key is not configured")

    async def call_api(
        self,
        endpoint: str = "",
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Call the API with retry logic.

        Args:
            endpoint: API endpoint (appended to base_url)
            method: HTTP method (POST, GET, etc.)
            payload: JSON payload, or query params for GET
            headers: Additional headers
            files: Multipart files; sent instead of a JSON body
            data: Multipart form fields sent alongside ``files``

        Returns:
            Parsed JSON response

        Raises:
            ConfigurationError: If no API key is configured
            AuthenticationError: On 401/403, without retrying
            APIClientError: On other 4xx responses, without retrying
            RateLimitError: If 429 persists after all attempts
            UpstreamServerError: If 5xx persists after all attempts
            APITimeoutError: If the call keeps timing out
        """
        self._ensure_configured()
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = self._auth_headers()
        if files is None:
            default_headers["Content-Type"] = "application/json"
        if headers:
            default_headers.update(headers)

        self.logger.debug(
            f"Calling {self.service_name}: {url}",
            extra={"method": method, "timeout": self.timeout}
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    if method.upper() == "GET":
                        response = await client.get(url, headers=default_headers, params=payload)
                    elif files is not None:
                        response = await client.post(url, headers=default_headers, files=files, data=data)
                    else:
                        response = await client.request(
                            method.upper(), url, headers=default_headers, json=payload
                        )

                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.RequestError as e:
                    await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call {self.service_name} {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Map HTTP status errors onto the error hierarchy."""
        status_code = error.response.status_code

        try:
            error_body = error.response.text
        except (httpx.ResponseNotRead, UnicodeDecodeError):
            error_body = "Could not read response body"

        self.logger.warning(
            f"{self.service_name} HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        if status_code in (401, 403):
            raise AuthenticationError(
                f"{self.service_name} authentication failed. Please check your API key.",
                status_code=status_code,
                original_error=error,
            ) from error

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(
                f"{self.service_name} client error {status_code}: {error_body[:500]}",
                status_code=status_code,
                original_error=error,
            ) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
            return

        if status_code == 429:
            raise RateLimitError(
                f"{self.service_name} rate limit exceeded. Please try again later.",
                status_code=status_code,
                original_error=error,
            ) from error
        raise UpstreamServerError(
            f"{self.service_name} server error. Please try again later.",
            status_code=status_code,
            original_error=error,
        ) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"{self.service_name} timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(
                f"{self.service_name} timed out after {self.max_retries} attempts",
                original_error=error,
            ) from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        """Handle transport errors such as refused connections."""
        self.logger.warning(
            f"{self.service_name} transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(
                f"{self.service_name} error: {str(error)}", original_error=error
            ) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)
