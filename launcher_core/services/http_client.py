"""HTTP client service with retry logic and rate limiting."""

import asyncio
import time
from pathlib import Path
from typing import Any

import httpx
import structlog

from .cancellation import CancellationToken

log = structlog.stdlib.get_logger()


class HttpClientService:
    """HTTP client service with retry logic, rate limiting, and timeout handling."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        rate_limit_delay: float = 0.0,
        user_agent: str = "launcher-core/0.1.0",
        transport: httpx.AsyncBaseTransport | None = None,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            base_delay: Base delay for exponential backoff in seconds
            max_delay: Maximum delay between retries in seconds
            rate_limit_delay: Minimum delay between requests in seconds
            user_agent: User-Agent header sent with every request
            transport: Optional transport override (tests use httpx.MockTransport)
            verify_ssl: Whether to verify SSL certificates
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0.0

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=64),
            transport=transport,
            verify=verify_ssl,
        )

        log.info(
            "HTTP client service initialized",
            timeout=timeout,
            max_retries=max_retries,
            rate_limit_delay=rate_limit_delay,
        )

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        """Transport failures, 429 and 5xx are retried; other 4xx are not."""
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return status == 429 or status >= 500
        return isinstance(error, httpx.RequestError)

    def _retry_delay(self, error: Exception, attempt: int) -> float:
        if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429:
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    return min(float(retry_after), self.max_delay)
                except ValueError:
                    pass
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> httpx.Response:
        """Make a GET request with retry logic and rate limiting.

        Raises:
            httpx.HTTPStatusError: On a non-retryable status or after all retries
            httpx.RequestError: On transport failure after all retries
            OperationCancelledError: If the token is cancelled before an attempt
        """
        for attempt in range(self.max_retries + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            await self._enforce_rate_limit()

            try:
                log.debug("Making HTTP GET request", url=url, attempt=attempt + 1)
                response = await self._client.get(url, headers=headers, params=params)
                response.raise_for_status()
                log.debug("HTTP GET request successful", url=url, status_code=response.status_code)
                return response

            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                log.warning(
                    "HTTP GET request failed",
                    url=url,
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if not self._is_retryable(e) or attempt == self.max_retries:
                    raise
                delay = self._retry_delay(e, attempt)
                log.info("Retrying after delay", url=url, delay=delay)
                await asyncio.sleep(delay)

        raise RuntimeError("Unexpected end of retry loop")

    async def get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Any:
        """GET a URL and decode its JSON body (ValueError on malformed JSON)."""
        response = await self.get(url, params=params, cancel_token=cancel_token)
        return response.json()

    async def download_file(
        self,
        url: str,
        path: Path,
        cancel_token: CancellationToken | None = None,
        chunk_size: int = 65536,
    ) -> int:
        """Stream a URL to a local file, returning the number of bytes written.

        The partial file is removed on any failure, including cancellation.

        Raises:
            httpx.HTTPError: If all retry attempts fail
            OSError: If the file cannot be written
            OperationCancelledError: If the token is cancelled mid-transfer
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        for attempt in range(self.max_retries + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            await self._enforce_rate_limit()

            try:
                log.debug("Starting file download", url=url, path=str(path), attempt=attempt + 1)
                downloaded = 0
                async with self._client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size):
                            if cancel_token is not None:
                                cancel_token.raise_if_cancelled()
                            f.write(chunk)
                            downloaded += len(chunk)

                log.debug("File download completed", url=url, path=str(path), size=downloaded)
                return downloaded

            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                path.unlink(missing_ok=True)
                log.warning(
                    "File download failed",
                    url=url,
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if not self._is_retryable(e) or attempt == self.max_retries:
                    raise
                delay = self._retry_delay(e, attempt)
                log.info("Retrying download after delay", url=url, delay=delay)
                await asyncio.sleep(delay)
            except BaseException:
                path.unlink(missing_ok=True)
                raise

        raise RuntimeError("Unexpected end of retry loop")

    async def _enforce_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit_delay <= 0:
            return
        time_since_last = time.monotonic() - self._last_request_time
        if time_since_last < self.rate_limit_delay:
            await asyncio.sleep(self.rate_limit_delay - time_since_last)
        self._last_request_time = time.monotonic()

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._client.aclose()
        log.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()
