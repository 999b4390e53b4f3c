from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from app.config import settings
from app.core.logging import get_logger

logger = get_logger()

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome Safari"
)


class BaseScraperService:
    """
    Shared HTTP client management for page fetching.

    Provides the AsyncClient lifecycle, retry with exponential backoff and a
    concurrency bound. Event page extraction and the managed extraction
    client both build on it.
    """

    def __init__(
        self,
        *,
        user_agent: str = BROWSER_USER_AGENT,
        timeout_s: Optional[float] = None,
        max_concurrency: int = 5,
        max_retries: Optional[int] = None,
        backoff_s: float = 1.0,
    ) -> None:
        """
        Args:
            user_agent: User-Agent header sent with every request
            timeout_s: Per-request timeout in seconds (FETCH_TIMEOUT_S by default)
            max_concurrency: Maximum concurrent requests (semaphore limit)
            max_retries: Retry attempts after the first failure (FETCH_MAX_RETRIES by default)
            backoff_s: First retry delay; doubles per attempt, capped at 10s
        """
        self.user_agent = user_agent
        self.timeout_s = timeout_s if timeout_s is not None else settings.FETCH_TIMEOUT_S
        self.max_concurrency = max(1, max_concurrency)
        self.max_retries = max(0, max_retries if max_retries is not None else settings.FETCH_MAX_RETRIES)
        self.backoff_s = max(0.0, backoff_s)
        self._client: Optional[httpx.AsyncClient] = None
        self._sem = asyncio.Semaphore(self.max_concurrency)

    async def __aenter__(self) -> "BaseScraperService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout_s,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")
        return self._client

    async def fetch(self, url: str) -> httpx.Response:
        """
        Fetch URL with retry logic and concurrency control.

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        client = self.client

        attempt = 0
        delay = self.backoff_s
        last_exc: Optional[Exception] = None

        while attempt <= self.max_retries:
            try:
                async with self._sem:
                    response = await client.get(url)
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                attempt += 1
                logger.info("fetch_attempt_failed", url=url, attempt=attempt, error=str(exc))
                if attempt > self.max_retries:
                    break
                await asyncio.sleep(delay)
                delay = min(delay * 2, 10)

        assert last_exc is not None
        raise last_exc

    async def fetch_html(self, url: str) -> str:
        response = await self.fetch(url)
        return response.text
