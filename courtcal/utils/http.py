"""aiohttp session owner with retry and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

_BACKOFF_BASE = 2.0

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
)


class HttpError(Exception):
    """Transport failure or non-success HTTP status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class HttpClient:
    def __init__(self, timeout: float = 15.0, retries: int = 1) -> None:
        self.timeout = timeout
        self.retries = max(1, retries)
        self._session: aiohttp.ClientSession | None = None

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST a JSON body and return the parsed JSON response."""

        async def call(session: aiohttp.ClientSession) -> Any:
            async with session.post(url, json=payload, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

        return await self._with_retries(url, call)

    async def get_page(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> tuple[str, list[str]]:
        """GET a page; returns its text and the raw ``Set-Cookie`` headers."""

        async def call(session: aiohttp.ClientSession) -> tuple[str, list[str]]:
            async with session.get(url, headers=headers, max_redirects=5) as resp:
                resp.raise_for_status()
                return await resp.text(), resp.headers.getall("Set-Cookie", [])

        return await self._with_retries(url, call)

    async def get_json(self, url: str, *, headers: dict[str, str] | None = None) -> Any:
        async def call(session: aiohttp.ClientSession) -> Any:
            async with session.get(url, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

        return await self._with_retries(url, call)

    async def _with_retries(self, url: str, call: Any) -> Any:
        session = await self.get_session()
        last_exc: HttpError | None = None

        for attempt in range(1, self.retries + 1):
            try:
                return await call(session)
            except asyncio.TimeoutError:
                last_exc = HttpError(f"Request timeout after {self.timeout:g}s")
            except aiohttp.ClientResponseError as exc:
                last_exc = HttpError(f"API returned {exc.status}: {exc.message}", exc.status)
                if exc.status < 500:
                    break
            except aiohttp.ClientError as exc:
                last_exc = HttpError(f"Network error: {exc}")
            except ValueError as exc:
                last_exc = HttpError(f"Invalid JSON response: {exc}")
                break

            if attempt < self.retries:
                wait = _BACKOFF_BASE**attempt
                logger.warning(
                    "%s attempt %d/%d failed: %s, retrying in %.0fs",
                    url, attempt, self.retries, last_exc, wait,
                )
                await asyncio.sleep(wait)

        logger.error("%s failed after %d attempt(s): %s", url, self.retries, last_exc)
        raise last_exc  # type: ignore[misc]

