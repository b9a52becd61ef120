"""CSRF token and session cookies for the reservation API.

The token is scraped from the public reservation landing page and cached for
``ttl`` seconds. Callers receive an AuthContext to attach to each request.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from cachetools import TLRUCache

from courtcal.models import AuthContext
from courtcal.utils.dates import iso_timestamp, utc_now
from courtcal.utils.http import HttpClient, HttpError

logger = logging.getLogger(__name__)

_KEY = "auth"

SAMPLE_TOKEN_TTL = 3600

_TOKEN_PATTERNS = (
    re.compile(r"csrfToken\s*[:=]\s*[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<meta\s+name=[\"']_csrf[\"']\s+content=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<input[^>]*name=[\"']_csrf[\"'][^>]*value=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"data-csrf-token=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"_csrf[\"']\s*:\s*[\"']([^\"']+)[\"']", re.IGNORECASE),
)

_SESSION_COOKIE_MARKERS = ("JSESSIONID", "mesaaz", "BIGip", "TS0")

_PAGE_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass(frozen=True)
class _CachedAuth:
    auth: AuthContext
    ttl: float
    expires_at: datetime


@dataclass
class TokenResult:
    success: bool
    auth: AuthContext | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.success or self.auth is None:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "hasToken": bool(self.auth.token),
            "hasSessionCookies": bool(self.auth.session_cookies),
            "source": self.auth.source,
        }


def extract_csrf_token(html: str) -> str | None:
    for pattern in _TOKEN_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def session_cookie_header(set_cookie_headers: list[str]) -> str:
    """Keep the session-related ``name=value`` pairs as one Cookie header."""
    pairs = []
    for header in set_cookie_headers:
        name_value = header.split(";", 1)[0].strip()
        if any(marker in name_value for marker in _SESSION_COOKIE_MARKERS):
            pairs.append(name_value)
    return "; ".join(pairs)


class TokenProvider:
    def __init__(self, http: HttpClient, base_url: str, ttl: int = 1800) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._ttl = ttl
        self._cache: TLRUCache = TLRUCache(
            maxsize=1, ttu=lambda _key, value, now: now + value.ttl
        )

    @property
    def landing_url(self) -> str:
        return f"{self._base_url}/reservation/landing/quick?locale=en-US&groupId=5"

    def is_token_valid(self) -> bool:
        return _KEY in self._cache

    async def get_valid_token(self, force_refresh: bool = False) -> TokenResult:
        cached = self._cache.get(_KEY)
        if cached is not None and not force_refresh:
            logger.debug("Using cached CSRF token")
            return TokenResult(success=True, auth=cached.auth)

        logger.info(
            "Fetching new CSRF token (%s)",
            "forced refresh" if force_refresh else "token expired/missing",
        )
        return await self.fetch_token()

    async def fetch_token(self) -> TokenResult:
        try:
            html, cookies = await self._http.get_page(self.landing_url, headers=_PAGE_HEADERS)
        except HttpError as exc:
            logger.error("Failed to fetch CSRF token: %s", exc)
            return TokenResult(success=False, error=str(exc))

        session_cookies = session_cookie_header(cookies) or None
        token = extract_csrf_token(html)
        source = "html"
        if token is None:
            logger.warning("CSRF token not found in page, trying token endpoint")
            token = await self._token_from_endpoint()
            source = "alternative"
        if token is None:
            return TokenResult(success=False, error="CSRF token not found in page content")

        auth = AuthContext(token=token, session_cookies=session_cookies, source=source)
        self._store(auth, self._ttl)
        logger.info(
            "Obtained CSRF token from %s (length=%d, cookies=%s)",
            source, len(token), bool(session_cookies),
        )
        return TokenResult(success=True, auth=auth)

    def use_sample_token(self, token: str, session_cookies: str | None = None) -> None:
        """Install a manually supplied token, valid for one hour."""
        self._store(AuthContext(token=token, session_cookies=session_cookies, source="sample"),
                    SAMPLE_TOKEN_TTL)
        logger.info("Using provided sample CSRF token (length=%d)", len(token))

    def clear(self) -> None:
        self._cache.clear()
        logger.info("Cleared CSRF token and session")

    def status(self) -> dict[str, Any]:
        cached = self._cache.get(_KEY)
        if cached is None:
            return {
                "hasToken": False,
                "hasSessionCookies": False,
                "isValid": False,
                "expiresAt": None,
                "tokenPreview": None,
            }
        return {
            "hasToken": bool(cached.auth.token),
            "hasSessionCookies": bool(cached.auth.session_cookies),
            "isValid": True,
            "expiresAt": iso_timestamp(cached.expires_at),
            "tokenPreview": f"{cached.auth.token[:8]}..." if cached.auth.token else None,
        }

    def _store(self, auth: AuthContext, ttl: float) -> None:
        expires_at = utc_now() + timedelta(seconds=ttl)
        self._cache[_KEY] = _CachedAuth(auth=auth, ttl=ttl, expires_at=expires_at)

    async def _token_from_endpoint(self) -> str | None:
        url = f"{self._base_url}/rest/reservation/quickreservation/token"
        try:
            data = await self._http.get_json(
                url,
                headers={
                    "Accept": "application/json, text/plain, */*",
                    "X-Requested-With": "XMLHttpRequest",
                },
            )
        except HttpError as exc:
            logger.warning("Token endpoint failed: %s", exc)
            return None
        if isinstance(data, dict) and data.get("token"):
            return str(data["token"])
        return None
