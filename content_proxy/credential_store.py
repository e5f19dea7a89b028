"""
Cached Authorization value for upstream content requests.
Static value is returned verbatim; client-credentials tokens are refreshed REFRESH_SKEW_SECONDS before expiry.
One instance per app; refreshes are serialized so concurrent stale reads cause a single token request.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from content_proxy.config import (
    AUTH_SOURCE_CLIENT_CREDENTIALS,
    AUTH_SOURCE_STATIC,
    REFRESH_SKEW_SECONDS,
    ContentSettings,
)
from content_proxy.credential_provider import BearerToken, fetch_bearer_token

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[BearerToken]]


class CredentialStore:
    def __init__(
        self,
        *,
        static_value: str | None = None,
        fetch_token: TokenFetcher | None = None,
        refresh_skew: float = REFRESH_SKEW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._static_value = static_value
        self._fetch_token = fetch_token
        self._refresh_skew = refresh_skew
        self._clock = clock
        self._lock = asyncio.Lock()
        self.current_value: str | None = None
        self.expires_at: float | None = None

    @classmethod
    def from_settings(cls, settings: ContentSettings, client: httpx.AsyncClient) -> "CredentialStore":
        """Store for the settings' active credential source (none, static, or client credentials)."""
        if settings.auth_source == AUTH_SOURCE_STATIC:
            return cls(static_value=settings.static_auth_value)
        if settings.auth_source == AUTH_SOURCE_CLIENT_CREDENTIALS:

            async def fetch() -> BearerToken:
                return await fetch_bearer_token(
                    client,
                    settings.client_id,
                    settings.client_secret,
                    settings.client_scope_url,
                    settings.identity_service_url,
                )

            return cls(fetch_token=fetch)
        return cls()

    @property
    def auth_required(self) -> bool:
        return self._static_value is not None or self._fetch_token is not None

    def is_valid(self) -> bool:
        """True while the cached token is set and now < expires_at - skew."""
        if not self.current_value or self.expires_at is None:
            return False
        return self._clock() < self.expires_at - self._refresh_skew

    def invalidate(self) -> None:
        """Drop the cached token; the next call fetches a new one."""
        self.current_value = None
        self.expires_at = None

    async def get_authorization_value(self) -> str | None:
        """
        Current Authorization header value, or None when no auth is configured.
        Fetches a new token when the cached one is missing or stale. Provider errors propagate;
        the cached state is left as it was.
        """
        if self._static_value is not None:
            return self._static_value
        if self._fetch_token is None:
            return None

        if self.is_valid():
            logger.debug("Using cached bearer token")
            return self.current_value

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.is_valid():
                return self.current_value
            token = await self._fetch_token()
            self.current_value = token.header_value
            self.expires_at = self._clock() + token.expires_in
            logger.info("Bearer token refreshed (expires_in=%ss)", token.expires_in)
            return self.current_value
