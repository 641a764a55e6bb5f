"""OAuth client-credentials token cache."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# Returns (access_token, expires_in_seconds)
TokenFetcher = Callable[[], Awaitable[Tuple[str, float]]]


@dataclass
class CachedToken:
    value: str
    expires_at: float


class OAuthTokenCache:
    """
    Holds one access token with its expiry and refreshes it lazily.

    A token is reused until ``refresh_skew_seconds`` before it expires.
    Concurrent callers share a single refresh. ``clock`` must be monotonic
    and is injectable so tests can move time.
    """

    def __init__(
        self,
        fetch_token: TokenFetcher,
        clock: Callable[[], float] = time.monotonic,
        refresh_skew_seconds: float = 60,
    ):
        self._fetch_token = fetch_token
        self._clock = clock
        self._refresh_skew = refresh_skew_seconds
        self._token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self, token: Optional[CachedToken]) -> bool:
        return token is not None and self._clock() < token.expires_at - self._refresh_skew

    @property
    def expires_at(self) -> Optional[float]:
        return self._token.expires_at if self._token else None

    async def get_token(self) -> str:
        token = self._token
        if self._is_fresh(token):
            return token.value

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self._is_fresh(self._token):
                return self._token.value
            value, expires_in = await self._fetch_token()
            self._token = CachedToken(value=value, expires_at=self._clock() + float(expires_in))
            logger.debug(f"Fetched carrier access token, expires in {expires_in}s")
            return value

    def invalidate(self) -> None:
        self._token = None
