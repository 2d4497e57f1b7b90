"""Bearer-token cache shared by all requests to one provider.

Holds ``{token, expires_at}`` explicitly and guards refresh with an
asyncio.Lock, so concurrent callers that find the token expired collapse
into a single outstanding authentication call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

log = logging.getLogger("shortstay.providers.token_cache")


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # monotonic seconds

    def is_valid(self, now: float) -> bool:
        return bool(self.token) and now < self.expires_at


# Returns (access_token, expires_in_seconds)
Fetcher = Callable[[], Awaitable[tuple[str, float]]]


class TokenCache:
    """Caches a bearer token until its expiry minus ``margin`` seconds."""

    def __init__(
        self,
        fetch: Fetcher,
        margin: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._margin = margin
        self._clock = clock
        self._current: AccessToken | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> str:
        """Return a valid token, authenticating at most once per expiry."""
        cached = self._current
        if cached and cached.is_valid(self._clock()):
            return cached.token

        async with self._lock:
            # Another waiter may have refreshed while we queued on the lock
            cached = self._current
            if cached and cached.is_valid(self._clock()):
                return cached.token

            token, expires_in = await self._fetch()
            lifetime = max(float(expires_in) - self._margin, 0.0)
            self._current = AccessToken(token=token, expires_at=self._clock() + lifetime)
            log.info("Access token refreshed (valid for %.0fs)", lifetime)
            return token

    def invalidate(self) -> None:
        self._current = None
