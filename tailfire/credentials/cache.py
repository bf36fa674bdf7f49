"""
In-memory credential cache with optional time-to-live.

One instance is owned by the credential store (5-minute TTL, database-backed
credentials) and one by the resolver (no TTL, environment credentials).
Entries live in this process only; nothing is persisted.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedCredential:
    provider: str
    credentials: dict[str, Any]
    cached_at: float


class CredentialCache:
    """Thread-safe provider -> credentials map.

    ``ttl_seconds=None`` keeps entries until they are invalidated.
    ``clock`` is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CachedCredential] = {}
        self._lock = threading.Lock()

    def get(self, provider: str) -> dict[str, Any] | None:
        entry = self._entries.get(provider)
        if entry is None:
            return None
        if self.ttl_seconds is not None and self._clock() - entry.cached_at >= self.ttl_seconds:
            with self._lock:
                # Only drop it if nobody replaced it meanwhile
                if self._entries.get(provider) is entry:
                    del self._entries[provider]
            return None
        return dict(entry.credentials)

    def set(self, provider: str, credentials: dict[str, Any]) -> None:
        entry = CachedCredential(provider, dict(credentials), self._clock())
        with self._lock:
            self._entries[provider] = entry

    def invalidate(self, provider: str | None = None) -> None:
        """Drop one provider's entry, or everything when ``provider`` is None."""
        with self._lock:
            if provider is None:
                self._entries.clear()
            else:
                self._entries.pop(provider, None)
        logger.debug("Invalidated credential cache: %s", provider or "<all>")

    def __contains__(self, provider: str) -> bool:
        return self.get(provider) is not None

    def __len__(self) -> int:
        return len(self._entries)
