"""Access-token cache with pluggable storage."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SKEW = 300.0

FetchFn = Callable[[], Awaitable[Tuple[str, float]]]


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: float

    def valid_at(self, now: float, skew: float = 0.0) -> bool:
        return self.expires_at > now + skew


class TokenStore(Protocol):
    def get(self, scope: str) -> Optional[CachedToken]: ...

    def put(self, scope: str, token: CachedToken) -> None: ...

    def invalidate(self, scope: str) -> None: ...


class MemoryTokenStore:
    def __init__(self) -> None:
        self._tokens: Dict[str, CachedToken] = {}

    def get(self, scope: str) -> Optional[CachedToken]:
        return self._tokens.get(scope)

    def put(self, scope: str, token: CachedToken) -> None:
        self._tokens[scope] = token

    def invalidate(self, scope: str) -> None:
        self._tokens.pop(scope, None)


class FileTokenStore:
    """JSON file keyed by scope. A corrupt file is treated as empty."""

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable token cache path=%s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, dict]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, scope: str) -> Optional[CachedToken]:
        with self._lock:
            entry = self._load().get(scope)
        if not isinstance(entry, dict):
            return None
        try:
            return CachedToken(access_token=str(entry["access_token"]), expires_at=float(entry["expires_at"]))
        except (KeyError, TypeError, ValueError):
            return None

    def put(self, scope: str, token: CachedToken) -> None:
        with self._lock:
            data = self._load()
            data[scope] = asdict(token)
            self._save(data)

    def invalidate(self, scope: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(scope, None) is not None:
                self._save(data)


class TokenCache:
    def __init__(
        self,
        store: TokenStore,
        *,
        skew: float = DEFAULT_EXPIRY_SKEW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._skew = skew
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get_token(self, scope: str, fetch: FetchFn) -> str:
        """Return a cached token for ``scope``, fetching a new one if it is missing or about to expire.

        ``fetch`` returns ``(access_token, expires_in_seconds)``.
        """
        async with self._lock:
            cached = self._store.get(scope)
            if cached is not None and cached.valid_at(self._clock(), self._skew):
                return cached.access_token
            if cached is not None:
                logger.info("Cached token expired scope=%s", scope)
            access_token, expires_in = await fetch()
            token = CachedToken(access_token=access_token, expires_at=self._clock() + float(expires_in))
            self._store.put(scope, token)
            logger.info("Fetched new token scope=%s expires_in=%s", scope, expires_in)
            return access_token

    def invalidate(self, scope: str) -> None:
        self._store.invalidate(scope)


__all__ = ["CachedToken", "FileTokenStore", "MemoryTokenStore", "TokenCache", "TokenStore"]
