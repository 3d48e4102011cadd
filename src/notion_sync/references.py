"""Choose between an inline external reference and a full upload for a file URL."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .client import NotionClient
from .errors import ConfigurationError
from .upload import external_file_object, filename_from_url

logger = logging.getLogger(__name__)

ShortenFn = Callable[[str], Union[Optional[str], Awaitable[Optional[str]]]]


@dataclass(frozen=True)
class Shortener:
    name: str
    fn: ShortenFn
    is_async: bool = False


class ReferenceResolver:
    """Prefers inline references; shorteners next; upload as the last resort."""

    def __init__(self, client: NotionClient, *, limit: Optional[int] = None) -> None:
        self._client = client
        self._limit = limit if limit is not None else client.config.inline_reference_limit
        if self._limit < 1:
            raise ConfigurationError(f"inline reference limit must be positive, got {self._limit}")
        self._shorteners: List[Shortener] = []

    @property
    def limit(self) -> int:
        return self._limit

    def register(self, name: str, fn: ShortenFn, *, is_async: bool = False) -> None:
        self._shorteners.append(Shortener(name=name, fn=fn, is_async=is_async))

    def fits(self, reference: Optional[str]) -> bool:
        return bool(reference) and len(reference) <= self._limit  # type: ignore[arg-type]

    async def _shorten(self, shortener: Shortener, url: str) -> Optional[str]:
        if shortener.is_async:
            result = await shortener.fn(url)  # type: ignore[misc]
        else:
            # Sync shorteners may block on I/O; keep them off the event loop.
            result = await asyncio.to_thread(shortener.fn, url)
            if inspect.iscoroutine(result):
                result.close()
                raise TypeError("returned a coroutine; register it with is_async=True")
        if result is not None and not isinstance(result, str):
            raise TypeError(f"returned {type(result).__name__}, expected a URL string")
        return result

    async def resolve(self, url: str, name: Optional[str] = None) -> Dict[str, Any]:
        if self.fits(url):
            return external_file_object(url, name)
        for shortener in self._shorteners:
            try:
                shortened = await self._shorten(shortener, url)
            except Exception as exc:
                logger.warning("Shortener %s failed for url=%s: %s", shortener.name, url, exc)
                continue
            if shortened is not None and self.fits(shortened):
                logger.info("Shortener %s produced %s", shortener.name, shortened)
                return external_file_object(shortened, name or filename_from_url(url))
            logger.info("Shortener %s result still exceeds %s chars", shortener.name, self._limit)
        logger.info("Reference exceeds %s chars, uploading url=%s", self._limit, url)
        ref = await self._client.upload_from_url(url)
        return ref.as_file_object(name)


__all__ = ["ReferenceResolver", "Shortener"]
