"""Cursor pagination and a fixed-width worker pool for batch drivers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from .models import PaginatedList

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

MAX_CONCURRENCY = 10


async def paginate(fetch: Callable[[Optional[str]], Awaitable[Dict[str, Any]]]) -> AsyncIterator[Dict[str, Any]]:
    """Yield every result across pages, following ``has_more``/``next_cursor``.

    ``fetch`` receives the cursor (``None`` for the first page)::

        async for page in paginate(lambda cursor: client.query_database(db_id, start_cursor=cursor)):
            ...
    """
    cursor: Optional[str] = None
    while True:
        page = PaginatedList.model_validate(await fetch(cursor))
        for item in page.results:
            yield item
        if not page.has_more or not page.next_cursor:
            return
        cursor = page.next_cursor


@dataclass
class BatchReport(Generic[T, R]):
    succeeded: List[Tuple[T, R]] = field(default_factory=list)
    failed: List[Tuple[T, BaseException]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _record_id(item: Any) -> str:
    if isinstance(item, dict) and item.get("id"):
        return str(item["id"])
    return repr(item)


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    concurrency: int = 5,
    record_id: Callable[[T], str] = _record_id,
) -> BatchReport[T, R]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    A failing record is logged and collected; it never cancels its siblings.
    """
    width = max(1, min(concurrency, MAX_CONCURRENCY))
    semaphore = asyncio.Semaphore(width)
    report: BatchReport[T, R] = BatchReport()

    async def run_one(item: T) -> None:
        async with semaphore:
            try:
                result = await worker(item)
            except Exception as exc:
                logger.error("record=%s failed: %s", record_id(item), exc)
                report.failed.append((item, exc))
                return
            report.succeeded.append((item, result))

    await asyncio.gather(*(run_one(item) for item in items))
    logger.info("batch done ok=%s failed=%s", len(report.succeeded), len(report.failed))
    return report


__all__ = ["BatchReport", "MAX_CONCURRENCY", "paginate", "run_bounded"]
