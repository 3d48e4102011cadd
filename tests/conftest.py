from __future__ import annotations

from typing import Any, Callable, List

import httpx
import pytest

from notion_sync.client import NotionClient
from notion_sync.config import ClientConfig, RetryPolicy


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def make_client(sleeps: SleepRecorder) -> Callable[..., NotionClient]:
    def factory(handler: Callable[[httpx.Request], Any], **overrides: Any) -> NotionClient:
        options = dict(
            token="secret-token",
            base_url="https://api.example.com",
            retry=RetryPolicy(max_attempts=3, base_interval=1.0, factor=3.0, jitter=0.0),
        )
        options.update(overrides)
        client = NotionClient(
            ClientConfig(**options),
            transport=httpx.MockTransport(handler),
            sleep=sleeps,
            rand=lambda: 0.0,
        )
        return client

    return factory
