"""Async client for the Notion REST API."""

from __future__ import annotations

import random
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from .config import ClientConfig, RequestSpec, RetryPolicy
from .errors import ConfigurationError
from .retry import RandFn, SleepFn, call_with_retry
from .transport import ApiResponse, Transport
from .upload import FileRef, Uploader, UploadSession


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigurationError(f"{name} is required")
    return value


class NotionClient:
    """Every logical operation goes Retry -> Transport; uploads go through ``Uploader``.

    The client holds no per-call state, so one instance can be shared by many
    concurrent tasks.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[SleepFn] = None,
        rand: RandFn = random.random,
    ) -> None:
        self._config = config
        self._transport = Transport(config, transport=transport)
        self._sleep = sleep
        self._rand = rand
        self._uploader = Uploader(self._transport, sleep=sleep, rand=rand)

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def uploader(self) -> Uploader:
        return self._uploader

    async def send(self, spec: RequestSpec) -> ApiResponse:
        policy = spec.retry or self._config.retry
        return await call_with_retry(
            lambda: self._transport.send(spec),
            policy,
            label=spec.describe(),
            sleep=self._sleep,
            rand=self._rand,
        )

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> Any:
        spec = RequestSpec(
            method,
            path,
            body=body,
            params=params,
            headers=headers,
            timeout=timeout,
            retry=retry,
        )
        response = await self.send(spec)
        return response.data

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, body, **kwargs)

    async def patch(self, path: str, body: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    # Databases

    async def get_database(self, database_id: str) -> Dict[str, Any]:
        return await self.get(f"/v1/databases/{_require(database_id, 'database_id')}")

    async def query_database(
        self,
        database_id: str,
        *,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        page_size: Optional[int] = None,
        start_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts
        if page_size is not None:
            body["page_size"] = page_size
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self.post(f"/v1/databases/{_require(database_id, 'database_id')}/query", body)

    # Pages

    async def get_page(self, page_id: str) -> Dict[str, Any]:
        return await self.get(f"/v1/pages/{_require(page_id, 'page_id')}")

    async def create_page(self, page: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("/v1/pages", page)

    async def update_page(self, page_id: str, page: Dict[str, Any]) -> Dict[str, Any]:
        return await self.patch(f"/v1/pages/{_require(page_id, 'page_id')}", page)

    async def delete_page(self, page_id: str) -> Dict[str, Any]:
        return await self.delete(f"/v1/pages/{_require(page_id, 'page_id')}")

    # Blocks

    async def get_block(self, block_id: str) -> Dict[str, Any]:
        return await self.get(f"/v1/blocks/{_require(block_id, 'block_id')}")

    async def get_block_children(
        self,
        block_id: str,
        *,
        page_size: Optional[int] = 100,
        start_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if page_size:
            params["page_size"] = page_size
        if start_cursor:
            params["start_cursor"] = start_cursor
        return await self.get(f"/v1/blocks/{_require(block_id, 'block_id')}/children", params=params)

    async def append_block_children(self, block_id: str, children: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post(f"/v1/blocks/{_require(block_id, 'block_id')}/children", children)

    async def update_block(self, block_id: str, block: Dict[str, Any]) -> Dict[str, Any]:
        return await self.patch(f"/v1/blocks/{_require(block_id, 'block_id')}", block)

    async def delete_block(self, block_id: str) -> Dict[str, Any]:
        return await self.delete(f"/v1/blocks/{_require(block_id, 'block_id')}")

    # Search and users

    async def search(
        self,
        query: str = "",
        *,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[Dict[str, Any]] = None,
        page_size: int = 100,
        start_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": query, "page_size": page_size}
        if filter:
            body["filter"] = filter
        if sort:
            body["sort"] = sort
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self.post("/v1/search", body)

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        return await self.get(f"/v1/users/{_require(user_id, 'user_id')}")

    async def list_users(self) -> Dict[str, Any]:
        return await self.get("/v1/users")

    # File uploads

    async def create_file_upload(self) -> UploadSession:
        return await self._uploader.allocate_upload_slot()

    async def send_file_upload(
        self,
        session: UploadSession,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> FileRef:
        return await self._uploader.send_bytes(session, data, filename, content_type)

    async def upload_bytes(self, data: bytes, filename: str, content_type: Optional[str] = None) -> FileRef:
        return await self._uploader.upload_bytes(data, filename, content_type)

    async def upload_from_url(
        self,
        url: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        **kwargs: Any,
    ) -> FileRef:
        return await self._uploader.upload_from_url(url, filename, content_type, **kwargs)

    async def upload_from_source(
        self,
        source: Union[bytes, bytearray, str],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> FileRef:
        return await self._uploader.upload_from_source(source, filename, content_type)

    async def close(self) -> None:
        await self._transport.close()


__all__ = ["NotionClient"]
