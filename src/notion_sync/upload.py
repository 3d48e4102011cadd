"""Three-step file upload: allocate a slot, send the bytes, reference the result."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from urllib.parse import unquote, urlsplit

from pydantic import ValidationError

from .config import MultipartFile, RequestSpec, RetryPolicy
from .errors import (
    AllocationError,
    ConfigurationError,
    DownloadTimeout,
    DownloadTooLarge,
    EmptyDownload,
    RequestTimeout,
    UploadError,
    classify_status,
)
from .metrics import DOWNLOAD_BYTES, UPLOAD_BYTES
from .models import FileUploadObject
from .retry import RandFn, SleepFn, call_with_retry
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_FILENAME = "downloaded_file"

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
}

DOWNLOAD_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate",
    "User-Agent": "notion-sync/0.1.0",
}


def guess_content_type(name_or_url: str) -> str:
    path = urlsplit(name_or_url).path if "://" in name_or_url else name_or_url
    _, ext = posixpath.splitext(path.lower())
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def filename_from_url(url: str) -> str:
    segment = posixpath.basename(urlsplit(url).path)
    return unquote(segment) or DEFAULT_FILENAME


def external_file_object(url: str, name: Optional[str] = None) -> Dict[str, Any]:
    """File-property value for an inline reference (no upload)."""
    return {"type": "external", "name": name or filename_from_url(url), "external": {"url": url}}


@dataclass
class UploadSession:
    """An allocated upload slot. Single use: one ``send_bytes`` per session."""

    slot_id: str
    upload_url: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    source: Optional[str] = None
    consumed: bool = False


@dataclass(frozen=True)
class FileRef:
    id: str
    filename: str
    content_type: str
    size: int
    source: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def as_file_object(self, name: Optional[str] = None) -> Dict[str, Any]:
        return {"type": "file_upload", "name": name or self.filename, "file_upload": {"id": self.id}}


class Uploader:
    def __init__(
        self,
        transport: Transport,
        *,
        retry: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFn] = None,
        rand: RandFn = random.random,
    ) -> None:
        self._transport = transport
        self._config = transport.config
        self._retry = retry or self._config.retry
        self._sleep = sleep
        self._rand = rand

    async def allocate_upload_slot(self) -> UploadSession:
        spec = RequestSpec("POST", "/v1/file_uploads", body={})
        response = await call_with_retry(
            lambda: self._transport.send(spec),
            self._retry,
            label=spec.describe(),
            sleep=self._sleep,
            rand=self._rand,
        )
        try:
            slot = FileUploadObject.model_validate(response.data)
        except ValidationError as exc:
            raise AllocationError("upload slot response did not include an id", body=response.data) from exc
        logger.info("Allocated upload slot id=%s", slot.id)
        return UploadSession(slot_id=slot.id, upload_url=slot.upload_url)

    async def send_bytes(
        self,
        session: UploadSession,
        data: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> FileRef:
        """Send ``data`` to the slot. Never retried: a failed slot must be replaced."""
        if session.consumed:
            raise UploadError(f"upload slot {session.slot_id} was already used")
        session.consumed = True
        content_type = content_type or guess_content_type(filename)
        session.filename = filename
        session.content_type = content_type
        spec = RequestSpec(
            "POST",
            f"/v1/file_uploads/{session.slot_id}/send",
            timeout=self._config.upload_timeout,
            upload=MultipartFile(filename=filename, content=bytes(data), content_type=content_type),
        )
        response = await self._transport.send(spec)
        UPLOAD_BYTES.inc(len(data))
        file_id = response.data.get("id") if isinstance(response.data, dict) else None
        if not file_id:
            raise UploadError("upload response did not include a file id", body=response.data)
        logger.info("Uploaded file=%s bytes=%s file_id=%s", filename, len(data), file_id)
        return FileRef(
            id=file_id,
            filename=filename,
            content_type=content_type,
            size=len(data),
            source=session.source,
            raw=response.data,
        )

    async def upload_bytes(self, data: bytes, filename: str, content_type: Optional[str] = None) -> FileRef:
        session = await self.allocate_upload_slot()
        return await self.send_bytes(session, data, filename, content_type)

    async def download(
        self,
        url: str,
        *,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> bytes:
        limit = max_bytes or self._config.max_download_bytes
        budget = timeout or self._config.download_timeout
        try:
            data = await asyncio.wait_for(self._stream_download(url, limit, budget), budget)
        except asyncio.TimeoutError as exc:
            raise DownloadTimeout(f"download of {url} exceeded {budget}s") from exc
        except RequestTimeout as exc:
            raise DownloadTimeout(f"download of {url} timed out: {exc.message}") from exc
        DOWNLOAD_BYTES.inc(len(data))
        logger.debug("Downloaded url=%s bytes=%s", url, len(data))
        return data

    async def _stream_download(self, url: str, limit: int, budget: float) -> bytes:
        chunks = []
        total = 0
        async with self._transport.stream(url, headers=DOWNLOAD_HEADERS, timeout=budget) as response:
            if not 200 <= response.status_code < 300:
                raise classify_status(
                    response.status_code,
                    headers=response.headers,
                    reason=response.reason_phrase,
                    proxy_used=self._transport.proxy_used,
                )
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise DownloadTooLarge(limit, int(declared))
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > limit:
                    raise DownloadTooLarge(limit, total)
                chunks.append(chunk)
        if total == 0:
            raise EmptyDownload(f"download of {url} returned no bytes")
        return b"".join(chunks)

    async def upload_from_url(
        self,
        url: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        *,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> FileRef:
        if urlsplit(url).scheme not in ("http", "https"):
            raise ConfigurationError(f"Only http(s) sources can be downloaded: {url!r}")
        filename = filename or filename_from_url(url)
        content_type = content_type or guess_content_type(url)
        data = await self.download(url, max_bytes=max_bytes, timeout=timeout)
        session = await self.allocate_upload_slot()
        session.source = url
        return await self.send_bytes(session, data, filename, content_type)

    async def upload_from_source(
        self,
        source: Union[bytes, bytearray, str],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> FileRef:
        if isinstance(source, str):
            return await self.upload_from_url(source, filename, content_type)
        name = filename or DEFAULT_FILENAME
        return await self.upload_bytes(bytes(source), name, content_type or guess_content_type(name))


__all__ = [
    "CONTENT_TYPES",
    "DEFAULT_CONTENT_TYPE",
    "FileRef",
    "UploadSession",
    "Uploader",
    "external_file_object",
    "filename_from_url",
    "guess_content_type",
]
