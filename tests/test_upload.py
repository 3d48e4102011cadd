from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Dict, List

import httpx
import pytest

from notion_sync.errors import (
    AllocationError,
    ClientError,
    DownloadTimeout,
    DownloadTooLarge,
    EmptyDownload,
    RequestTimeout,
    ServerError,
    UploadError,
)
from notion_sync.upload import filename_from_url, guess_content_type


class FakeNotion:
    """Routes API calls and source downloads; echoes uploaded file ids back."""

    def __init__(self, source: Dict[str, httpx.Response] | None = None) -> None:
        self.source = source or {}
        self.requests: List[httpx.Request] = []
        self.slots = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host != "api.example.com":
            return self.source[str(request.url)]
        path = request.url.path
        if path == "/v1/file_uploads":
            self.slots += 1
            return httpx.Response(200, json={"object": "file_upload", "id": f"slot-{self.slots}", "status": "pending"})
        if path.endswith("/send"):
            slot_id = path.split("/")[3]
            return httpx.Response(200, json={"object": "file_upload", "id": slot_id, "status": "uploaded"})
        if path.startswith("/v1/pages/"):
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[1], "echo": json.loads(request.content)})
        return httpx.Response(404, json={"code": "object_not_found"})


def test_content_type_inference() -> None:
    assert guess_content_type("https://img.example.com/covers/cover.png") == "image/png"
    assert guess_content_type("https://img.example.com/a/b.JPEG?x=1") == "image/jpeg"
    assert guess_content_type("notes.md") == "text/markdown"
    assert guess_content_type("https://img.example.com/blob") == "application/octet-stream"
    assert guess_content_type("archive.tar.xz") == "application/octet-stream"


def test_filename_from_url() -> None:
    assert filename_from_url("https://img.example.com/a/My%20Cover.png?size=l") == "My Cover.png"
    assert filename_from_url("https://img.example.com/") == "downloaded_file"


@pytest.mark.asyncio
async def test_upload_round_trip_into_page_write(make_client) -> None:
    fake = FakeNotion()
    client = make_client(fake)

    session = await client.create_file_upload()
    ref = await client.send_file_upload(session, b"\xff\xd8jpeg-bytes", "f.jpg", "image/jpeg")
    page = await client.update_page("page-1", {"properties": {"Cover": {"files": [ref.as_file_object()]}}})

    assert ref.id == session.slot_id == "slot-1"
    assert ref.size == len(b"\xff\xd8jpeg-bytes")
    files = page["echo"]["properties"]["Cover"]["files"]
    assert files == [{"type": "file_upload", "name": "f.jpg", "file_upload": {"id": "slot-1"}}]


@pytest.mark.asyncio
async def test_send_encodes_single_part_multipart(make_client) -> None:
    fake = FakeNotion()
    client = make_client(fake)
    await client.upload_bytes(b"hello world", "hello.txt", "text/plain")

    send = fake.requests[-1]
    content_type = send.headers["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=", 1)[1]
    body = send.content
    assert int(send.headers["Content-Length"]) == len(body)
    assert body.count(f"--{boundary}".encode()) == 2
    assert body.rstrip().endswith(f"--{boundary}--".encode())
    assert b'name="file"; filename="hello.txt"' in body
    assert b"Content-Type: text/plain" in body
    assert b"hello world" in body
    assert send.headers["Authorization"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_slot_is_single_use(make_client) -> None:
    client = make_client(FakeNotion())
    session = await client.create_file_upload()
    await client.send_file_upload(session, b"one", "a.txt")
    with pytest.raises(UploadError):
        await client.send_file_upload(session, b"two", "a.txt")


@pytest.mark.asyncio
async def test_failed_send_is_not_retried_and_burns_slot(make_client, sleeps) -> None:
    sends = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/file_uploads":
            return httpx.Response(200, json={"id": "slot-9"})
        sends["count"] += 1
        return httpx.Response(500)

    client = make_client(handler)
    session = await client.create_file_upload()
    with pytest.raises(ServerError):
        await client.send_file_upload(session, b"data", "a.bin")
    assert sends["count"] == 1
    assert session.consumed
    with pytest.raises(UploadError):
        await client.send_file_upload(session, b"data", "a.bin")


@pytest.mark.asyncio
async def test_allocation_without_id_fails(make_client) -> None:
    client = make_client(lambda request: httpx.Response(200, json={"object": "file_upload"}))
    with pytest.raises(AllocationError):
        await client.create_file_upload()


@pytest.mark.asyncio
async def test_allocation_is_retried(make_client, sleeps) -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"id": "slot-2"})

    session = await make_client(handler).create_file_upload()
    assert session.slot_id == "slot-2"
    assert sleeps.delays == [1.0]


@pytest.mark.asyncio
async def test_upload_from_url_infers_name_and_type(make_client) -> None:
    url = "https://img.example.com/covers/poster.png"
    fake = FakeNotion({url: httpx.Response(200, content=b"\x89PNG-data")})
    ref = await make_client(fake).upload_from_url(url)

    assert ref.filename == "poster.png"
    assert ref.content_type == "image/png"
    assert ref.source == url
    download = fake.requests[0]
    assert "Authorization" not in download.headers
    assert b"Content-Type: image/png" in fake.requests[-1].content


@pytest.mark.asyncio
async def test_upload_from_source_accepts_buffer(make_client) -> None:
    fake = FakeNotion()
    ref = await make_client(fake).upload_from_source(b"%PDF-1.7", "doc.pdf")
    assert ref.content_type == "application/pdf"
    assert [r.url.path for r in fake.requests] == ["/v1/file_uploads", "/v1/file_uploads/slot-1/send"]


@pytest.mark.asyncio
async def test_streamed_download_aborts_past_limit_without_content_length(make_client) -> None:
    produced = {"chunks": 0}

    async def body() -> AsyncIterator[bytes]:
        for _ in range(1000):
            produced["chunks"] += 1
            yield b"x" * 64

    url = "https://img.example.com/huge.gif"
    fake = FakeNotion({url: httpx.Response(200, content=body())})
    client = make_client(fake)

    with pytest.raises(DownloadTooLarge) as excinfo:
        await client.uploader.download(url, max_bytes=200)

    assert excinfo.value.limit == 200
    assert 200 < excinfo.value.received <= 256
    assert produced["chunks"] < 10
    assert all(r.url.host != "api.example.com" for r in fake.requests)


@pytest.mark.asyncio
async def test_declared_length_over_limit_fails_fast(make_client) -> None:
    url = "https://img.example.com/big.jpg"
    fake = FakeNotion({url: httpx.Response(200, content=b"y" * 500)})
    with pytest.raises(DownloadTooLarge):
        await make_client(fake).upload_from_url(url, max_bytes=100)
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_empty_download_is_an_error(make_client) -> None:
    url = "https://img.example.com/empty.png"
    fake = FakeNotion({url: httpx.Response(200, content=b"")})
    with pytest.raises(EmptyDownload):
        await make_client(fake).upload_from_url(url)
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_download_wall_clock_timeout(make_client) -> None:
    async def trickle() -> AsyncIterator[bytes]:
        while True:
            await asyncio.sleep(0.02)
            yield b"z"

    url = "https://img.example.com/slow.webp"
    fake = FakeNotion({url: httpx.Response(200, content=trickle())})
    with pytest.raises(DownloadTimeout):
        await make_client(fake).uploader.download(url, timeout=0.1)


@pytest.mark.asyncio
async def test_download_http_error_propagates(make_client) -> None:
    url = "https://img.example.com/missing.png"
    fake = FakeNotion({url: httpx.Response(404)})
    with pytest.raises(ClientError) as excinfo:
        await make_client(fake).upload_from_url(url)
    assert excinfo.value.status == 404


def slow_send_handler(delay: float):
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/send"):
            await asyncio.sleep(delay)
            return httpx.Response(200, json={"id": "slot-1", "status": "uploaded"})
        return httpx.Response(200, json={"id": "slot-1"})

    return handler


@pytest.mark.asyncio
async def test_send_gets_the_longer_upload_budget(make_client) -> None:
    client = make_client(slow_send_handler(0.2), timeout=0.05, upload_timeout=2.0)
    ref = await client.upload_bytes(b"payload", "a.bin")
    assert ref.id == "slot-1"


@pytest.mark.asyncio
async def test_send_times_out_past_upload_budget(make_client) -> None:
    client = make_client(slow_send_handler(1.0), timeout=0.05, upload_timeout=0.1)
    with pytest.raises(RequestTimeout):
        await client.upload_bytes(b"payload", "a.bin")
