"""Single-exchange HTTP transport with proxy routing, dual timeouts and error classification."""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import sys
import time
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterator, List, Mapping, Optional, Type

import httpx

if sys.version_info < (3, 11):
    from exceptiongroup import BaseExceptionGroup

from .config import ClientConfig, RequestSpec
from .errors import (
    ConnectionRefused,
    ConnectionReset,
    ConnectionTimeout,
    NetworkError,
    NotionSyncError,
    ProxyConnectionRefused,
    ProxyConnectionReset,
    ProxyConnectionTimeout,
    RequestTimeout,
    ResponseDecodeError,
    TransportError,
    classify_status,
)
from .metrics import REQUEST_COUNTER, REQUEST_LATENCY
from .proxy import ProxyRoute

logger = logging.getLogger(__name__)

# Keep one idle socket alive between sequential calls; no wider pool.
KEEPALIVE_LIMITS = httpx.Limits(max_keepalive_connections=1, keepalive_expiry=1.0)

_PROXY_VARIANTS: Dict[Type[TransportError], Type[TransportError]] = {
    ConnectionReset: ProxyConnectionReset,
    ConnectionRefused: ProxyConnectionRefused,
    ConnectionTimeout: ProxyConnectionTimeout,
}


@dataclass
class ApiResponse:
    status: int
    headers: Mapping[str, str]
    data: Any


def _linked(exc: BaseException) -> List[BaseException]:
    linked: List[BaseException] = []
    if isinstance(exc, BaseExceptionGroup):
        linked.extend(exc.exceptions)
    for chained in (exc.__cause__, exc.__context__):
        if chained is not None:
            linked.append(chained)
    return linked


def _os_error_in_chain(exc: BaseException) -> Optional[OSError]:
    """First ``OSError`` with an errno or a specific subclass, searching causes and exception groups.

    anyio reports a failed connect as a bare ``OSError`` caused by an exception
    group holding the real socket errors.
    """
    seen = set()
    fallback: Optional[OSError] = None
    pending: List[BaseException] = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, OSError):
            if current.errno is not None or type(current) is not OSError:
                return current
            fallback = fallback or current
        pending.extend(_linked(current))
    return fallback


def _network_class(exc: httpx.TransportError) -> Type[TransportError]:
    if isinstance(exc, httpx.ConnectTimeout):
        return ConnectionTimeout
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeout
    os_error = _os_error_in_chain(exc)
    if isinstance(os_error, ConnectionRefusedError) or (os_error and os_error.errno == errno.ECONNREFUSED):
        return ConnectionRefused
    if isinstance(os_error, ConnectionResetError) or (os_error and os_error.errno == errno.ECONNRESET):
        return ConnectionReset
    if isinstance(os_error, TimeoutError) or (os_error and os_error.errno == errno.ETIMEDOUT):
        return ConnectionTimeout
    message = str(exc).lower()
    if "refused" in message:
        return ConnectionRefused
    if "reset" in message or isinstance(exc, httpx.RemoteProtocolError):
        return ConnectionReset
    if isinstance(exc, httpx.ProxyError):
        return ConnectionRefused
    return NetworkError


def translate_error(exc: BaseException, *, proxy_used: bool) -> TransportError:
    """Convert an httpx/asyncio failure into the package's transport taxonomy."""
    if isinstance(exc, asyncio.TimeoutError):
        return RequestTimeout("request timed out", proxy_used=proxy_used)
    if isinstance(exc, httpx.DecodingError):
        return ResponseDecodeError(f"could not decode response: {exc}", proxy_used=proxy_used)
    if not isinstance(exc, httpx.TransportError):
        return NetworkError(f"{type(exc).__name__}: {exc}", proxy_used=proxy_used)
    cls = _network_class(exc)
    if proxy_used:
        cls = _PROXY_VARIANTS.get(cls, cls)
    prefix = "proxy " if proxy_used and cls in _PROXY_VARIANTS.values() else ""
    return cls(f"{prefix}{type(exc).__name__}: {exc}", proxy_used=proxy_used)


class Transport:
    """Performs exactly one exchange per call. Never retries."""

    def __init__(self, config: ClientConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._route: Optional[ProxyRoute] = config.proxy_route
        # An injected transport replaces the proxy-aware default; the route is
        # still kept so failures are classified as proxied.
        proxy_url = self._route.url if self._route is not None and transport is None else None
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout),
            limits=KEEPALIVE_LIMITS,
            proxy=proxy_url,
            transport=transport,
            trust_env=False,
            follow_redirects=False,
        )

    @property
    def proxy_used(self) -> bool:
        return self._route is not None

    @property
    def config(self) -> ClientConfig:
        return self._config

    def _headers(self, spec: RequestSpec) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.token}",
            self._config.version_header: self._config.api_version,
            "User-Agent": self._config.user_agent,
        }
        if spec.upload is None:
            headers["Content-Type"] = "application/json"
        else:
            headers["Content-Type"] = f"multipart/form-data; boundary={spec.upload.boundary}"
        headers.update(self._config.headers)
        headers.update(spec.headers or {})
        return headers

    def _build_request(self, spec: RequestSpec, timeout: float) -> httpx.Request:
        kwargs: Dict[str, Any] = {}
        if spec.upload is not None:
            upload = spec.upload
            if upload.content_type:
                kwargs["files"] = {upload.field_name: (upload.filename, upload.content, upload.content_type)}
            else:
                kwargs["files"] = {upload.field_name: (upload.filename, upload.content)}
        elif spec.body is not None and spec.method != "GET":
            kwargs["content"] = json.dumps(spec.body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return self._client.build_request(
            spec.method,
            spec.path,
            params=dict(spec.params) if spec.params else None,
            headers=self._headers(spec),
            timeout=httpx.Timeout(timeout),
            **kwargs,
        )

    def _timeout_for(self, spec: RequestSpec) -> float:
        if spec.timeout is not None:
            return spec.timeout
        if spec.upload is not None:
            return self._config.upload_timeout
        return self._config.timeout

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        try:
            yield
        except (httpx.TransportError, httpx.DecodingError, asyncio.TimeoutError) as exc:
            raise translate_error(exc, proxy_used=self.proxy_used) from exc

    def _decode(self, response: httpx.Response) -> ApiResponse:
        data: Any = None
        parsed = True
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = response.text
                parsed = False
        if 200 <= response.status_code < 300:
            if not parsed:
                raise ResponseDecodeError(
                    "response body is not valid JSON",
                    status=response.status_code,
                    body=data,
                    proxy_used=self.proxy_used,
                )
            return ApiResponse(status=response.status_code, headers=response.headers, data=data)
        raise classify_status(
            response.status_code,
            data,
            response.headers,
            reason=response.reason_phrase,
            proxy_used=self.proxy_used,
        )

    async def send(self, spec: RequestSpec) -> ApiResponse:
        timeout = self._timeout_for(spec)
        request = self._build_request(spec, timeout)
        outcome = "error"
        start = time.perf_counter()
        try:
            with self._translate_errors():
                # httpx enforces the socket timeouts; wait_for bounds the whole exchange.
                response = await asyncio.wait_for(self._client.send(request), timeout)
            result = self._decode(response)
            outcome = "ok"
            return result
        except NotionSyncError as exc:
            outcome = exc.kind
            logger.debug("request=%s failed kind=%s detail=%s", spec.describe(), exc.kind, exc.message)
            raise
        finally:
            REQUEST_COUNTER.labels(method=spec.method, outcome=outcome).inc()
            REQUEST_LATENCY.labels(method=spec.method).observe(time.perf_counter() - start)

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed GET to an absolute URL without API credentials."""
        request_timeout = httpx.Timeout(timeout or self._config.download_timeout)
        with self._translate_errors():
            async with self._client.stream("GET", url, headers=dict(headers or {}), timeout=request_timeout) as response:
                yield response

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["ApiResponse", "KEEPALIVE_LIMITS", "Transport", "translate_error"]
