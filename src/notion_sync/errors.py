"""Error taxonomy shared by the transport, retry and upload layers."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class NotionSyncError(Exception):
    """Base class; every error raised by this package carries a ``kind``."""

    kind = "error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.body = body
        self.attempts: Optional[int] = None

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.kind} {self.status}] {self.message}"
        return f"[{self.kind}] {self.message}"


class ConfigurationError(NotionSyncError, ValueError):
    kind = "configuration"


class TransportError(NotionSyncError):
    kind = "transport"

    def __init__(self, message: str, *, proxy_used: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.proxy_used = proxy_used


class NetworkError(TransportError):
    """A network failure that does not fall into a retryable class (DNS, TLS, ...)."""

    kind = "network"


class ConnectionReset(TransportError):
    kind = "connection_reset"
    retryable = True


class ConnectionRefused(TransportError):
    kind = "connection_refused"
    retryable = True


class ConnectionTimeout(TransportError):
    kind = "connection_timeout"
    retryable = True


class RequestTimeout(TransportError):
    kind = "timeout"
    retryable = True


class ProxyConnectionReset(ConnectionReset):
    kind = "proxy_connection_reset"


class ProxyConnectionRefused(ConnectionRefused):
    kind = "proxy_connection_refused"


class ProxyConnectionTimeout(ConnectionTimeout):
    kind = "proxy_connection_timeout"


class ServerError(TransportError):
    kind = "server_error"
    retryable = True


class ResponseDecodeError(TransportError):
    kind = "decode_error"


class ClientError(NotionSyncError):
    kind = "client_error"

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class UploadError(NotionSyncError):
    kind = "upload"


class AllocationError(UploadError):
    kind = "allocation"


class DownloadTooLarge(UploadError):
    kind = "download_too_large"

    def __init__(self, limit: int, received: int) -> None:
        super().__init__(f"download exceeded {limit} bytes (received {received})")
        self.limit = limit
        self.received = received


class DownloadTimeout(UploadError):
    kind = "download_timeout"


class EmptyDownload(UploadError):
    kind = "empty_download"


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, NotionSyncError) and exc.retryable


def _parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    value = headers.get("retry-after") or headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_status(
    status: int,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
    *,
    reason: str = "",
    proxy_used: bool = False,
) -> NotionSyncError:
    """Map a non-2xx status to ``ServerError`` (>= 500) or ``ClientError``."""
    code = None
    message = f"HTTP {status}"
    if reason:
        message += f": {reason}"
    if isinstance(body, dict):
        code = body.get("code")
        if body.get("message"):
            message = f"{message} ({body['message']})"
    if status >= 500:
        return ServerError(message, status=status, code=code, body=body, proxy_used=proxy_used)
    return ClientError(
        message,
        status=status,
        code=code,
        body=body,
        retry_after=_parse_retry_after(headers or {}),
    )


__all__ = [
    "AllocationError",
    "ClientError",
    "ConfigurationError",
    "ConnectionRefused",
    "ConnectionReset",
    "ConnectionTimeout",
    "DownloadTimeout",
    "DownloadTooLarge",
    "EmptyDownload",
    "NetworkError",
    "NotionSyncError",
    "ProxyConnectionRefused",
    "ProxyConnectionReset",
    "ProxyConnectionTimeout",
    "RequestTimeout",
    "ResponseDecodeError",
    "ServerError",
    "TransportError",
    "UploadError",
    "classify_status",
    "is_retryable",
]
