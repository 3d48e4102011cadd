"""Notion API client with retry, proxy routing and file uploads."""

from .batch import BatchReport, paginate, run_bounded
from .client import NotionClient
from .config import ClientConfig, RequestSpec, RetryPolicy
from .errors import (
    AllocationError,
    ClientError,
    ConfigurationError,
    DownloadTimeout,
    DownloadTooLarge,
    EmptyDownload,
    NotionSyncError,
    ServerError,
    TransportError,
    UploadError,
)
from .proxy import HostPortProxy, ProxyKind, ProxyUrl
from .references import ReferenceResolver
from .settings import SyncSettings, configure_logging
from .tokens import FileTokenStore, MemoryTokenStore, TokenCache
from .upload import FileRef, UploadSession

__all__ = [
    "AllocationError",
    "BatchReport",
    "ClientConfig",
    "ClientError",
    "ConfigurationError",
    "DownloadTimeout",
    "DownloadTooLarge",
    "EmptyDownload",
    "FileRef",
    "FileTokenStore",
    "HostPortProxy",
    "MemoryTokenStore",
    "NotionClient",
    "NotionSyncError",
    "ProxyKind",
    "ProxyUrl",
    "ReferenceResolver",
    "RequestSpec",
    "RetryPolicy",
    "ServerError",
    "SyncSettings",
    "TokenCache",
    "TransportError",
    "UploadError",
    "UploadSession",
    "configure_logging",
    "paginate",
    "run_bounded",
]
