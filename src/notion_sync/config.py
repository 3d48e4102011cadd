"""Configuration objects for the notion-sync client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from .errors import ConfigurationError
from .proxy import ProxyConfig, ProxyRoute, parse_proxy, resolve_proxy

DEFAULT_BASE_URL = "https://api.notion.com"
DEFAULT_API_VERSION = "2022-06-28"
MIB = 1024 * 1024


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_interval: float = 1.0
    factor: float = 3.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_interval < 0 or self.jitter < 0:
            raise ConfigurationError("base_interval and jitter must be non-negative")
        if self.factor < 1:
            raise ConfigurationError(f"factor must be >= 1, got {self.factor}")


NO_RETRY = RetryPolicy(max_attempts=1, base_interval=0.0, factor=1.0, jitter=0.0)


@dataclass(frozen=True)
class ClientConfig:
    token: str
    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    version_header: str = "Notion-Version"
    proxy: Any = None
    timeout: float = 30.0
    upload_timeout: float = 60.0
    download_timeout: float = 60.0
    max_download_bytes: int = 50 * MIB
    inline_reference_limit: int = 100
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    user_agent: str = "notion-sync/0.1.0"
    headers: Dict[str, str] = field(default_factory=dict)
    _proxy_route: Optional[ProxyRoute] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.token:
            raise ConfigurationError("An integration token is required")
        for name in ("timeout", "upload_timeout", "download_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.max_download_bytes <= 0:
            raise ConfigurationError("max_download_bytes must be positive")
        # Normalise raw descriptors once and fail fast on bad shapes.
        proxy: ProxyConfig = parse_proxy(self.proxy)
        object.__setattr__(self, "proxy", proxy)
        object.__setattr__(self, "_proxy_route", resolve_proxy(proxy))

    @property
    def proxy_route(self) -> Optional[ProxyRoute]:
        return self._proxy_route


@dataclass(frozen=True)
class MultipartFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None
    field_name: str = "file"
    boundary: str = field(default_factory=lambda: f"notion-sync-{uuid4().hex}")


@dataclass(frozen=True)
class RequestSpec:
    """One logical call: method, path and the per-call overrides."""

    method: str
    path: str
    body: Optional[Any] = None
    params: Optional[Mapping[str, Any]] = None
    headers: Optional[Mapping[str, str]] = None
    timeout: Optional[float] = None
    retry: Optional[RetryPolicy] = None
    upload: Optional[MultipartFile] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    def describe(self) -> str:
        return f"{self.method} {self.path}"


__all__ = [
    "ClientConfig",
    "DEFAULT_API_VERSION",
    "DEFAULT_BASE_URL",
    "MultipartFile",
    "NO_RETRY",
    "RequestSpec",
    "RetryPolicy",
]
