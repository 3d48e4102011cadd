"""Forward-proxy descriptors and their resolution to an httpx proxy route."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote, urlsplit

from .errors import ConfigurationError

HTTP_SCHEMES = ("http", "https")
SOCKS_SCHEMES = ("socks5",)


class ProxyKind(enum.Enum):
    HTTP = "http"
    SOCKS5 = "socks5"


@dataclass(frozen=True)
class ProxyUrl:
    url: str


@dataclass(frozen=True)
class ProxyAuth:
    username: str
    password: str = ""


@dataclass(frozen=True)
class HostPortProxy:
    host: str
    port: int
    auth: Optional[ProxyAuth] = None


ProxyConfig = Union[ProxyUrl, HostPortProxy, None]


@dataclass(frozen=True)
class ProxyRoute:
    """What the transport needs to build its httpx client: the proxy kind and URL."""

    kind: ProxyKind
    url: str


def _parse_auth(value: Any) -> Optional[ProxyAuth]:
    if value is None or isinstance(value, ProxyAuth):
        return value
    if isinstance(value, Mapping):
        username = value.get("username") or ""
        if not username:
            return None
        return ProxyAuth(username=str(username), password=str(value.get("password") or ""))
    raise ConfigurationError(f"Unsupported proxy auth value: {value!r}")


def parse_proxy(value: Any) -> ProxyConfig:
    """Turn a raw descriptor (URL string or ``{host, port, auth?}`` mapping) into a ``ProxyConfig``.

    This is the only place that inspects the shape of user input; everything
    downstream works on the tagged variants.
    """
    if value is None or isinstance(value, (ProxyUrl, HostPortProxy)):
        return value
    if isinstance(value, str):
        if not value.strip():
            return None
        return ProxyUrl(url=value.strip())
    if isinstance(value, Mapping):
        host = value.get("host")
        port = value.get("port")
        if not host or not port:
            raise ConfigurationError(f"Proxy mapping requires host and port: {dict(value)!r}")
        try:
            port_number = int(port)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid proxy port: {port!r}") from exc
        return HostPortProxy(host=str(host), port=port_number, auth=_parse_auth(value.get("auth")))
    raise ConfigurationError(f"Unsupported proxy descriptor: {value!r}")


def _resolve_url(proxy: ProxyUrl) -> ProxyRoute:
    parts = urlsplit(proxy.url)
    scheme = parts.scheme.lower()
    if not parts.hostname:
        raise ConfigurationError(f"Proxy URL has no host: {proxy.url!r}")
    if scheme in HTTP_SCHEMES:
        return ProxyRoute(kind=ProxyKind.HTTP, url=proxy.url)
    if scheme in SOCKS_SCHEMES:
        return ProxyRoute(kind=ProxyKind.SOCKS5, url=proxy.url)
    raise ConfigurationError(f"Unsupported proxy scheme {scheme!r} in {proxy.url!r}")


def _resolve_host_port(proxy: HostPortProxy) -> ProxyRoute:
    # Host/port descriptors always mean a plain HTTP proxy.
    userinfo = ""
    if proxy.auth is not None:
        userinfo = quote(proxy.auth.username, safe="")
        if proxy.auth.password:
            userinfo += ":" + quote(proxy.auth.password, safe="")
        userinfo += "@"
    return ProxyRoute(kind=ProxyKind.HTTP, url=f"http://{userinfo}{proxy.host}:{proxy.port}")


def resolve_proxy(proxy: ProxyConfig) -> Optional[ProxyRoute]:
    if proxy is None:
        return None
    if isinstance(proxy, ProxyUrl):
        return _resolve_url(proxy)
    if isinstance(proxy, HostPortProxy):
        return _resolve_host_port(proxy)
    raise ConfigurationError(f"Unsupported proxy config: {proxy!r}")


__all__ = [
    "HostPortProxy",
    "ProxyAuth",
    "ProxyConfig",
    "ProxyKind",
    "ProxyRoute",
    "ProxyUrl",
    "parse_proxy",
    "resolve_proxy",
]
