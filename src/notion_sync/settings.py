"""Startup configuration read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .batch import MAX_CONCURRENCY
from .config import DEFAULT_API_VERSION, DEFAULT_BASE_URL, ClientConfig, RetryPolicy
from .errors import ConfigurationError

DATABASE_SUFFIX = "_DATABASE_ID"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _proxy_from_env(env: Mapping[str, str]) -> Any:
    if not _flag(env.get("PROXY_ENABLED")):
        return None
    url = env.get("PROXY_URL")
    if url:
        return url
    host = env.get("PROXY_HOST")
    port = env.get("PROXY_PORT")
    if not host or not port:
        raise ConfigurationError("PROXY_ENABLED is set but neither PROXY_URL nor PROXY_HOST/PROXY_PORT are")
    descriptor: Dict[str, Any] = {"host": host, "port": port}
    if env.get("PROXY_USERNAME"):
        descriptor["auth"] = {"username": env["PROXY_USERNAME"], "password": env.get("PROXY_PASSWORD", "")}
    return descriptor


@dataclass(frozen=True)
class SyncSettings:
    token: str
    api_version: str = DEFAULT_API_VERSION
    base_url: str = DEFAULT_BASE_URL
    databases: Dict[str, str] = field(default_factory=dict)
    proxy: Any = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = 30.0
    upload_timeout: float = 60.0
    download_timeout: float = 60.0
    max_download_bytes: int = 50 * 1024 * 1024
    inline_reference_limit: int = 100
    batch_concurrency: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SyncSettings":
        env = os.environ if environ is None else environ
        token = env.get("NOTION_KEY", "")
        if not token:
            raise ConfigurationError("NOTION_KEY must be set")

        databases: Dict[str, str] = {}
        if env.get("DATABASE_ID"):
            databases["default"] = env["DATABASE_ID"]
        for key, value in env.items():
            if key.endswith(DATABASE_SUFFIX) and value:
                databases[key[: -len(DATABASE_SUFFIX)].lower()] = value

        retry = RetryPolicy(
            max_attempts=int(_number(env, "RETRY_MAX_ATTEMPTS", 3)),
            base_interval=_number(env, "RETRY_INTERVAL_MS", 1000) / 1000,
            factor=_number(env, "RETRY_FACTOR", 3),
            jitter=_number(env, "RETRY_JITTER_MS", 100) / 1000,
        )
        concurrency = int(_number(env, "BATCH_CONCURRENCY", 5))

        return cls(
            token=token,
            api_version=env.get("NOTION_VERSION", DEFAULT_API_VERSION),
            base_url=env.get("NOTION_BASE_URL", DEFAULT_BASE_URL),
            databases=databases,
            proxy=_proxy_from_env(env),
            retry=retry,
            timeout=_number(env, "REQUEST_TIMEOUT_MS", 30000) / 1000,
            upload_timeout=_number(env, "UPLOAD_TIMEOUT_MS", 60000) / 1000,
            download_timeout=_number(env, "DOWNLOAD_TIMEOUT_MS", 60000) / 1000,
            max_download_bytes=int(_number(env, "DOWNLOAD_MAX_BYTES", 50 * 1024 * 1024)),
            inline_reference_limit=int(_number(env, "INLINE_REFERENCE_LIMIT", 100)),
            batch_concurrency=max(1, min(concurrency, MAX_CONCURRENCY)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def require_database(self, name: str = "default") -> str:
        database_id = self.databases.get(name.lower())
        if not database_id:
            raise ConfigurationError(f"No database id configured for {name!r}")
        return database_id

    def client_config(self) -> ClientConfig:
        return ClientConfig(
            token=self.token,
            base_url=self.base_url,
            api_version=self.api_version,
            proxy=self.proxy,
            timeout=self.timeout,
            upload_timeout=self.upload_timeout,
            download_timeout=self.download_timeout,
            max_download_bytes=self.max_download_bytes,
            inline_reference_limit=self.inline_reference_limit,
            retry=self.retry,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


__all__ = ["SyncSettings", "configure_logging"]
