"""Prometheus collectors for outbound API traffic."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
    "notion_sync_requests_total",
    "Outbound API exchanges by method and outcome",
    ["method", "outcome"],
)
REQUEST_LATENCY = Histogram(
    "notion_sync_request_latency_seconds",
    "Latency of a single API exchange",
    ["method"],
)
RETRY_COUNTER = Counter("notion_sync_retries_total", "Retried API calls by error kind", ["kind"])
UPLOAD_BYTES = Counter("notion_sync_upload_bytes_total", "Bytes sent to upload slots")
DOWNLOAD_BYTES = Counter("notion_sync_download_bytes_total", "Bytes fetched from source URLs before upload")

__all__ = ["DOWNLOAD_BYTES", "REQUEST_COUNTER", "REQUEST_LATENCY", "RETRY_COUNTER", "UPLOAD_BYTES"]
