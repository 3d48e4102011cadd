"""Pydantic models for the response shapes the client interprets."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileUploadObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    object: Optional[str] = None
    status: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    content_length: Optional[int] = None
    upload_url: Optional[str] = None


class PaginatedList(BaseModel):
    model_config = ConfigDict(extra="allow")

    results: List[Dict[str, Any]] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


__all__ = ["FileUploadObject", "PaginatedList"]
