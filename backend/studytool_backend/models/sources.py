from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _new_source_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _SourceBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_source_id)
    name: str
    added_at: datetime = Field(default_factory=_now)
    size: int | None = None


class FileSource(_SourceBase):
    """A user upload. Either locally extracted text or a remote file handle."""

    type: Literal["file"] = "file"
    file_type: str = "unknown"
    text: str | None = None
    file_uri: str | None = None
    mime_type: str | None = None
    page_count: int | None = None

    @model_validator(mode="after")
    def _require_content(self) -> "FileSource":
        if not self.file_uri and not (self.text or "").strip():
            raise ValueError("file sources need extracted text or a remote file URI")
        return self


class DriveSource(_SourceBase):
    type: Literal["drive"] = "drive"
    url: str = Field(..., min_length=1)


class YouTubeSource(_SourceBase):
    type: Literal["youtube"] = "youtube"
    url: str = Field(..., min_length=1)


class TextSource(_SourceBase):
    type: Literal["text"] = "text"
    content: str = Field(..., min_length=1)


Source = Annotated[
    Union[FileSource, DriveSource, YouTubeSource, TextSource],
    Field(discriminator="type"),
]


class AddSourceRequest(BaseModel):
    type: str | None = None
    url: str | None = None
    content: str | None = None
    name: str | None = None


def source_url(source: Source) -> str:
    if isinstance(source, (DriveSource, YouTubeSource)):
        return source.url
    return ""


def source_file_uri(source: Source) -> str:
    if isinstance(source, FileSource):
        return source.file_uri or ""
    return ""


def describe_source(source: Source) -> dict[str, object]:
    """Public listing shape for GET /sources."""
    return {
        "id": source.id,
        "type": source.type,
        "name": source.name,
        "fileName": source.name if isinstance(source, FileSource) else None,
        "fileType": source.file_type if isinstance(source, FileSource) else None,
        "size": source.size,
        "addedAt": source.added_at.isoformat(),
    }
