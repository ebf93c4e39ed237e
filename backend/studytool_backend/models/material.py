from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class FileRefPart(BaseModel):
    """Reference to a file already uploaded to the model vendor's file store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file_ref"] = "file_ref"
    file_uri: str
    mime_type: str = "application/pdf"


ContextPart = Annotated[Union[TextPart, FileRefPart], Field(discriminator="kind")]


class SourceInfo(BaseModel):
    name: str
    type: str


class IngestionWarning(BaseModel):
    source_name: str
    source_type: str
    message: str


class MaterialStats(BaseModel):
    source_count: int = Field(0, serialization_alias="sourceCount")
    sources: list[SourceInfo] = Field(default_factory=list)
    is_multimodal: bool = Field(True, serialization_alias="isMultimodal")


class StudyMaterial(BaseModel):
    context_parts: list[ContextPart]
    sources: list[str]
    stats: MaterialStats
    warnings: list[IngestionWarning] = Field(default_factory=list)
    signature: str = ""
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def stats_payload(self) -> dict[str, object]:
        payload = self.stats.model_dump(by_alias=True)
        if self.warnings:
            payload["warnings"] = [warning.model_dump() for warning in self.warnings]
        return payload
