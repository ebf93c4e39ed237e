from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NotebookSummary(BaseModel):
    id: str = Field(..., description="Unique notebook identifier")
    name: str
    is_default: bool = Field(False, serialization_alias="isDefault")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    source_count: int = Field(0, serialization_alias="sourceCount")
    is_active: bool = Field(False, serialization_alias="isActive")


class NotebookCreateRequest(BaseModel):
    name: str | None = None


class NotebookRenameRequest(BaseModel):
    name: str | None = None


class QAEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    is_grounded: bool = Field(..., serialization_alias="isGrounded")
    sources: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_message: str = Field(..., serialization_alias="studentMessage")
    teacher_response: str = Field(..., serialization_alias="teacherResponse")
    is_grounded: bool = Field(..., serialization_alias="isGrounded")
    sources: list[str] = Field(default_factory=list)
    conversation_length: int = Field(..., serialization_alias="conversationLength")
    timestamp: datetime = Field(default_factory=_now)
