from __future__ import annotations

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    question: str | None = None


class DialogueRequest(BaseModel):
    message: str | None = None


class SuggestQuestionsRequest(BaseModel):
    force: bool = False


class StudySummary(BaseModel):
    overview: str
    concepts: list[str] = Field(default_factory=list)
    exam_tips: list[str] = Field(default_factory=list, alias="examTips", serialization_alias="examTips")

    model_config = {"populate_by_name": True}


class SummaryResult(BaseModel):
    summary: StudySummary
    is_grounded: bool
    sources: list[str] = Field(default_factory=list)
