from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from ..errors import InvalidInputError, MaterialNotIngestedError, NoSourcesError, RateLimitedError, SummaryParseError
from ..models.study import AskRequest, DialogueRequest, SuggestQuestionsRequest
from ..services.study import GENERIC_FALLBACK_QUESTIONS, NO_MATERIAL_QUESTIONS
from .deps import get_store, get_study_service, resolve_notebook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["study"])

SLIDE_COUNT = 3


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/ask")
async def ask_question(request: Request, payload: AskRequest) -> dict[str, object]:
    question = (payload.question or "").strip()
    if not question:
        raise InvalidInputError("Question is required")
    notebook = resolve_notebook(request)
    entry = await get_study_service(request).ask(notebook, question)
    return entry.model_dump(by_alias=True, mode="json")


@router.post("/dialogue")
async def dialogue(request: Request, payload: DialogueRequest) -> dict[str, object]:
    message = (payload.message or "").strip()
    if not message:
        raise InvalidInputError("Message is required")
    notebook = resolve_notebook(request)
    turn = await get_study_service(request).dialogue_turn(notebook, message)
    return turn.model_dump(by_alias=True, mode="json")


@router.post("/summary")
async def generate_summary(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    try:
        result = await get_study_service(request).summarize(notebook)
    except SummaryParseError as exc:
        material = notebook.study_material
        return {
            "summary": {
                "overview": exc.message,
                "concepts": ["Error parsing concepts"],
                "examTips": ["Error parsing tips"],
                "raw_debug": exc.raw_text,
            },
            "isGrounded": False,
            "parseError": True,
            "sources": material.sources if material else [],
            "slideCount": SLIDE_COUNT,
            "timestamp": _timestamp(),
        }
    return {
        "summary": result.summary.model_dump(by_alias=True),
        "isGrounded": result.is_grounded,
        "sources": result.sources,
        "slideCount": SLIDE_COUNT,
        "timestamp": _timestamp(),
    }


@router.post("/suggest-questions")
async def suggest_questions(
    request: Request,
    payload: SuggestQuestionsRequest | None = Body(default=None),
) -> JSONResponse:
    notebook = resolve_notebook(request)
    force = payload.force if payload else False
    try:
        questions = await get_study_service(request).suggest_questions(notebook, force=force)
    except (MaterialNotIngestedError, NoSourcesError) as exc:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": exc.message, "questions": NO_MATERIAL_QUESTIONS},
        )
    except RateLimitedError as exc:
        logger.warning("Suggested questions degraded to fallback: %s", exc.message)
        return JSONResponse(content={"success": True, "questions": GENERIC_FALLBACK_QUESTIONS, "fallback": True})
    return JSONResponse(content={"success": True, "questions": questions})


@router.post("/clear-history")
async def clear_history(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    get_store(request).clear_history(notebook)
    return {"success": True, "message": "Conversation history cleared"}


@router.get("/history")
async def read_history(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    history = [turn.model_dump(by_alias=True, mode="json") for turn in notebook.conversation_history]
    qa_history = [entry.model_dump(by_alias=True, mode="json") for entry in notebook.qa_history]
    return {"success": True, "history": history, "qaHistory": qa_history, "count": len(history)}


@router.get("/stats")
async def read_stats(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    stats: dict[str, object] = {"success": True, **get_store(request).stats(notebook)}
    if notebook.study_material is not None:
        stats["material"] = notebook.study_material.stats_payload()
    return stats
