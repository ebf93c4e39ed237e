from __future__ import annotations

import logging

from fastapi import APIRouter, File, Request, UploadFile

from ..config import AppConfig
from ..errors import InvalidInputError, NotFoundError, StudyToolError, UnsupportedTypeError
from ..models.sources import AddSourceRequest, DriveSource, Source, TextSource, YouTubeSource, describe_source
from ..services.document_loader import is_valid_file_size, is_valid_file_type
from ..services.extractors import extract_drive_file_id, extract_video_id, process_upload
from ..services.notebook_store import Notebook
from .deps import get_store, get_study_service, resolve_notebook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sources"])

SUPPORTED_UPLOADS = "PDF, DOCX, TXT, MD, JPG, PNG, WEBP"


async def _ingest_after_change(request: Request, notebook: Notebook, source: Source, message: str) -> dict[str, object]:
    """Re-ingest after a source was added; a failed ingestion still reports the source as added."""
    payload: dict[str, object] = {"success": True, "source": describe_source(source)}
    try:
        material = await get_study_service(request).ingest(notebook)
    except StudyToolError as exc:
        logger.warning("Auto-ingestion after adding %s failed: %s", source.name, exc.message)
        payload["message"] = f"{message}, but ingestion failed. Try /api/ingest."
        payload["error"] = exc.message
        return payload
    payload["message"] = f"{message} and material re-ingested"
    payload["stats"] = material.stats_payload()
    payload["sources"] = material.sources
    return payload


@router.post("/ingest")
async def ingest_material(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    material = await get_study_service(request).ingest(notebook)
    return {
        "success": True,
        "message": f"Ingested {material.stats.source_count} sources",
        "stats": material.stats_payload(),
        "sources": material.sources,
    }


@router.post("/upload")
async def upload_file(request: Request, file: UploadFile | None = File(None)) -> dict[str, object]:
    settings: AppConfig = request.app.state.settings
    notebook = resolve_notebook(request)
    if file is None or not file.filename:
        raise InvalidInputError("No file uploaded")
    if not is_valid_file_type(file.content_type, file.filename):
        raise UnsupportedTypeError(f"Invalid file type. Supported: {SUPPORTED_UPLOADS}")

    too_large = f"File too large. Maximum size is {settings.max_upload_mb}MB"
    if file.size is not None and not is_valid_file_size(file.size, settings.max_upload_mb):
        raise InvalidInputError(too_large)

    data = await file.read()
    if not is_valid_file_size(len(data), settings.max_upload_mb):
        raise InvalidInputError(too_large)

    source = await process_upload(data, file.filename, file.content_type, request.app.state.file_store)
    get_store(request).add_source(notebook, source)
    logger.info("Uploaded %s (%d bytes) to notebook %s", file.filename, len(data), notebook.id)
    return await _ingest_after_change(request, notebook, source, f"Uploaded {file.filename}")


def build_source(payload: AddSourceRequest) -> Source:
    source_type = (payload.type or "").strip().lower()
    name = (payload.name or "").strip()
    if not source_type:
        raise InvalidInputError("Source type is required")

    if source_type in {"youtube", "drive"}:
        url = (payload.url or "").strip()
        if not url:
            raise InvalidInputError("URL is required for YouTube and Drive sources")
        if source_type == "youtube":
            return YouTubeSource(url=url, name=name or f"YouTube Video - {extract_video_id(url)}")
        return DriveSource(url=url, name=name or f"Google Drive PDF - {extract_drive_file_id(url)}")

    if source_type == "text":
        content = (payload.content or "").strip()
        if not content:
            raise InvalidInputError("Content is required for text sources")
        return TextSource(content=content, name=name or "Text Note", size=len(content.encode("utf-8")))

    raise UnsupportedTypeError(f"Invalid source type: {source_type}. Supported: youtube, drive, text")


@router.post("/sources/add")
async def add_source(request: Request, payload: AddSourceRequest) -> dict[str, object]:
    notebook = resolve_notebook(request)
    source = build_source(payload)
    get_store(request).add_source(notebook, source)
    return await _ingest_after_change(request, notebook, source, f"Added {source.type} source {source.name}")


@router.get("/sources")
async def list_sources(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    sources = [describe_source(source) for source in notebook.sources]
    return {"success": True, "sources": sources, "count": len(sources)}


@router.delete("/sources/{source_id}")
async def delete_source(request: Request, source_id: str) -> dict[str, object]:
    notebook = resolve_notebook(request)
    if not get_store(request).remove_source(notebook, source_id):
        raise NotFoundError("Source not found")
    return {"success": True, "message": "Source removed"}


@router.post("/sources/clear")
async def clear_sources(request: Request) -> dict[str, object]:
    notebook = resolve_notebook(request)
    get_store(request).clear_sources(notebook)
    return {"success": True, "message": "All sources cleared"}
