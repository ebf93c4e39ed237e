from __future__ import annotations

import logging
import time
from typing import Sequence

from ..config import AppConfig
from ..errors import NoSourcesError
from ..models.material import ContextPart, IngestionWarning, MaterialStats, SourceInfo, StudyMaterial, TextPart
from ..models.sources import DriveSource, Source, YouTubeSource
from .extractors import SourceExtractor
from .notebook_store import source_signature

logger = logging.getLogger(__name__)


def default_sources(settings: AppConfig) -> list[Source]:
    """Fallback material configured through the environment (default notebook only)."""
    sources: list[Source] = []
    if settings.default_pdf_url:
        sources.append(DriveSource(url=settings.default_pdf_url, name="Economics Textbook"))
    if settings.default_youtube_video_1:
        sources.append(YouTubeSource(url=settings.default_youtube_video_1, name="Oligopoly - Kinked Demand"))
    if settings.default_youtube_video_2:
        sources.append(YouTubeSource(url=settings.default_youtube_video_2, name="Oligopoly - Game Theory"))
    return sources


def error_notice(name: str, message: str) -> TextPart:
    return TextPart(text=f"\n[System Error: Failed to load source {name}: {message}]\n")


class IngestionService:
    """
    Assembles the ordered prompt material for a notebook.

    One failing source never aborts the batch: its slot is filled with an inline
    error notice and a structured warning, and the remaining sources still load.
    """

    def __init__(self, settings: AppConfig, extractor: SourceExtractor) -> None:
        self.settings = settings
        self.extractor = extractor

    async def ingest(self, sources: Sequence[Source] | None, *, allow_defaults: bool = False) -> StudyMaterial:
        signature = source_signature(sources or [])
        if not sources:
            if not allow_defaults:
                raise NoSourcesError("No sources provided for active notebook")
            sources = default_sources(self.settings)
            if not sources:
                raise NoSourcesError("No sources provided")

        start = time.perf_counter()
        logger.info("Starting material ingestion for %d sources", len(sources))

        context_parts: list[ContextPart] = []
        processed: list[SourceInfo] = []
        warnings: list[IngestionWarning] = []

        for index, source in enumerate(sources):
            name = source.name or f"Source {index + 1}"
            try:
                extracted = await self.extractor.extract(source)
            except Exception as e:
                logger.error("Failed to process source %s (%s): %s", name, source.type, e)
                context_parts.append(error_notice(name, str(e)))
                warnings.append(IngestionWarning(source_name=name, source_type=source.type, message=str(e)))
                continue
            context_parts.extend(extracted.parts)
            processed.append(SourceInfo(name=extracted.name or name, type=source.type))

        stats = MaterialStats(source_count=len(processed), sources=processed, is_multimodal=True)
        logger.info(
            "Ingestion complete: %d/%d sources, %d parts, %d warnings in %.0f ms",
            len(processed),
            len(sources),
            len(context_parts),
            len(warnings),
            (time.perf_counter() - start) * 1000,
        )
        return StudyMaterial(
            context_parts=context_parts,
            sources=[info.name for info in processed],
            stats=stats,
            warnings=warnings,
            signature=signature,
        )
