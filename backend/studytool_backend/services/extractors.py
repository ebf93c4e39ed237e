from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from ..config import AppConfig
from ..errors import InvalidURLError, UnsupportedTypeError, UpstreamError
from ..models.material import ContextPart, FileRefPart, TextPart
from ..models.sources import DriveSource, FileSource, Source, TextSource, YouTubeSource
from .document_loader import (
    PDF_MIME,
    DocumentLoaderError,
    count_pdf_pages,
    is_remote_kind,
    load_local_document,
    sniff_mime_type,
)
from .file_store import RemoteFileStore

logger = logging.getLogger(__name__)

DRIVE_ID_PATTERN = re.compile(r"[-\w]{25,}")
YOUTUBE_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([^&\n?#/]+)"),
    re.compile(r"youtube\.com/watch\?.*v=([^&\n?#]+)"),
]
DRIVE_DOWNLOAD_URL = "https://drive.google.com/uc?export=download&id={file_id}"


def extract_drive_file_id(url: str) -> str:
    match = DRIVE_ID_PATTERN.search(url or "")
    if not match:
        raise InvalidURLError("Invalid Google Drive URL")
    return match.group(0)


def extract_video_id(url: str) -> str:
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    raise InvalidURLError("Invalid YouTube URL")


def text_source_part(name: str, label: str, body: str) -> TextPart:
    return TextPart(text=f"\n=== SOURCE: {name} ({label}) ===\n{body}\n")


def page_count_notice(name: str, pages: int) -> TextPart:
    return TextPart(
        text=(
            f"\n=== SOURCE META: {name} ===\n"
            f"Physical page count: {pages}\n"
            f'Always cite using "Page X (Physical)" in the range 1-{pages}. '
            "Do not use printed page numbers if they differ from physical count.\n"
        )
    )


class DriveFetcher(Protocol):
    async def fetch(self, file_id: str) -> bytes:
        ...


class TranscriptFetcher(Protocol):
    async def fetch(self, video_id: str) -> str:
        ...


@dataclass
class HttpDriveFetcher:
    timeout: float = 60.0

    async def fetch(self, file_id: str) -> bytes:
        url = DRIVE_DOWNLOAD_URL.format(file_id=file_id)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"Drive download failed: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Cannot reach Google Drive: {e}") from e


@dataclass
class YouTubeTranscriptFetcher:
    languages: list[str] = field(default_factory=lambda: ["en"])

    async def fetch(self, video_id: str) -> str:
        from youtube_transcript_api import YouTubeTranscriptApi

        def _fetch() -> str:
            transcript = YouTubeTranscriptApi().fetch(video_id, languages=self.languages)
            return " ".join(snippet.text for snippet in transcript)

        return await asyncio.to_thread(_fetch)


@dataclass
class ExtractedSource:
    name: str
    parts: list[ContextPart]


class SourceExtractor:
    """Turns each source variant into prompt fragments."""

    def __init__(
        self,
        settings: AppConfig,
        file_store: RemoteFileStore,
        drive_fetcher: DriveFetcher | None = None,
        transcript_fetcher: TranscriptFetcher | None = None,
    ) -> None:
        self.settings = settings
        self.file_store = file_store
        self.drive_fetcher = drive_fetcher or HttpDriveFetcher(timeout=settings.download_timeout_seconds)
        self.transcript_fetcher = transcript_fetcher or YouTubeTranscriptFetcher()

    async def extract(self, source: Source) -> ExtractedSource:
        if isinstance(source, FileSource):
            return self._extract_file(source)
        if isinstance(source, DriveSource):
            return await self._extract_drive(source)
        if isinstance(source, YouTubeSource):
            return await self._extract_youtube(source)
        if isinstance(source, TextSource):
            return ExtractedSource(name=source.name, parts=[text_source_part(source.name, "Text", source.content)])
        raise UnsupportedTypeError(f"Unknown source type: {getattr(source, 'type', source)!r}")

    def _extract_file(self, source: FileSource) -> ExtractedSource:
        if not source.file_uri:
            return ExtractedSource(name=source.name, parts=[text_source_part(source.name, "File", source.text or "")])

        label = "Uploaded PDF" if source.file_type == "pdf" else "Uploaded Image"
        parts: list[ContextPart] = [
            text_source_part(source.name, label, "[Content is provided in the attached file that follows.]"),
            FileRefPart(file_uri=source.file_uri, mime_type=source.mime_type or PDF_MIME),
        ]
        if source.page_count:
            parts.append(page_count_notice(source.name, source.page_count))
        return ExtractedSource(name=source.name, parts=parts)

    async def _extract_drive(self, source: DriveSource) -> ExtractedSource:
        file_id = extract_drive_file_id(source.url)
        data = await self.drive_fetcher.fetch(file_id)
        pages = count_pdf_pages(data)
        remote = await self.file_store.upload_bytes(data, f"drive_{file_id}.pdf", PDF_MIME)
        parts: list[ContextPart] = [FileRefPart(file_uri=remote.uri, mime_type=remote.mime_type or PDF_MIME)]
        if pages:
            parts.append(page_count_notice(source.name, pages))
        return ExtractedSource(name=source.name, parts=parts)

    async def _extract_youtube(self, source: YouTubeSource) -> ExtractedSource:
        video_id = extract_video_id(source.url)
        if self.settings.youtube_strategy == "transcript":
            try:
                transcript = await self.transcript_fetcher.fetch(video_id)
            except Exception as e:
                logger.warning("Transcript fetch failed for %s: %s", video_id, e)
                transcript = f"[Transcript unavailable: failed to fetch transcript for video {video_id}: {e}]"
            body = f"URL: {source.url}\nVideo ID: {video_id}\nTranscript:\n{transcript}"
            return ExtractedSource(name=source.name, parts=[text_source_part(source.name, "YouTube Transcript", body)])

        body = (
            f"URL: {source.url}\n"
            f"Video ID: {video_id}\n"
            "[Instruction to Model: This is a YouTube video source. Please use your internal video "
            "understanding capabilities to access and analyze the content of this video from the provided URL.]"
        )
        return ExtractedSource(name=source.name, parts=[text_source_part(source.name, "YouTube Video", body)])


async def process_upload(
    data: bytes,
    filename: str,
    mime_type: str | None,
    file_store: RemoteFileStore,
) -> FileSource:
    """Convert an uploaded file into a FileSource, uploading PDFs and images to the remote store."""
    effective_mime = sniff_mime_type(mime_type, filename)
    if is_remote_kind(effective_mime):
        logger.info("Processing %s via remote file store", filename)
        is_pdf = effective_mime == PDF_MIME
        remote = await file_store.upload_bytes(data, filename, effective_mime)
        return FileSource(
            name=filename,
            file_type="pdf" if is_pdf else "image",
            file_uri=remote.uri,
            mime_type=remote.mime_type or effective_mime,
            page_count=count_pdf_pages(data) if is_pdf else None,
            size=len(data),
        )

    document = load_local_document(data, filename, effective_mime)
    if not document.text.strip():
        raise DocumentLoaderError(f"{filename} contains no extractable text")
    return FileSource(name=filename, file_type=document.file_type, text=document.text, size=len(data))
