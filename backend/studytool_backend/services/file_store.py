from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..config import AppConfig
from ..errors import ProcessingFailedError, ProcessingTimeoutError, UpstreamError
from .llm import create_genai_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteFile:
    name: str
    uri: str
    mime_type: str


class RemoteFileStore(Protocol):
    async def upload(self, path: Path, mime_type: str, display_name: str | None = None) -> RemoteFile:
        ...

    async def upload_bytes(self, data: bytes, filename: str, mime_type: str) -> RemoteFile:
        ...


def _state_name(file: types.File) -> str:
    state = getattr(file, "state", None)
    if state is None:
        return ""
    return str(getattr(state, "name", state)).upper()


async def upload_via_temp_file(store: RemoteFileStore, data: bytes, filename: str, mime_type: str) -> RemoteFile:
    """Spill an in-memory buffer to disk, upload it, and always remove the temp copy."""
    suffix = Path(filename).suffix
    fd, tmp_name = tempfile.mkstemp(prefix="upload_", suffix=suffix)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        return await store.upload(tmp_path, mime_type, display_name=filename)
    finally:
        tmp_path.unlink(missing_ok=True)


@dataclass
class GeminiFileStore:
    """Uploads binaries to the Gemini File API and waits until they are usable."""

    client: genai.Client
    poll_interval: float = 2.0
    poll_timeout: float = 300.0

    async def upload(self, path: Path, mime_type: str, display_name: str | None = None) -> RemoteFile:
        display_name = display_name or path.name
        logger.info("Uploading %s to Gemini (%s)", display_name, mime_type)
        try:
            file = await self.client.aio.files.upload(
                file=str(path),
                config=types.UploadFileConfig(mime_type=mime_type, display_name=display_name),
            )
            file = await self._wait_until_active(file)
        except genai_errors.APIError as e:
            raise UpstreamError(f"Gemini file upload failed: {e}") from e

        logger.info("File %s is active: %s", display_name, file.uri)
        return RemoteFile(name=file.name or "", uri=file.uri or "", mime_type=file.mime_type or mime_type)

    async def upload_bytes(self, data: bytes, filename: str, mime_type: str) -> RemoteFile:
        return await upload_via_temp_file(self, data, filename, mime_type)

    async def _wait_until_active(self, file: types.File) -> types.File:
        deadline = time.monotonic() + self.poll_timeout
        while _state_name(file) == "PROCESSING":
            if time.monotonic() >= deadline:
                raise ProcessingTimeoutError(
                    f"File {file.display_name or file.name} was still processing after {self.poll_timeout:.0f}s"
                )
            logger.debug("File %s is processing...", file.name)
            await asyncio.sleep(self.poll_interval)
            file = await self.client.aio.files.get(name=file.name)

        if _state_name(file) == "FAILED":
            raise ProcessingFailedError(f"Remote processing failed for {file.display_name or file.name}")
        return file

    async def list_files(self) -> list[RemoteFile]:
        files: list[RemoteFile] = []
        try:
            async for file in await self.client.aio.files.list():
                files.append(RemoteFile(name=file.name or "", uri=file.uri or "", mime_type=file.mime_type or ""))
        except genai_errors.APIError as e:
            raise UpstreamError(f"Listing Gemini files failed: {e}") from e
        return files


@dataclass
class OfflineFileStore:
    """Used when no model provider is configured; binary sources cannot be ingested."""

    async def upload(self, path: Path, mime_type: str, display_name: str | None = None) -> RemoteFile:
        raise ProcessingFailedError(
            "Remote file store unavailable: configure STUDYTOOL_LLM_PROVIDER=gemini to upload PDFs and images"
        )

    async def upload_bytes(self, data: bytes, filename: str, mime_type: str) -> RemoteFile:
        return await upload_via_temp_file(self, data, filename, mime_type)


def create_file_store(settings: AppConfig, client: genai.Client | None = None) -> RemoteFileStore:
    if settings.llm_provider == "gemini":
        return GeminiFileStore(
            client=client or create_genai_client(settings),
            poll_interval=settings.upload_poll_interval_seconds,
            poll_timeout=settings.upload_poll_timeout_seconds,
        )
    return OfflineFileStore()
