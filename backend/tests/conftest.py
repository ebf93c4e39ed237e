from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from studytool_backend.app import create_app
from studytool_backend.config import AppConfig, reset_settings_cache
from studytool_backend.services.extractors import SourceExtractor
from studytool_backend.services.file_store import RemoteFile
from studytool_backend.services.ingestion import IngestionService
from studytool_backend.services.notebook_store import NotebookStore
from studytool_backend.services.study import StudyService


class FakeLLM:
    """Returns queued replies in order and records every prompt it receives."""

    model_name = "fake-model"

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    async def generate(self, parts, mode):
        self.calls.append((list(parts), mode))
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeFileStore:
    def __init__(self):
        self.uploads = []

    async def upload(self, path: Path, mime_type: str, display_name: str | None = None) -> RemoteFile:
        return await self.upload_bytes(path.read_bytes(), display_name or path.name, mime_type)

    async def upload_bytes(self, data: bytes, filename: str, mime_type: str) -> RemoteFile:
        self.uploads.append((filename, mime_type, len(data)))
        index = len(self.uploads)
        return RemoteFile(
            name=f"files/{index}",
            uri=f"https://files.example/v1/files/{index}",
            mime_type=mime_type,
        )


class FakeDriveFetcher:
    def __init__(self, data: bytes = b"%PDF-1.4 not really a pdf", error: Exception | None = None):
        self.data = data
        self.error = error
        self.fetched = []

    async def fetch(self, file_id: str) -> bytes:
        self.fetched.append(file_id)
        if self.error is not None:
            raise self.error
        return self.data


class FakeTranscriptFetcher:
    def __init__(self, text: str = "Firms in an oligopoly face a kinked demand curve.", error: Exception | None = None):
        self.text = text
        self.error = error

    async def fetch(self, video_id: str) -> str:
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def settings() -> AppConfig:
    reset_settings_cache()
    return AppConfig(_env_file=None, llm_provider="none", verify_suggested_questions=False)


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def file_store() -> FakeFileStore:
    return FakeFileStore()


@pytest.fixture
def drive_fetcher() -> FakeDriveFetcher:
    return FakeDriveFetcher()


@pytest.fixture
def transcript_fetcher() -> FakeTranscriptFetcher:
    return FakeTranscriptFetcher()


@pytest.fixture
def extractor(settings, file_store, drive_fetcher, transcript_fetcher) -> SourceExtractor:
    return SourceExtractor(
        settings,
        file_store,
        drive_fetcher=drive_fetcher,
        transcript_fetcher=transcript_fetcher,
    )


@pytest.fixture
def ingestion(settings, extractor) -> IngestionService:
    return IngestionService(settings, extractor)


@pytest.fixture
def store() -> NotebookStore:
    return NotebookStore()


@pytest.fixture
def study(settings, store, ingestion, llm) -> StudyService:
    return StudyService(settings, store, ingestion, llm)


@pytest.fixture
def client(settings, llm, file_store, drive_fetcher, transcript_fetcher):
    app = create_app(
        settings,
        llm=llm,
        file_store=file_store,
        drive_fetcher=drive_fetcher,
        transcript_fetcher=transcript_fetcher,
    )
    with TestClient(app) as test_client:
        yield test_client
