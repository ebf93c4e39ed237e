from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors

from studytool_backend.config import AppConfig
from studytool_backend.errors import RateLimitedError, UpstreamError
from studytool_backend.models.material import FileRefPart, TextPart
from studytool_backend.services.llm import DummyBackend, GeminiBackend, create_llm_backend


class FakeModels:
    def __init__(self, text="  answer  ", error=None):
        self.text = text
        self.error = error
        self.requests = []

    async def generate_content(self, model, contents, config):
        self.requests.append((model, contents, config))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _backend(models, **overrides):
    settings = AppConfig(_env_file=None, gemini_api_key="test-key", **overrides)
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiBackend(client=client, settings=settings)


@pytest.mark.asyncio
async def test_gemini_backend_builds_request_per_mode():
    models = FakeModels()
    backend = _backend(models, gemini_model="gemini-test")
    parts = [TextPart(text="rules"), FileRefPart(file_uri="https://files.example/1")]

    assert await backend.generate(parts, "summary") == "answer"

    model, contents, config = models.requests[0]
    assert model == "gemini-test"
    assert len(contents) == 2
    assert contents[1].file_data.file_uri == "https://files.example/1"
    assert config.temperature == 0.0
    assert config.max_output_tokens == 4096
    assert config.response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_gemini_backend_plain_text_for_qa():
    models = FakeModels()
    await _backend(models).generate([TextPart(text="q")], "qa")
    config = models.requests[0][2]
    assert config.temperature == 0.1
    assert config.response_mime_type is None


@pytest.mark.asyncio
async def test_gemini_rate_limit_is_mapped():
    error = genai_errors.APIError(429, {"error": {"message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}})
    with pytest.raises(RateLimitedError):
        await _backend(FakeModels(error=error)).generate([TextPart(text="q")], "qa")


@pytest.mark.asyncio
async def test_gemini_server_error_is_upstream():
    error = genai_errors.APIError(503, {"error": {"message": "Service unavailable", "status": "UNAVAILABLE"}})
    with pytest.raises(UpstreamError) as excinfo:
        await _backend(FakeModels(error=error)).generate([TextPart(text="q")], "qa")
    assert not isinstance(excinfo.value, RateLimitedError)


def test_missing_api_key_is_a_configuration_error():
    settings = AppConfig(_env_file=None, llm_provider="gemini", gemini_api_key="your_gemini_api_key_here")
    with pytest.raises(ValueError):
        create_llm_backend(settings)


@pytest.mark.asyncio
async def test_offline_backend():
    backend = create_llm_backend(AppConfig(_env_file=None, llm_provider="none"))
    assert isinstance(backend, DummyBackend)
    assert await backend.generate([TextPart(text='Say "ok" if you are available.')], "qa") == "ok"
