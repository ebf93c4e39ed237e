from __future__ import annotations

import asyncio
import io

import pytest
from pypdf import PdfWriter

from studytool_backend.config import AppConfig
from studytool_backend.errors import MaterialNotIngestedError, RateLimitedError, SummaryParseError, UpstreamError
from studytool_backend.models.material import FileRefPart, TextPart
from studytool_backend.models.sources import TextSource
from studytool_backend.services.extractors import process_upload
from studytool_backend.services.grounding import REFUSAL
from studytool_backend.services.study import GENERIC_FALLBACK_QUESTIONS, StudyService

SUMMARY_JSON = (
    '{"overview": "Supply and price move together (Source: Econ Note).",'
    ' "concepts": ["Law of supply (Source: Econ Note)"],'
    ' "examTips": ["Draw the supply curve (Source: Econ Note)"]}'
)


@pytest.fixture
def notebook(store):
    notebook = store.get()
    store.add_source(notebook, TextSource(name="Econ Note", content="Supply rises when price rises."))
    return notebook


def _prompt_text(call) -> str:
    parts, _ = call
    return "\n".join(part.text for part in parts if isinstance(part, TextPart))


@pytest.mark.asyncio
async def test_ask_ingests_on_demand_and_records_history(study, notebook, llm):
    llm.queue("Supply rises when price rises. (Source: Econ Note)")
    entry = await study.ask(notebook, "What happens to supply when price rises?")

    assert entry.is_grounded is True
    assert entry.answer == "Supply rises when price rises. (Source: Econ Note)"
    assert entry.sources == ["Econ Note"]
    assert notebook.qa_history == [entry]
    prompt = _prompt_text(llm.calls[0])
    assert "=== SOURCE: Econ Note (Text) ===" in prompt
    assert prompt.rstrip().endswith("Student Question: What happens to supply when price rises?")
    assert llm.calls[0][1] == "qa"


@pytest.mark.asyncio
async def test_uncited_answer_is_refused(study, notebook, llm):
    llm.queue("Prices go up because of inflation.")
    entry = await study.ask(notebook, "Why do prices go up?")
    assert entry.answer == REFUSAL
    assert entry.is_grounded is False


@pytest.mark.asyncio
async def test_unrecorded_ask_leaves_history_untouched(study, notebook, llm):
    llm.queue("Page 2 (Physical) says so.")
    await study.ask(notebook, "Anything?", record=False)
    assert notebook.qa_history == []


@pytest.mark.asyncio
async def test_material_is_rebuilt_after_sources_change(study, store, notebook, llm):
    llm.queue("(Source: Econ Note)", "(Source: Cartels)")
    await study.ask(notebook, "First?")
    first_material = notebook.study_material

    store.add_source(notebook, TextSource(name="Cartels", content="Cartels restrict output."))
    await study.ask(notebook, "Second?")

    assert notebook.study_material is not first_material
    assert notebook.study_material.sources == ["Econ Note", "Cartels"]
    assert "Cartels restrict output." in _prompt_text(llm.calls[1])


@pytest.mark.asyncio
async def test_notebook_without_sources_is_not_ingested(study, store):
    notebook = store.create_notebook("Empty")
    with pytest.raises(MaterialNotIngestedError):
        await study.ask(notebook, "Anything?")


@pytest.mark.asyncio
async def test_default_notebook_without_defaults_is_not_ingested(study, store):
    with pytest.raises(MaterialNotIngestedError):
        await study.summarize(store.get())


@pytest.mark.asyncio
async def test_dialogue_carries_history(study, notebook, llm):
    llm.queue("Hi! Ready to study?", "The law of supply says quantity rises with price (Source: Econ Note).")
    first = await study.dialogue_turn(notebook, "Hello there")
    second = await study.dialogue_turn(notebook, "Explain the law of supply please")

    assert first.is_grounded is True
    assert first.conversation_length == 1
    assert second.conversation_length == 2
    assert "Turn 1 - Student: Hello there\nTutor: Hi! Ready to study?" in _prompt_text(llm.calls[1])
    assert llm.calls[1][1] == "dialogue"


@pytest.mark.asyncio
async def test_summary_parses_fenced_json(study, notebook, llm):
    llm.queue(f"```json\n{SUMMARY_JSON}\n```")
    result = await study.summarize(notebook)

    assert result.is_grounded is True
    assert result.summary.overview.startswith("Supply and price move together")
    assert result.summary.exam_tips == ["Draw the supply curve (Source: Econ Note)"]
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_summary_retries_once_with_json_reminder(study, notebook, llm):
    llm.queue("Sure! Here is a summary in prose.", SUMMARY_JSON)
    result = await study.summarize(notebook)

    assert result.summary.concepts == ["Law of supply (Source: Econ Note)"]
    assert len(llm.calls) == 2
    assert "could not be parsed" in _prompt_text(llm.calls[1])


@pytest.mark.asyncio
async def test_summary_parse_failure_is_typed(study, notebook, llm):
    llm.queue("not json", "still not json")
    with pytest.raises(SummaryParseError) as excinfo:
        await study.summarize(notebook)
    assert excinfo.value.raw_text == "still not json"


@pytest.mark.asyncio
async def test_uncited_summary_is_refused(study, notebook, llm):
    llm.queue('{"overview": "Generic economics.", "concepts": ["Markets"], "examTips": []}')
    result = await study.summarize(notebook)
    assert result.is_grounded is False
    assert result.summary.overview == REFUSAL
    assert result.summary.concepts == []


@pytest.mark.asyncio
async def test_suggestions_are_cached(study, notebook, llm):
    llm.queue('["What is the law of supply?", "short", 42, "How does price affect supply?"]')
    first = await study.suggest_questions(notebook)
    calls = len(llm.calls)
    second = await study.suggest_questions(notebook)

    assert first == ["What is the law of supply?", "How does price affect supply?"]
    assert second == first
    assert len(llm.calls) == calls


@pytest.mark.asyncio
async def test_forced_suggestions_call_the_model_again(study, notebook, llm):
    llm.queue('["What is the law of supply?"]', '["Why does supply slope upward?"]')
    await study.suggest_questions(notebook)
    assert await study.suggest_questions(notebook, force=True) == ["Why does supply slope upward?"]


@pytest.mark.asyncio
async def test_unparseable_suggestions_fall_back_without_caching(study, notebook, llm):
    llm.queue("I cannot think of any questions.")
    assert await study.suggest_questions(notebook) == GENERIC_FALLBACK_QUESTIONS
    assert notebook.suggested_questions == []


@pytest.mark.asyncio
async def test_suggestions_are_verified_against_material(store, ingestion, notebook, llm):
    settings = AppConfig(_env_file=None, llm_provider="none", verify_suggested_questions=True)
    service = StudyService(settings, store, ingestion, llm)
    questions = [f"Question number {i} about supply?" for i in range(6)]
    llm.queue(str(questions).replace("'", '"'))
    llm.queue(*["(Source: Econ Note)"] * 5, "Unrelated answer.")

    result = await service.suggest_questions(notebook)

    assert result == questions[:5]
    assert notebook.qa_history == []


@pytest.mark.asyncio
async def test_rate_limit_errors_are_classified(study, notebook, llm):
    llm.queue(RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"))
    with pytest.raises(RateLimitedError):
        await study.ask(notebook, "Anything?")


@pytest.mark.asyncio
async def test_model_calls_are_bounded(store, ingestion, notebook):
    class SlowLLM:
        model_name = "slow"

        async def generate(self, parts, mode):
            await asyncio.sleep(5)
            return "late"

    settings = AppConfig(_env_file=None, llm_provider="none", llm_timeout_seconds=0.01)
    service = StudyService(settings, store, ingestion, SlowLLM())
    with pytest.raises(UpstreamError) as excinfo:
        await service.ask(notebook, "Anything?")
    assert excinfo.value.status_code == 504


@pytest.mark.asyncio
async def test_probe(study, llm):
    llm.queue("OK")
    assert await study.probe() == {"connected": True, "model": "fake-model", "rawResponse": "OK"}


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_ingestion(study, notebook, llm, monkeypatch):
    ingest_calls = []
    original_ingest = study.ingestion.ingest

    async def slow_ingest(sources, *, allow_defaults=False):
        ingest_calls.append([source.name for source in sources])
        await asyncio.sleep(0.05)
        return await original_ingest(sources, allow_defaults=allow_defaults)

    monkeypatch.setattr(study.ingestion, "ingest", slow_ingest)
    llm.queue("(Source: Econ Note)", "(Source: Econ Note)", "(Source: Econ Note)")

    entries = await asyncio.gather(*(study.ask(notebook, f"Question {n}?") for n in range(3)))

    assert ingest_calls == [["Econ Note"]]
    assert all(entry.is_grounded for entry in entries)
    assert len(notebook.qa_history) == 3


def _blank_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.mark.asyncio
async def test_uploaded_pdf_is_named_and_paged_in_prompt(study, store, file_store, llm):
    notebook = store.get()
    source = await process_upload(_blank_pdf(3), "chapter.pdf", "application/pdf", file_store)
    assert source.page_count == 3
    store.add_source(notebook, source)

    llm.queue("Cartels tend to collapse when members cheat, Page 2 (Physical).")
    entry = await study.ask(notebook, "Why do cartels collapse?")

    parts, _ = llm.calls[0]
    file_index = next(i for i, part in enumerate(parts) if isinstance(part, FileRefPart))
    assert parts[file_index].file_uri == source.file_uri
    assert "=== SOURCE: chapter.pdf (Uploaded PDF) ===" in parts[file_index - 1].text
    assert "=== SOURCE META: chapter.pdf ===" in parts[file_index + 1].text
    assert "Physical page count: 3" in parts[file_index + 1].text
    assert entry.is_grounded is True
    assert entry.sources == ["chapter.pdf"]
