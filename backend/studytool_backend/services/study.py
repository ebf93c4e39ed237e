from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

from ..config import AppConfig
from ..errors import (
    MaterialNotIngestedError,
    NoSourcesError,
    RateLimitedError,
    StudyToolError,
    SummaryParseError,
    UpstreamError,
)
from ..models.material import ContextPart, StudyMaterial, TextPart
from ..models.notebook import ConversationTurn, QAEntry
from ..models.study import StudySummary, SummaryResult
from . import prompts
from .grounding import REFUSAL, enforce
from .ingestion import IngestionService
from .llm import GenerationMode, LLMBackend, is_rate_limit_message
from .notebook_store import Notebook, NotebookStore
from .parsing import as_string_list, extract_json_array, extract_json_object

logger = logging.getLogger(__name__)

MAX_SUMMARY_ITEMS = 12
MIN_QUESTION_LENGTH = 8
MAX_SUGGESTED_QUESTIONS = 7
MIN_VERIFIED_QUESTIONS = 4

GENERIC_FALLBACK_QUESTIONS = [
    "What are the main concepts?",
    "Can you explain this topic?",
    "What should I focus on?",
    "Help me understand this better",
]
NO_MATERIAL_QUESTIONS = [
    "Upload study material to get started",
    "What topics would you like to learn?",
    "Need help with anything?",
]


class StudyService:
    """Ask, dialogue, summary and suggestion use-cases over a notebook's study material."""

    def __init__(
        self,
        settings: AppConfig,
        store: NotebookStore,
        ingestion: IngestionService,
        backend: LLMBackend,
    ) -> None:
        self.settings = settings
        self.store = store
        self.ingestion = ingestion
        self._backend = backend

    @property
    def model_name(self) -> str:
        return self._backend.model_name

    # Material readiness

    async def ingest(self, notebook: Notebook) -> StudyMaterial:
        """Explicitly (re)build the notebook's material from its current sources."""
        async with notebook.lock:
            return await self._ingest_locked(notebook)

    async def ensure_material(self, notebook: Notebook) -> StudyMaterial:
        """
        Return ready material, re-ingesting when the source set changed since the last run.

        Runs under the notebook lock so concurrent requests share one re-ingestion; the
        returned snapshot stays valid for the caller even if a later ingestion replaces it.
        """
        async with notebook.lock:
            if notebook.study_material is not None and not self.store.is_stale(notebook):
                return notebook.study_material
            if not notebook.sources and not notebook.is_default:
                self.store.clear_material(notebook)
                raise MaterialNotIngestedError()
            logger.info("Material for notebook %s is missing or stale; re-ingesting", notebook.id)
            try:
                return await self._ingest_locked(notebook)
            except NoSourcesError as e:
                raise MaterialNotIngestedError(f"Study material not ingested yet: {e.message}") from e

    async def _ingest_locked(self, notebook: Notebook) -> StudyMaterial:
        material = await self.ingestion.ingest(list(notebook.sources), allow_defaults=notebook.is_default)
        self.store.set_material(notebook, material)
        return material

    # Model access

    async def _generate(self, parts: Sequence[ContextPart], mode: GenerationMode) -> str:
        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self._backend.generate(parts, mode),
                timeout=self.settings.llm_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"Model did not respond within {self.settings.llm_timeout_seconds:.0f}s", status_code=504
            ) from e
        except StudyToolError:
            raise
        except Exception as e:
            if is_rate_limit_message(str(e)):
                raise RateLimitedError(f"Model rate limit or quota exceeded: {e}") from e
            raise UpstreamError(f"Model call failed: {e}") from e
        logger.debug("%s generation took %.0f ms", mode, (time.perf_counter() - start) * 1000)
        return (raw or "").strip()

    # Use-cases

    async def ask(self, notebook: Notebook, question: str, *, record: bool = True) -> QAEntry:
        material = await self.ensure_material(notebook)
        parts: list[ContextPart] = [
            TextPart(text=prompts.system_instructions("qa")),
            *material.context_parts,
            TextPart(text=prompts.question_prompt(question)),
        ]
        raw = await self._generate(parts, "qa")
        grounded = enforce(raw, material.sources, "qa")
        entry = QAEntry(
            question=question,
            answer=grounded.answer,
            is_grounded=grounded.is_grounded,
            sources=list(material.sources),
        )
        if record:
            self.store.add_qa_entry(notebook, entry)
        return entry

    async def dialogue_turn(self, notebook: Notebook, message: str) -> ConversationTurn:
        material = await self.ensure_material(notebook)
        history = [(turn.student_message, turn.teacher_response) for turn in notebook.conversation_history]
        logger.debug("Dialogue: %d context parts, %d previous turns", len(material.context_parts), len(history))

        parts: list[ContextPart] = [
            TextPart(text=prompts.system_instructions("dialogue")),
            *material.context_parts,
            TextPart(text=prompts.history_prompt(history)),
            TextPart(text=prompts.dialogue_prompt(message)),
        ]
        raw = await self._generate(parts, "dialogue")
        grounded = enforce(raw, material.sources, "dialogue")
        turn = ConversationTurn(
            student_message=message,
            teacher_response=grounded.answer,
            is_grounded=grounded.is_grounded,
            sources=list(material.sources),
            conversation_length=len(notebook.conversation_history) + 1,
        )
        self.store.add_turn(notebook, turn)
        return turn

    async def summarize(self, notebook: Notebook) -> SummaryResult:
        material = await self.ensure_material(notebook)
        parts: list[ContextPart] = [
            TextPart(text=prompts.system_instructions("qa")),
            *material.context_parts,
            TextPart(text=prompts.SUMMARY_INSTRUCTIONS),
        ]
        raw = await self._generate(parts, "summary")
        try:
            parsed = extract_json_object(raw)
        except ValueError as e:
            logger.warning("Summary JSON parse failed (%s); retrying with JSON-only reminder", e)
            raw = await self._generate([*parts, TextPart(text=prompts.JSON_ONLY_REMINDER)], "summary")
            try:
                parsed = extract_json_object(raw)
            except ValueError as retry_error:
                logger.error("Summary JSON parse failed after retry: %s", retry_error)
                raise SummaryParseError(raw) from retry_error

        grounded = enforce(raw, material.sources, "summary")
        if not grounded.is_grounded:
            summary = StudySummary(overview=REFUSAL, concepts=[], exam_tips=[])
        else:
            summary = StudySummary(
                overview=str(parsed.get("overview") or "").strip(),
                concepts=as_string_list(parsed.get("concepts"))[:MAX_SUMMARY_ITEMS],
                exam_tips=as_string_list(parsed.get("examTips", parsed.get("exam_tips")))[:MAX_SUMMARY_ITEMS],
            )
        return SummaryResult(summary=summary, is_grounded=grounded.is_grounded, sources=list(material.sources))

    async def suggest_questions(self, notebook: Notebook, force: bool = False) -> list[str]:
        if notebook.suggested_questions and not force:
            return list(notebook.suggested_questions)

        material = await self.ensure_material(notebook)
        parts: list[ContextPart] = [
            TextPart(text=prompts.system_instructions("qa")),
            *material.context_parts,
            TextPart(text=prompts.SUGGEST_INSTRUCTIONS),
        ]
        raw = await self._generate(parts, "suggest")
        try:
            candidates = extract_json_array(raw)
        except ValueError as e:
            logger.warning("Suggested questions were not a JSON array: %s", e)
            return list(GENERIC_FALLBACK_QUESTIONS)

        questions: list[str] = []
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            question = candidate.strip()
            if len(question) >= MIN_QUESTION_LENGTH and question not in questions:
                questions.append(question)
        questions = questions[:MAX_SUGGESTED_QUESTIONS]
        if not questions:
            return list(GENERIC_FALLBACK_QUESTIONS)

        if self.settings.verify_suggested_questions:
            questions = await self._verify_questions(notebook, questions)

        notebook.suggested_questions = list(questions)
        return questions

    async def _verify_questions(self, notebook: Notebook, questions: list[str]) -> list[str]:
        verified: list[str] = []
        for question in questions:
            entry = await self.ask(notebook, question, record=False)
            if entry.is_grounded:
                verified.append(question)
        if len(verified) < MIN_VERIFIED_QUESTIONS:
            logger.info(
                "Only %d of %d suggested questions verified as grounded; keeping unverified list",
                len(verified),
                len(questions),
            )
            return questions
        return verified

    async def probe(self) -> dict[str, object]:
        raw = await self._generate([TextPart(text=prompts.PROBE_PROMPT)], "qa")
        return {
            "connected": "ok" in raw.lower(),
            "model": self.model_name,
            "rawResponse": raw,
        }
