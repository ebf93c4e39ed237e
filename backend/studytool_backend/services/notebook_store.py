from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from ..errors import NotFoundError, PolicyViolationError
from ..models.material import StudyMaterial
from ..models.notebook import ConversationTurn, NotebookSummary, QAEntry
from ..models.sources import Source, source_file_uri, source_url

logger = logging.getLogger(__name__)

DEFAULT_NOTEBOOK_ID = "default"


def source_signature(sources: Iterable[Source]) -> str:
    """Order-independent fingerprint of a source list, used to detect stale material."""
    keys = sorted(
        f"{source.type}:{source.name}:{source_url(source)}:{source_file_uri(source)}" for source in sources
    )
    return "|".join(keys)


@dataclass
class Notebook:
    id: str
    name: str
    is_default: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sources: list[Source] = field(default_factory=list)
    study_material: StudyMaterial | None = None
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    qa_history: list[QAEntry] = field(default_factory=list)
    suggested_questions: list[str] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class NotebookStore:
    """
    In-memory registry of notebooks keyed by id.

    Nothing here is persisted; material lives only as long as the process. Callers pass
    the notebook they operate on explicitly; the active id is only a fallback for
    requests that do not name one.
    """

    def __init__(self) -> None:
        self._notebooks: dict[str, Notebook] = {}
        self.active_id = DEFAULT_NOTEBOOK_ID
        self._notebooks[DEFAULT_NOTEBOOK_ID] = Notebook(
            id=DEFAULT_NOTEBOOK_ID,
            name="Default Notebook",
            is_default=True,
        )

    # Notebook registry

    def get(self, notebook_id: str | None = None) -> Notebook:
        key = notebook_id or self.active_id
        notebook = self._notebooks.get(key)
        if notebook is None:
            raise NotFoundError(f"Notebook not found: {key}")
        return notebook

    def set_active(self, notebook_id: str) -> Notebook:
        notebook = self.get(notebook_id)
        self.active_id = notebook.id
        return notebook

    def describe(self, notebook: Notebook) -> NotebookSummary:
        return NotebookSummary(
            id=notebook.id,
            name=notebook.name,
            is_default=notebook.is_default,
            created_at=notebook.created_at,
            source_count=len(notebook.sources),
            is_active=notebook.id == self.active_id,
        )

    def list_notebooks(self) -> list[NotebookSummary]:
        return [self.describe(nb) for nb in self._notebooks.values()]

    def create_notebook(self, name: str | None = None) -> Notebook:
        notebook = Notebook(id=uuid.uuid4().hex[:12], name=(name or "").strip() or "Untitled Notebook")
        self._notebooks[notebook.id] = notebook
        self.active_id = notebook.id
        logger.info("Created notebook %s (%s)", notebook.id, notebook.name)
        return notebook

    def rename_notebook(self, notebook_id: str, name: str) -> Notebook:
        notebook = self.get(notebook_id)
        if notebook.is_default:
            raise PolicyViolationError("Default Notebook cannot be renamed")
        notebook.name = name
        return notebook

    def delete_notebook(self, notebook_id: str) -> None:
        notebook = self.get(notebook_id)
        if notebook.is_default:
            raise PolicyViolationError("Default Notebook cannot be deleted")
        del self._notebooks[notebook.id]
        if self.active_id == notebook.id:
            self.active_id = DEFAULT_NOTEBOOK_ID
        logger.info("Deleted notebook %s", notebook.id)

    # Sources

    def add_source(self, notebook: Notebook, source: Source) -> Source:
        notebook.sources.append(source)
        return source

    def remove_source(self, notebook: Notebook, source_id: str) -> bool:
        for index, source in enumerate(notebook.sources):
            if source.id == source_id:
                del notebook.sources[index]
                return True
        return False

    def clear_sources(self, notebook: Notebook) -> None:
        notebook.sources = []
        self.clear_material(notebook)

    # Material

    def set_material(self, notebook: Notebook, material: StudyMaterial) -> None:
        notebook.study_material = material
        notebook.suggested_questions = []

    def clear_material(self, notebook: Notebook) -> None:
        notebook.study_material = None
        notebook.suggested_questions = []

    def is_stale(self, notebook: Notebook) -> bool:
        material = notebook.study_material
        if material is None:
            return True
        # Material built from configured defaults carries the empty signature.
        return material.signature != source_signature(notebook.sources)

    # History

    def add_qa_entry(self, notebook: Notebook, entry: QAEntry) -> None:
        notebook.qa_history.append(entry)

    def add_turn(self, notebook: Notebook, turn: ConversationTurn) -> None:
        notebook.conversation_history.append(turn)

    def clear_history(self, notebook: Notebook) -> None:
        notebook.conversation_history = []
        notebook.qa_history = []

    def stats(self, notebook: Notebook) -> dict[str, object]:
        material = notebook.study_material
        return {
            "activeNotebookId": self.active_id,
            "notebookId": notebook.id,
            "notebookName": notebook.name,
            "isDefaultNotebook": notebook.is_default,
            "materialLoaded": material is not None,
            "materialStale": material is not None and self.is_stale(notebook),
            "contextPartCount": len(material.context_parts) if material else 0,
            "ingestedAt": material.ingested_at.isoformat() if material else None,
            "historyLength": len(notebook.conversation_history),
            "qaHistoryLength": len(notebook.qa_history),
            "suggestedQuestionCount": len(notebook.suggested_questions),
            "sourceCount": len(notebook.sources),
            "notebookCount": len(self._notebooks),
        }
