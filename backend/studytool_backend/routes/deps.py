from __future__ import annotations

from fastapi import Request

from ..services.notebook_store import Notebook, NotebookStore
from ..services.study import StudyService

NOTEBOOK_HEADER = "X-Notebook-Id"


def get_store(request: Request) -> NotebookStore:
    return request.app.state.notebook_store


def get_study_service(request: Request) -> StudyService:
    return request.app.state.study_service


def resolve_notebook(request: Request) -> Notebook:
    """Notebook named by the request header, or the active notebook when none is given."""
    notebook_id = request.headers.get(NOTEBOOK_HEADER) or None
    return get_store(request).get(notebook_id)
