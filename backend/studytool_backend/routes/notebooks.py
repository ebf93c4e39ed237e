from __future__ import annotations

from fastapi import APIRouter, Body, Request

from ..errors import InvalidInputError
from ..models.notebook import NotebookCreateRequest, NotebookRenameRequest
from .deps import get_store

router = APIRouter(prefix="/notebooks", tags=["notebooks"])


@router.get("")
async def list_notebooks(request: Request) -> dict[str, object]:
    store = get_store(request)
    return {
        "success": True,
        "notebooks": [nb.model_dump(by_alias=True, mode="json") for nb in store.list_notebooks()],
        "activeNotebookId": store.active_id,
    }


@router.post("")
async def create_notebook(
    request: Request,
    payload: NotebookCreateRequest | None = Body(default=None),
) -> dict[str, object]:
    store = get_store(request)
    notebook = store.create_notebook(payload.name if payload else None)
    return {"success": True, "notebook": store.describe(notebook).model_dump(by_alias=True, mode="json")}


@router.patch("/{notebook_id}")
async def rename_notebook(request: Request, notebook_id: str, payload: NotebookRenameRequest) -> dict[str, object]:
    name = (payload.name or "").strip()
    if not name:
        raise InvalidInputError("Notebook name is required")
    store = get_store(request)
    notebook = store.rename_notebook(notebook_id, name)
    return {"success": True, "notebook": store.describe(notebook).model_dump(by_alias=True, mode="json")}


@router.delete("/{notebook_id}")
async def delete_notebook(request: Request, notebook_id: str) -> dict[str, object]:
    store = get_store(request)
    store.delete_notebook(notebook_id)
    return {"success": True, "activeNotebookId": store.active_id}


@router.post("/{notebook_id}/activate")
async def activate_notebook(request: Request, notebook_id: str) -> dict[str, object]:
    store = get_store(request)
    notebook = store.set_active(notebook_id)
    return {"success": True, "notebook": store.describe(notebook).model_dump(by_alias=True, mode="json")}
