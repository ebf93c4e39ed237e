from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from .config import AppConfig, get_settings
from .errors import StudyToolError
from .routes import health, notebooks, sources, study
from .services.extractors import DriveFetcher, SourceExtractor, TranscriptFetcher
from .services.file_store import RemoteFileStore, create_file_store
from .services.ingestion import IngestionService
from .services.llm import LLMBackend, create_genai_client, create_llm_backend
from .services.notebook_store import NotebookStore
from .services.study import StudyService
from .services.system import runtime_config

logger = logging.getLogger(__name__)

BANNER = "Interactive Study Tool API is running"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StudyToolError)
    async def handle_study_error(request: Request, exc: StudyToolError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "invalid request")
        return _error(400, f"Invalid request: {location + ': ' if location else ''}{detail}")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and request.url.path.startswith("/api"):
            return _error(404, "API route not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Something went wrong. Please try again.")


def create_app(
    settings: AppConfig | None = None,
    *,
    llm: LLMBackend | None = None,
    file_store: RemoteFileStore | None = None,
    drive_fetcher: DriveFetcher | None = None,
    transcript_fetcher: TranscriptFetcher | None = None,
) -> FastAPI:
    """Create the FastAPI application for the grounded study tool backend."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Interactive Study Tool",
        version="0.1.0",
        description="Grounded study assistant API: ingest sources, then ask, discuss, summarize and explore.",
    )

    # Bootstrap services
    client = None
    if settings.llm_provider == "gemini" and (llm is None or file_store is None):
        client = create_genai_client(settings)
    backend = llm or create_llm_backend(settings, client=client)
    store = file_store or create_file_store(settings, client=client)
    extractor = SourceExtractor(
        settings,
        store,
        drive_fetcher=drive_fetcher,
        transcript_fetcher=transcript_fetcher,
    )
    notebook_store = NotebookStore()

    app.state.settings = settings
    app.state.file_store = store
    app.state.notebook_store = notebook_store
    app.state.study_service = StudyService(settings, notebook_store, IngestionService(settings, extractor), backend)
    logger.info("Study tool backend configured: %s", runtime_config(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, prefix="/api")
    app.include_router(sources.router, prefix="/api")
    app.include_router(study.router, prefix="/api")
    app.include_router(notebooks.router, prefix="/api")

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root() -> str:
        return BANNER

    return app
