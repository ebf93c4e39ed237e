"""
Study tool CLI utilities.

Usage:
    studytool diagnostics
    studytool defaults
    studytool probe
    studytool files
    studytool serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

import uvicorn

from .config import get_settings, reset_settings_cache
from .errors import StudyToolError
from .services.extractors import SourceExtractor
from .services.file_store import GeminiFileStore, create_file_store
from .services.ingestion import IngestionService, default_sources
from .services.llm import create_genai_client, create_llm_backend
from .services.notebook_store import NotebookStore
from .services.study import StudyService
from .services.system import runtime_config, system_probe


def cmd_diagnostics(_: argparse.Namespace) -> None:
    reset_settings_cache()
    settings = get_settings()
    print("Configuration")
    print("-" * 40)
    for key, value in runtime_config(settings).items():
        print(f"{key}: {value}")
    print(f"host: {system_probe()}")


def cmd_defaults(_: argparse.Namespace) -> None:
    reset_settings_cache()
    sources = default_sources(get_settings())
    if not sources:
        print("No default sources configured.")
        return
    print(f"{'Type':<8} {'Name':<30} {'URL'}")
    print("-" * 70)
    for source in sources:
        print(f"{source.type:<8} {source.name[:29]:<30} {source.url}")


def cmd_probe(_: argparse.Namespace) -> None:
    reset_settings_cache()
    settings = get_settings()
    try:
        client = create_genai_client(settings) if settings.llm_provider == "gemini" else None
    except ValueError as exc:
        raise SystemExit(f"Configuration error: {exc}")
    extractor = SourceExtractor(settings, create_file_store(settings, client=client))
    service = StudyService(
        settings,
        NotebookStore(),
        IngestionService(settings, extractor),
        create_llm_backend(settings, client=client),
    )
    try:
        result = asyncio.run(service.probe())
    except StudyToolError as exc:
        raise SystemExit(f"Model probe failed: {exc.message}")
    print(f"Model: {result['model']}")
    print(f"Connected: {result['connected']}")
    print(f"Response: {result['rawResponse']}")


def cmd_files(_: argparse.Namespace) -> None:
    reset_settings_cache()
    settings = get_settings()
    if settings.llm_provider != "gemini":
        print("Remote file store unavailable: LLM provider is not gemini.")
        return
    try:
        store = GeminiFileStore(client=create_genai_client(settings))
    except ValueError as exc:
        raise SystemExit(f"Configuration error: {exc}")
    try:
        files = asyncio.run(store.list_files())
    except StudyToolError as exc:
        raise SystemExit(f"Listing remote files failed: {exc.message}")
    if not files:
        print("No remote files uploaded yet.")
        return
    print(f"{'Name':<24} {'MIME':<20} {'URI'}")
    print("-" * 90)
    for file in files:
        print(f"{file.name[:23]:<24} {file.mime_type[:19]:<20} {file.uri}")


def cmd_serve(args: argparse.Namespace) -> None:
    uvicorn.run(
        "studytool_backend.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Interactive study tool utility CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("diagnostics", help="Show resolved configuration")
    sub.add_parser("defaults", help="List configured fallback sources for the default notebook")
    sub.add_parser("probe", help="Check connectivity to the configured model")
    sub.add_parser("files", help="List files in the remote model file store")
    serve_parser = sub.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    if args.command == "diagnostics":
        cmd_diagnostics(args)
    elif args.command == "defaults":
        cmd_defaults(args)
    elif args.command == "probe":
        cmd_probe(args)
    elif args.command == "files":
        cmd_files(args)
    elif args.command == "serve":
        cmd_serve(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
