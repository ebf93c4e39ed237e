from __future__ import annotations

import platform
from datetime import datetime, timezone

from ..config import AppConfig


def system_probe() -> str:
    """
    Returns a string summarising host platform and time.
    """
    system = platform.system()
    release = platform.release()
    machine = platform.machine()
    timestamp = datetime.now(timezone.utc).isoformat()
    return f"{system} {release} ({machine}) @ {timestamp}"


def runtime_config(settings: AppConfig) -> dict[str, object]:
    """Non-secret view of the resolved configuration."""
    return {
        "llm_provider": settings.llm_provider,
        "gemini_model": settings.gemini_model,
        "api_key_configured": bool(settings.gemini_api_key),
        "youtube_strategy": settings.youtube_strategy,
        "verify_suggested_questions": settings.verify_suggested_questions,
        "max_upload_mb": settings.max_upload_mb,
        "llm_timeout_seconds": settings.llm_timeout_seconds,
        "upload_poll_timeout_seconds": settings.upload_poll_timeout_seconds,
        "python": platform.python_version(),
    }
