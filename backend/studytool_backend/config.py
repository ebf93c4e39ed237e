from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_API_KEYS = {"", "your_gemini_api_key_here"}


class GenerationProfile(BaseModel):
    temperature: float
    max_output_tokens: int = 2048
    top_p: float = 0.8
    top_k: int = 20
    json_output: bool = False


class AppConfig(BaseSettings):
    llm_provider: Literal["gemini", "none"] = "gemini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Generation profiles per orchestration mode
    qa_profile: GenerationProfile = GenerationProfile(temperature=0.1)
    dialogue_profile: GenerationProfile = GenerationProfile(temperature=0.3)
    summary_profile: GenerationProfile = GenerationProfile(temperature=0.0, max_output_tokens=4096, json_output=True)
    suggest_profile: GenerationProfile = GenerationProfile(temperature=0.2, json_output=True)

    # Suspension-point bounds
    llm_timeout_seconds: float = 120.0
    upload_poll_interval_seconds: float = 2.0
    upload_poll_timeout_seconds: float = 300.0
    download_timeout_seconds: float = 60.0

    max_upload_mb: int = 10
    youtube_strategy: Literal["reference", "transcript"] = "reference"
    verify_suggested_questions: bool = True

    # Fallback material for the default notebook
    default_pdf_url: str | None = None
    default_youtube_video_1: str | None = None
    default_youtube_video_2: str | None = None

    cors_origins: list[str] = ["http://localhost:5173"]

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STUDYTOOL_", extra="ignore")

    def profile_for(self, mode: str) -> GenerationProfile:
        profiles = {
            "qa": self.qa_profile,
            "dialogue": self.dialogue_profile,
            "summary": self.summary_profile,
            "suggest": self.suggest_profile,
        }
        return profiles.get(mode, self.qa_profile)

    def require_api_key(self) -> str:
        key = (self.gemini_api_key or "").strip()
        if key in PLACEHOLDER_API_KEYS:
            raise ValueError(
                "STUDYTOOL_GEMINI_API_KEY is not set or is using a placeholder value. "
                "Set a valid key in your environment or .env file."
            )
        return key


@lru_cache(maxsize=1)
def get_settings() -> AppConfig:
    return AppConfig()


def reset_settings_cache() -> None:
    get_settings.cache_clear()
