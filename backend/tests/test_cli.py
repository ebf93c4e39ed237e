from __future__ import annotations

import pytest

from studytool_backend import cli
from studytool_backend.config import reset_settings_cache


@pytest.fixture(autouse=True)
def offline_env(monkeypatch, tmp_path):
    """Run each command against a clean environment with no .env file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STUDYTOOL_LLM_PROVIDER", "none")
    for name in ("STUDYTOOL_DEFAULT_PDF_URL", "STUDYTOOL_DEFAULT_YOUTUBE_VIDEO_1", "STUDYTOOL_DEFAULT_YOUTUBE_VIDEO_2"):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_settings_cache()


def test_diagnostics(capsys):
    cli.main(["diagnostics"])
    out = capsys.readouterr().out
    assert "llm_provider: none" in out
    assert "api_key_configured: False" in out


def test_defaults_empty(capsys):
    cli.main(["defaults"])
    assert "No default sources configured." in capsys.readouterr().out


def test_defaults_lists_configured_sources(monkeypatch, capsys):
    monkeypatch.setenv("STUDYTOOL_DEFAULT_YOUTUBE_VIDEO_1", "https://youtu.be/dQw4w9WgXcQ")
    cli.main(["defaults"])
    out = capsys.readouterr().out
    assert "Oligopoly - Kinked Demand" in out
    assert "https://youtu.be/dQw4w9WgXcQ" in out


def test_probe_offline(capsys):
    cli.main(["probe"])
    out = capsys.readouterr().out
    assert "Connected: True" in out
    assert "Model: offline-placeholder" in out


def test_probe_without_api_key(monkeypatch):
    monkeypatch.setenv("STUDYTOOL_LLM_PROVIDER", "gemini")
    monkeypatch.delenv("STUDYTOOL_GEMINI_API_KEY", raising=False)
    with pytest.raises(SystemExit, match="Configuration error"):
        cli.main(["probe"])


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_files_requires_remote_store(capsys):
    cli.main(["files"])
    assert "Remote file store unavailable" in capsys.readouterr().out
