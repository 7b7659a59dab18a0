from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from skillsync.config import DEFAULT_MARKETPLACE_URL, SkillSyncSettings, get_settings


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "SKILLSYNC_HOME",
        "SKILLSYNC_API_KEY",
        "SKILLSMP_API_KEY",
        "SKILLSYNC_GITHUB_TOKEN",
        "GITHUB_TOKEN",
        "SKILLSYNC_MARKETPLACE_URL",
        "SKILLSYNC_TIMEOUT",
        "SKILLSYNC_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    settings = SkillSyncSettings()
    assert settings.home == Path.home() / ".claude"
    assert settings.api_key is None
    assert settings.marketplace_url == DEFAULT_MARKETPLACE_URL
    assert settings.timeout == 30
    assert settings.log_level == "WARNING"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SKILLSYNC_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("SKILLSMP_API_KEY", "sk-test")
    monkeypatch.setenv("SKILLSYNC_MARKETPLACE_URL", "https://market.example/api/")
    monkeypatch.setenv("SKILLSYNC_LOG_LEVEL", "debug")

    settings = SkillSyncSettings()

    assert settings.home == tmp_path / "home"
    assert settings.api_key == "sk-test"
    assert settings.marketplace_url == "https://market.example/api"
    assert settings.log_level == "DEBUG"


def test_invalid_values(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SKILLSYNC_LOG_LEVEL", "loud")
    with pytest.raises(ValidationError):
        SkillSyncSettings()

    monkeypatch.setenv("SKILLSYNC_LOG_LEVEL", "INFO")
    monkeypatch.setenv("SKILLSYNC_MARKETPLACE_URL", "ftp://market.example")
    with pytest.raises(ValidationError):
        SkillSyncSettings()


def test_get_settings_is_cached(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    first = get_settings(force_reload=True)
    assert get_settings() is first
    assert get_settings(force_reload=True) is not first
