# SPDX-License-Identifier: MIT
"""Tests for configuration loading."""

from pathlib import Path

import pytest

from runtime.settings import load_settings, split_ids


def test_defaults() -> None:
    settings = load_settings()
    assert settings.max_concurrent_conversations == 10
    assert settings.port == 3000
    assert settings.log_level == "info"
    assert settings.orchestrator == "gateway.orchestrator:echo_handler"
    assert settings.test_adapter_enabled is True
    assert settings.telegram_bot_token is None
    assert settings.slack_allowlist == []


def test_load_settings_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("MAX_CONCURRENT_CONVERSATIONS", "4")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-secret")
    monkeypatch.setenv("SLACK_ALLOWED_USER_IDS", " U1, U2 ,,")
    monkeypatch.setenv("TELEGRAM_STREAMING_MODE", "batch")
    settings = load_settings()
    assert settings.max_concurrent_conversations == 4
    assert settings.log_level == "warn"
    assert settings.slack_allowlist == ["U1", "U2"]
    assert settings.telegram_streaming_mode == "batch"
    assert "xoxb-secret" not in repr(settings)


def test_env_file_is_merged_beneath_environment(monkeypatch, tmp_path: Path) -> None:
    env_file = tmp_path / "gateway.env"
    env_file.write_text("MAX_CONCURRENT_CONVERSATIONS=7\nPORT=8080\n", encoding="utf-8")
    monkeypatch.setenv("PORT", "9090")
    settings = load_settings(env_file)
    assert settings.max_concurrent_conversations == 7
    assert settings.port == 9090


def test_dotenv_in_working_directory_is_picked_up(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("MAX_CONCURRENT_CONVERSATIONS=3\n", encoding="utf-8")
    assert load_settings().max_concurrent_conversations == 3


@pytest.mark.parametrize("value", ["0", "-2", "many"])
def test_invalid_capacity_raises_runtime_error(monkeypatch, value) -> None:
    monkeypatch.setenv("MAX_CONCURRENT_CONVERSATIONS", value)
    with pytest.raises(RuntimeError, match="max_concurrent_conversations"):
        load_settings()


def test_split_ids() -> None:
    assert split_ids("") == []
    assert split_ids("*") == ["*"]
    assert split_ids("1, 2,3 ") == ["1", "2", "3"]
